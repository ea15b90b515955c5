[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sctpkit"
version = "0.1.0"
description = "SCTP building blocks: parameter codecs, serial number arithmetic, send/receive queues, retransmission timers and streams"
requires-python = ">=3.10"
dependencies = []
keywords = ["sctp", "networking", "protocol", "webrtc", "datachannel", "rfc4960"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sctpkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
