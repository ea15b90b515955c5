"""SCTP building blocks: parameter codecs, serial number arithmetic, queues, timers and streams."""

__version__ = "0.1.0"

__all__ = [
    "util",
    "paramtype",
    "params",
    "payload_queue",
    "pending_queue",
    "rtx_timer",
    "reassembly_queue",
    "stream",
]