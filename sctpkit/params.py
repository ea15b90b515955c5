"""SCTP parameter header and several concrete parameters."""

from __future__ import annotations

import enum
import secrets
import struct
from dataclasses import dataclass, field

from .paramtype import ParamPacketTooShortError, ParamType, parse_param_type

PARAM_HEADER_LENGTH = 4


class ParamError(ValueError):
    """Base class of parameter parse errors."""


class ParamHeaderTooShortError(ParamError):
    """Fewer bytes than a parameter header needs."""


class ParamHeaderLengthShorterError(ParamError):
    """Self-reported length is shorter than the header itself."""


class ParamHeaderLengthLongerError(ParamError):
    """Self-reported length is longer than the available bytes."""


class ParamHeaderParseError(ParamError):
    """The parameter type could not be parsed."""


class ReconfigResponseTooShortError(ParamError):
    """A re-configuration response parameter body is too short."""


class InvalidAlgorithmTypeError(ParamError):
    """An unknown HMAC algorithm was requested."""


def _hex_dump(data: bytes) -> str:
    lines = []
    for offset in range(0, len(data), 16):
        chunk = data[offset : offset + 16]
        hex_part = ""
        for i in range(16):
            hex_part += f"{chunk[i]:02x} " if i < len(chunk) else "   "
            if i == 7:
                hex_part += " "
        text = "".join(chr(b) if 32 <= b <= 126 else "." for b in chunk)
        lines.append(f"{offset:08x}  {hex_part} |{text}|\n")
    return "".join(lines)


@dataclass
class ParamHeader:
    """Type-length-value header shared by all parameters."""

    typ: int = 0
    reported_length: int = 0
    raw: bytes = b""

    def marshal(self) -> bytes:
        """Serialise the header followed by the value bytes."""
        total = PARAM_HEADER_LENGTH + len(self.raw)
        return struct.pack(">HH", int(self.typ), total) + bytes(self.raw)

    def unmarshal(self, raw: bytes) -> ParamHeader:
        """Parse a header and its value from ``raw``; returns ``self``."""
        if len(raw) < PARAM_HEADER_LENGTH:
            raise ParamHeaderTooShortError("param header too short")

        total = int.from_bytes(raw[2:4], "big")
        if total < PARAM_HEADER_LENGTH:
            raise ParamHeaderLengthShorterError(
                f"param self reported length ({total}) shorter than "
                f"header length ({PARAM_HEADER_LENGTH})"
            )
        if len(raw) < total:
            raise ParamHeaderLengthLongerError(
                f"param length ({len(raw)}) shorter than its self "
                f"reported length ({total})"
            )

        try:
            typ = parse_param_type(raw)
        except ParamPacketTooShortError as exc:
            raise ParamHeaderParseError(f"failed to parse param type: {exc}") from exc

        self.typ = typ
        self.raw = bytes(raw[PARAM_HEADER_LENGTH:total])
        self.reported_length = total
        return self

    def length(self) -> int:
        """Return the length reported by the parsed header."""
        return self.reported_length

    def __str__(self) -> str:
        from .paramtype import param_type_name

        return f"{param_type_name(self.typ)} ({self.reported_length}): {_hex_dump(self.raw)}"


class ReconfigResult(enum.IntEnum):
    """Result codes of a re-configuration response."""

    SUCCESS_NOP = 0
    SUCCESS_PERFORMED = 1
    DENIED = 2
    ERROR_WRONG_SSN = 3
    ERROR_REQUEST_ALREADY_IN_PROGRESS = 4
    ERROR_BAD_SEQUENCE_NUMBER = 5
    IN_PROGRESS = 6

    def __str__(self) -> str:
        return _RESULT_NAMES[self]


_RESULT_NAMES = {
    ReconfigResult.SUCCESS_NOP: "0: Success - Nothing to do",
    ReconfigResult.SUCCESS_PERFORMED: "1: Success - Performed",
    ReconfigResult.DENIED: "2: Denied",
    ReconfigResult.ERROR_WRONG_SSN: "3: Error - Wrong SSN",
    ReconfigResult.ERROR_REQUEST_ALREADY_IN_PROGRESS: "4: Error - Request already in progress",
    ReconfigResult.ERROR_BAD_SEQUENCE_NUMBER: "5: Error - Bad Sequence Number",
    ReconfigResult.IN_PROGRESS: "6: In progress",
}


def _as_result(value: int) -> ReconfigResult | int:
    try:
        return ReconfigResult(value)
    except ValueError:
        return value


@dataclass
class ParamReconfigResponse(ParamHeader):
    """Re-configuration Response Parameter."""

    reconfig_response_sequence_number: int = 0
    result: int = ReconfigResult.SUCCESS_NOP

    def marshal(self) -> bytes:
        self.typ = ParamType.RECONFIG_RESP
        self.raw = struct.pack(
            ">II", self.reconfig_response_sequence_number, int(self.result)
        )
        return super().marshal()

    def unmarshal(self, raw: bytes) -> ParamReconfigResponse:
        super().unmarshal(raw)
        if len(self.raw) < 8:
            raise ReconfigResponseTooShortError("reconfig response parameter too short")
        seq, result = struct.unpack(">II", self.raw[:8])
        self.reconfig_response_sequence_number = seq
        self.result = _as_result(result)
        return self


class HmacAlgorithm(enum.IntEnum):
    """HMAC algorithm identifiers."""

    RESERVED1 = 0
    SHA128 = 1
    RESERVED2 = 2
    SHA256 = 3

    def __str__(self) -> str:
        return _hmac_name(self)


_HMAC_NAMES = {
    0: "HMAC Reserved (0x00)",
    1: "HMAC SHA-128",
    2: "HMAC Reserved (0x02)",
    3: "HMAC SHA-256",
}


def _hmac_name(value: int) -> str:
    return _HMAC_NAMES.get(int(value), f"Unknown HMAC Algorithm type: {int(value)}")


@dataclass
class ParamRequestedHmacAlgorithm(ParamHeader):
    """Requested HMAC Algorithm Parameter."""

    available_algorithms: list = field(default_factory=list)

    def marshal(self) -> bytes:
        self.typ = ParamType.REQ_HMAC_ALGO
        self.raw = b"".join(struct.pack(">H", int(a)) for a in self.available_algorithms)
        return super().marshal()

    def unmarshal(self, raw: bytes) -> ParamRequestedHmacAlgorithm:
        super().unmarshal(raw)
        if len(self.raw) % 2:
            raise ParamError("requested HMAC algorithm list has odd length")
        algorithms = []
        for (value,) in struct.iter_unpack(">H", self.raw):
            if value not in (HmacAlgorithm.SHA128, HmacAlgorithm.SHA256):
                raise InvalidAlgorithmTypeError(
                    f"invalid algorithm type: {_hmac_name(value)}"
                )
            algorithms.append(HmacAlgorithm(value))
        self.available_algorithms = algorithms
        return self


@dataclass
class ParamStateCookie(ParamHeader):
    """State Cookie parameter."""

    cookie: bytes = b""

    def marshal(self) -> bytes:
        self.typ = ParamType.STATE_COOKIE
        self.raw = bytes(self.cookie)
        return super().marshal()

    def unmarshal(self, raw: bytes) -> ParamStateCookie:
        super().unmarshal(raw)
        self.cookie = self.raw
        return self

    def __str__(self) -> str:
        return f"{ParamHeader.__str__(self)}: {self.cookie.decode('latin-1')}"


def new_random_state_cookie() -> ParamStateCookie:
    """Create a state cookie holding 32 random bytes."""
    return ParamStateCookie(cookie=secrets.token_bytes(32))


@dataclass
class ParamSupportedExtensions(ParamHeader):
    """Supported Extensions parameter: a list of chunk type codes."""

    chunk_types: list = field(default_factory=list)

    def marshal(self) -> bytes:
        self.typ = ParamType.SUPPORTED_EXT
        self.raw = bytes(int(c) for c in self.chunk_types)
        return super().marshal()

    def unmarshal(self, raw: bytes) -> ParamSupportedExtensions:
        super().unmarshal(raw)
        self.chunk_types = list(self.raw)
        return self