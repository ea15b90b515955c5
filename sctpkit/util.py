"""Padding helpers and serial number arithmetic (RFC 1982)."""

PADDING_MULTIPLE = 4

_MASK32 = 0xFFFFFFFF
_MASK16 = 0xFFFF
_HALF32 = 1 << 31
_HALF16 = 1 << 15


def get_padding(length: int) -> int:
    """Return how many bytes bring ``length`` up to a multiple of four."""
    return (PADDING_MULTIPLE - (length % PADDING_MULTIPLE)) % PADDING_MULTIPLE


def pad_byte(data: bytes, count: int) -> bytes:
    """Return ``data`` followed by ``count`` zero bytes (none if negative)."""
    return bytes(data) + bytes(max(count, 0))


def sna32_lt(a: int, b: int) -> bool:
    """Serial-number "less than" for 32-bit values."""
    a &= _MASK32
    b &= _MASK32
    return (a < b and b - a < _HALF32) or (a > b and a - b > _HALF32)


def sna32_lte(a: int, b: int) -> bool:
    """Serial-number "less than or equal" for 32-bit values."""
    return sna32_eq(a, b) or sna32_lt(a, b)


def sna32_gt(a: int, b: int) -> bool:
    """Serial-number "greater than" for 32-bit values."""
    a &= _MASK32
    b &= _MASK32
    return (a < b and b - a >= _HALF32) or (a > b and a - b <= _HALF32)


def sna32_gte(a: int, b: int) -> bool:
    """Serial-number "greater than or equal" for 32-bit values."""
    return sna32_eq(a, b) or sna32_gt(a, b)


def sna32_eq(a: int, b: int) -> bool:
    """Serial-number equality for 32-bit values."""
    return (a & _MASK32) == (b & _MASK32)


def sna16_lt(a: int, b: int) -> bool:
    """Serial-number "less than" for 16-bit values."""
    a &= _MASK16
    b &= _MASK16
    return (a < b and b - a < _HALF16) or (a > b and a - b > _HALF16)


def sna16_lte(a: int, b: int) -> bool:
    """Serial-number "less than or equal" for 16-bit values."""
    return sna16_eq(a, b) or sna16_lt(a, b)


def sna16_gt(a: int, b: int) -> bool:
    """Serial-number "greater than" for 16-bit values."""
    a &= _MASK16
    b &= _MASK16
    return (a < b and b - a >= _HALF16) or (a > b and a - b <= _HALF16)


def sna16_gte(a: int, b: int) -> bool:
    """Serial-number "greater than or equal" for 16-bit values."""
    return sna16_eq(a, b) or sna16_gt(a, b)


def sna16_eq(a: int, b: int) -> bool:
    """Serial-number equality for 16-bit values."""
    return (a & _MASK16) == (b & _MASK16)