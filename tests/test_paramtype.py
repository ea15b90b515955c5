import pytest

from sctpkit.paramtype import (
    ParamPacketTooShortError,
    ParamType,
    param_type_name,
    parse_param_type,
)


@pytest.mark.parametrize(
    "binary, expected",
    [
        (b"\x00\x01", ParamType.HEARTBEAT_INFO),
        (b"\x00\x0d", ParamType.OUT_SSN_RESET_REQ),
    ],
)
def test_parse_param_type_success(binary, expected):
    assert parse_param_type(binary) == expected


@pytest.mark.parametrize("binary", [b"", b"\x00"])
def test_parse_param_type_failure(binary):
    with pytest.raises(ParamPacketTooShortError):
        parse_param_type(binary)


def test_parse_param_type_returns_member_for_known_value():
    assert parse_param_type(b"\xc0\x00") is ParamType.FORWARD_TSN_SUPP


def test_parse_param_type_keeps_unknown_value():
    assert parse_param_type(b"\x12\x34") == 0x1234


def test_parse_param_type_ignores_trailing_bytes():
    assert parse_param_type(b"\x00\x10\xff\xff") is ParamType.RECONFIG_RESP


@pytest.mark.parametrize(
    "value, expected",
    [
        (ParamType.HEARTBEAT_INFO, "Heartbeat Info"),
        (ParamType.STATE_COOKIE, "State Cookie"),
        (ParamType.RECONFIG_RESP, "Re-configuration Response Parameter"),
        (ParamType.SUPPORTED_EXT, "Supported Extensions"),
        (ParamType.ADAPT_LAYER_IND, "Adaptation Layer Indication"),
        (3, "Unknown ParamType: 3"),
    ],
)
def test_param_type_name(value, expected):
    assert param_type_name(value) == expected


def test_param_type_str_uses_name():
    parsed = parse_param_type(b"\x80\x04")
    assert str(parsed) == "Requested HMAC Algorithm Parameter"