import struct

import pytest

from edgeflow.headers import (
    decode_headers,
    encode_execute_script,
    encode_headers,
    skip_headers,
)
from edgeflow.message import ClientMessage


def test_empty_headers_encode_to_zero_count():
    assert encode_headers({}) == b"\x00\x00"
    assert encode_headers(None) == b"\x00\x00"


def test_single_header_wire_bytes():
    assert encode_headers({0xFF04: b"ab"}) == b"\x00\x01\xff\x04\x00\x00\x00\x02ab"


@pytest.mark.parametrize(
    "headers",
    [{}, {1: b""}, {0xFF01: b"value", 2: b"\x00\x01\x02"}, {0xFFFF: b"x" * 300}],
)
def test_round_trip(headers):
    data = encode_headers(headers)
    decoded, offset = decode_headers(data)
    assert decoded == headers
    assert offset == len(data)


def test_decode_at_offset_and_trailing_data():
    data = b"PREFIX" + encode_headers({7: b"seven"}) + b"rest"
    decoded, offset = decode_headers(data, 6)
    assert decoded == {7: b"seven"}
    assert data[offset:] == b"rest"


def test_skip_matches_decode():
    data = b"ab" + encode_headers({1: b"one", 2: b"two"}) + b"tail"
    _, decoded_offset = decode_headers(data, 2)
    assert skip_headers(data, 2) == decoded_offset
    assert data[skip_headers(data, 2):] == b"tail"


@pytest.mark.parametrize("cut", [1, 3, 7, 9])
def test_truncated_data_raises(cut):
    data = encode_headers({1: b"value"})[:cut]
    with pytest.raises(ValueError):
        decode_headers(data)
    with pytest.raises(ValueError):
        skip_headers(data)


def test_key_out_of_range():
    with pytest.raises(ValueError):
        encode_headers({0x10000: b"x"})
    with pytest.raises(ValueError):
        encode_headers({-1: b"x"})


def test_execute_script_layout():
    headers = {3: b"hdr"}
    message = encode_execute_script("SELECT 1;", headers)
    assert message[0] == ClientMessage.EXECUTE_SCRIPT
    (length,) = struct.unpack(">I", message[1:5])
    assert length == len(message) - 1
    decoded, offset = decode_headers(message, 5)
    assert decoded == headers
    (size,) = struct.unpack(">I", message[offset : offset + 4])
    assert message[offset + 4 :].decode("utf-8") == "SELECT 1;"
    assert size == len("SELECT 1;")


def test_execute_script_utf8_command():
    message = encode_execute_script("SELECT 'é';")
    assert message.endswith("SELECT 'é';".encode("utf-8"))
    assert message[0] == ord("Q")