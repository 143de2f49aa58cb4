import io

import pytest

from gamewatch.exceptions import ProtocolError
from gamewatch.services.codec import read_string, read_varint, write_string, write_varint


@pytest.mark.parametrize("value", [0, 127, 128, 300, 2_097_151, 2_147_483_647 // 2])
def test_varint_round_trip(value):
    buffer = bytearray()
    write_varint(buffer, value)
    assert read_varint(io.BytesIO(bytes(buffer))) == value


def test_varint_known_encodings():
    buffer = bytearray()
    write_varint(buffer, 300)
    assert bytes(buffer) == b"\xac\x02"

    buffer = bytearray()
    write_varint(buffer, -1)
    assert bytes(buffer) == b"\xff\xff\xff\xff\x0f"
    assert read_varint(io.BytesIO(bytes(buffer))) == -1


def test_varint_with_six_groups_is_rejected():
    with pytest.raises(ProtocolError, match="varint too long"):
        read_varint(io.BytesIO(b"\x80\x80\x80\x80\x80\x01"))


def test_truncated_varint_is_rejected():
    with pytest.raises(ProtocolError):
        read_varint(io.BytesIO(b"\x80\x80"))


def test_write_varint_rejects_values_beyond_32_bits():
    with pytest.raises(ValueError):
        write_varint(bytearray(), 1 << 31)


def test_string_round_trip_uses_utf8_byte_length():
    buffer = bytearray()
    write_string(buffer, "Grüße")
    # length prefix counts bytes, not characters
    assert buffer[0] == len("Grüße".encode("utf-8"))

    stream = io.BytesIO(bytes(buffer))
    assert read_string(stream) == "Grüße"
    assert stream.read() == b""


def test_truncated_string_is_rejected():
    with pytest.raises(ProtocolError, match="truncated"):
        read_string(io.BytesIO(b"\x05abc"))
