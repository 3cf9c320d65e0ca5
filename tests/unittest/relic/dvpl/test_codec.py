import os
import struct
import zlib

import pytest

from relic.dvpl import codec
from relic.dvpl.codec import pack, unpack, read_footer
from relic.dvpl.definitions import FOOTER_SIZE, FallbackPolicy, PayloadType
from relic.dvpl.errors import (
    ContainerTooSmallError,
    Crc32MismatchError,
    DecompressionError,
    MarkerMismatchError,
    PayloadTooLargeError,
    StoredSizeMismatch,
    UnsupportedPayloadTypeError,
)
from relic.dvpl.serialization import Footer, FooterSerializer

_TEXT = b"Lorem ipsum dolor sit amet, consectetur adipiscing elit. " * 100
_PAYLOADS = [b"x", b"Hello World!", _TEXT, bytes(range(256)) * 16]


@pytest.mark.parametrize("payload", _PAYLOADS)
@pytest.mark.parametrize("payload_type", [0, 1, 2])
@pytest.mark.parametrize("forced", [True, False])
def test_round_trip(payload: bytes, payload_type: int, forced: bool):
    container, written_type = pack(payload, payload_type, forced)
    payload_out, read_type = unpack(container)
    assert payload_out == payload
    assert read_type == written_type


@pytest.mark.parametrize("payload_type", [PayloadType.LZ4HC, PayloadType.LZ4])
def test_footer_describes_container(payload_type: PayloadType):
    result = pack(_TEXT, payload_type)
    container = result.container
    uncompressed, stored, crc, written_type, marker = struct.unpack(
        "<IIII4s", container[-FOOTER_SIZE:]
    )
    assert marker == b"DVPL"
    assert uncompressed == len(_TEXT)
    assert stored == len(container) - FOOTER_SIZE
    assert crc == zlib.crc32(container[:stored])
    assert written_type == payload_type.value
    assert result.footer == read_footer(container)


def test_hello_world_stored_raw():
    container, payload_type = pack(b"Hello World!", PayloadType.NONE)
    assert payload_type == PayloadType.NONE
    assert container[:12] == b"Hello World!"
    assert container[12:] == struct.pack(
        "<IIII", 12, 12, zlib.crc32(b"Hello World!"), 0
    ) + b"DVPL"


@pytest.mark.parametrize("payload_type", [0, 1, 2])
@pytest.mark.parametrize("forced", [True, False])
def test_empty_payload(payload_type: int, forced: bool):
    container, written_type = pack(b"", payload_type, forced)
    assert written_type == PayloadType.NONE
    assert container == struct.pack("<IIII", 0, 0, 0, 0) + b"DVPL"
    payload, read_type = unpack(container)
    assert payload == b""
    assert read_type == PayloadType.NONE


def test_empty_payload_ignores_type():
    # Nothing is compressed, so the requested type is never checked
    container, written_type = pack(b"", PayloadType.RFC1951)
    assert written_type == PayloadType.NONE


@pytest.mark.parametrize("payload_type", [PayloadType.LZ4HC, PayloadType.LZ4])
def test_incompressible_falls_back(payload_type: PayloadType):
    payload = os.urandom(4096)
    result = pack(payload, payload_type)
    assert result.payload_type == PayloadType.NONE
    assert result.container[: len(payload)] == payload
    assert unpack(result.container).payload == payload


@pytest.mark.parametrize("payload_type", [PayloadType.LZ4HC, PayloadType.LZ4])
def test_incompressible_forced(payload_type: PayloadType):
    payload = os.urandom(4096)
    result = pack(payload, payload_type, forced=True)
    assert result.payload_type == payload_type
    assert result.footer.stored_size >= len(payload)
    assert unpack(result.container).payload == payload


def test_compressible_is_compressed():
    result = pack(_TEXT, PayloadType.LZ4HC)
    assert result.payload_type == PayloadType.LZ4HC
    assert result.footer.stored_size < len(_TEXT)


def test_fallback_policy_equal_size(monkeypatch):
    payload = b"abcdefgh"
    monkeypatch.setattr(
        codec.compression, "compress", lambda data, payload_type: b"12345678"
    )
    assert pack(payload, PayloadType.LZ4).payload_type == PayloadType.NONE
    assert (
        pack(payload, PayloadType.LZ4, fallback=FallbackPolicy.LARGER).payload_type
        == PayloadType.LZ4
    )


@pytest.mark.parametrize("payload_type", [3, 4, 255])
def test_pack_unsupported_type(payload_type: int):
    with pytest.raises(UnsupportedPayloadTypeError):
        pack(b"data", payload_type)


def test_pack_too_large_for_lz4(monkeypatch):
    monkeypatch.setattr(codec, "LZ4_MAX_INPUT_SIZE", 8)
    with pytest.raises(PayloadTooLargeError):
        pack(b"123456789", PayloadType.LZ4HC)
    # Storing raw is not limited by the compressor
    assert pack(b"123456789", PayloadType.NONE).payload_type == PayloadType.NONE


def test_pack_too_large_for_footer(monkeypatch):
    monkeypatch.setattr(codec, "MAX_PAYLOAD_SIZE", 4)
    with pytest.raises(PayloadTooLargeError):
        pack(b"12345", PayloadType.NONE)


@pytest.mark.parametrize("size", [0, 5, 19])
def test_unpack_too_small(size: int):
    with pytest.raises(ContainerTooSmallError):
        unpack(b"D" * size)


def test_unpack_bad_marker():
    container = bytearray(pack(_TEXT).container)
    container[-1:] = b"X"
    with pytest.raises(MarkerMismatchError):
        unpack(bytes(container))


def test_unpack_stored_size_mismatch():
    container = pack(_TEXT).container
    with pytest.raises(StoredSizeMismatch):
        unpack(b"\x00" + container)


@pytest.mark.parametrize("payload_type", [0, 1, 2])
def test_unpack_corrupt_payload(payload_type: int):
    container = bytearray(pack(_TEXT, payload_type).container)
    container[0] ^= 0xFF
    with pytest.raises(Crc32MismatchError):
        unpack(bytes(container))


def test_unpack_corrupt_crc_skipped():
    container = bytearray(pack(b"Hello World!", PayloadType.NONE).container)
    container[0] ^= 0xFF
    payload, _ = unpack(bytes(container), skip_crc=True)
    assert payload[1:] == b"ello World!"


def _container(stored: bytes, uncompressed_size: int, payload_type: int) -> bytes:
    footer = Footer(uncompressed_size, len(stored), zlib.crc32(stored), payload_type)
    return stored + FooterSerializer.pack(footer)


def test_unpack_unknown_type():
    with pytest.raises(UnsupportedPayloadTypeError):
        unpack(_container(b"abc", 3, 9))


def test_unpack_lz4_wrong_size():
    result = pack(_TEXT, PayloadType.LZ4)
    block = result.container[: result.footer.stored_size]
    with pytest.raises(DecompressionError):
        unpack(_container(block, len(_TEXT) * 2, PayloadType.LZ4))


@pytest.mark.parametrize("wbits", [-15, 15], ids=["raw", "zlib"])
def test_unpack_legacy_deflate(wbits: int):
    deflater = zlib.compressobj(9, zlib.DEFLATED, wbits)
    stored = deflater.compress(_TEXT) + deflater.flush()
    payload, payload_type = unpack(_container(stored, len(_TEXT), 3))
    assert payload == _TEXT
    assert payload_type == PayloadType.RFC1951
