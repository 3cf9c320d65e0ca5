import os
import zlib

import pytest

from relic.dvpl.compression import compress, compress_bound, decompress, inflate
from relic.dvpl.definitions import PayloadType
from relic.dvpl.errors import (
    DecompressionError,
    UnsupportedPayloadTypeError,
)

_TEXT = b"The quick brown fox jumps over the lazy dog. " * 200


@pytest.mark.parametrize("payload_type", [PayloadType.LZ4HC, PayloadType.LZ4])
def test_lz4_round_trip(payload_type: PayloadType):
    block = compress(_TEXT, payload_type)
    assert len(block) < len(_TEXT)
    assert decompress(block, payload_type, len(_TEXT)) == _TEXT


@pytest.mark.parametrize("payload_type", [PayloadType.LZ4HC, PayloadType.LZ4])
def test_lz4_incompressible_within_bound(payload_type: PayloadType):
    payload = os.urandom(4096)
    block = compress(payload, payload_type)
    assert len(block) <= compress_bound(len(payload))


def test_lz4hc_not_larger_than_lz4():
    assert len(compress(_TEXT, PayloadType.LZ4HC)) <= len(
        compress(_TEXT, PayloadType.LZ4)
    )


@pytest.mark.parametrize("payload_type", [PayloadType.NONE, PayloadType.RFC1951])
def test_compress_rejects_other_types(payload_type: PayloadType):
    with pytest.raises(UnsupportedPayloadTypeError):
        compress(_TEXT, payload_type)


def test_decompress_wrong_size():
    block = compress(_TEXT, PayloadType.LZ4)
    with pytest.raises(DecompressionError):
        decompress(block, PayloadType.LZ4, len(_TEXT) + 10)


def test_decompress_garbage():
    with pytest.raises(DecompressionError):
        decompress(b"\xff" * 32, PayloadType.LZ4, 1024)


def test_decompress_none_unsupported():
    with pytest.raises(UnsupportedPayloadTypeError):
        decompress(_TEXT, PayloadType.NONE, len(_TEXT))


def _raw_deflate(data: bytes) -> bytes:
    deflater = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
    return deflater.compress(data) + deflater.flush()


@pytest.mark.parametrize(
    "encode", [_raw_deflate, zlib.compress], ids=["raw", "zlib"]
)
def test_inflate_legacy_streams(encode):
    stored = encode(_TEXT)
    assert inflate(stored) == _TEXT
    assert decompress(stored, PayloadType.RFC1951, len(_TEXT)) == _TEXT


def test_inflate_truncated():
    stored = _raw_deflate(_TEXT)
    with pytest.raises(DecompressionError):
        inflate(stored[: len(stored) // 2])


def test_inflate_size_enforced():
    with pytest.raises(DecompressionError):
        decompress(zlib.compress(_TEXT), PayloadType.RFC1951, len(_TEXT) - 1)
