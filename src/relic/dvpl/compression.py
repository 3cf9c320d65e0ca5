"""Compression primitives used by the codec.

Only LZ4 (generic and high compression) can be written. Raw deflate (RFC 1951)
is only ever decoded; it exists for containers written by older tools.
"""

from __future__ import annotations

import zlib

import lz4.block

from relic.dvpl.definitions import PayloadType, LZ4HC_LEVEL, LZ4_PAYLOAD_TYPES
from relic.dvpl.errors import (
    CompressionError,
    DecompressionError,
    DecompressedSizeMismatch,
    UnsupportedPayloadTypeError,
)


def compress_bound(size: int) -> int:
    """Worst case size of an LZ4 block holding ``size`` input bytes."""
    return size + size // 255 + 16


def compress(payload: bytes, payload_type: PayloadType) -> bytes:
    """Compress a payload into a raw LZ4 block (no size prefix).

    Raises:
        UnsupportedPayloadTypeError: payload_type is not an LZ4 variant.
        CompressionError: The compressor failed or produced an invalid block.
    """
    if payload_type not in LZ4_PAYLOAD_TYPES:
        raise UnsupportedPayloadTypeError(payload_type, sorted(LZ4_PAYLOAD_TYPES))

    try:
        if payload_type == PayloadType.LZ4HC:
            block = lz4.block.compress(
                payload,
                mode="high_compression",
                compression=LZ4HC_LEVEL,
                store_size=False,
            )
        else:
            block = lz4.block.compress(payload, mode="default", store_size=False)
    except (lz4.block.LZ4BlockError, ValueError, OverflowError) as e:
        raise CompressionError(f"{payload_type.label} compression failed: {e}") from e

    if len(payload) > 0 and len(block) == 0:
        raise CompressionError(f"{payload_type.label} compression produced no data")
    bound = compress_bound(len(payload))
    if len(block) > bound:
        raise CompressionError(
            f"{payload_type.label} compression wrote {len(block)} bytes; bound is {bound}"
        )
    return block


def _has_zlib_header(buffer: bytes) -> bool:
    if len(buffer) < 2:
        return False
    cmf, flg = buffer[0], buffer[1]
    return cmf & 0x0F == 8 and cmf >> 4 <= 7 and ((cmf << 8) | flg) % 31 == 0


def inflate(stored: bytes) -> bytes:
    """Decode a legacy deflate payload.

    Older writers emitted both bare RFC 1951 streams and zlib wrapped streams;
    the zlib header decides which is read.
    """
    wbits = zlib.MAX_WBITS if _has_zlib_header(stored) else -zlib.MAX_WBITS
    inflater = zlib.decompressobj(wbits)
    try:
        data = inflater.decompress(stored) + inflater.flush()
    except zlib.error as e:
        raise DecompressionError(f"rfc1951 decompression failed: {e}") from e
    if not inflater.eof:
        raise DecompressionError("rfc1951 decompression failed: truncated stream")
    return data


def decompress(stored: bytes, payload_type: PayloadType, uncompressed_size: int) -> bytes:
    """Decompress a stored payload into exactly ``uncompressed_size`` bytes.

    Raises:
        UnsupportedPayloadTypeError: payload_type is not a compressed type.
        DecompressionError: The payload is corrupt or decodes to the wrong size.
    """
    if payload_type in LZ4_PAYLOAD_TYPES:
        try:
            data = lz4.block.decompress(stored, uncompressed_size=uncompressed_size)
        except (lz4.block.LZ4BlockError, ValueError) as e:
            raise DecompressionError(
                f"{payload_type.label} decompression failed: {e}"
            ) from e
    elif payload_type == PayloadType.RFC1951:
        data = inflate(stored)
    else:
        raise UnsupportedPayloadTypeError(
            payload_type, sorted(LZ4_PAYLOAD_TYPES | {PayloadType.RFC1951})
        )

    if len(data) != uncompressed_size:
        raise DecompressedSizeMismatch(len(data), uncompressed_size)
    return data


__all__ = ["compress_bound", "compress", "decompress", "inflate"]
