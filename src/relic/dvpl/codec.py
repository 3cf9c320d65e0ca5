"""Pure transforms between raw file contents and DVPL containers.

A container is the stored payload followed by a 20 byte footer::

    [payload][u32 uncompressed][u32 stored][u32 crc32][u32 type]["DVPL"]

Nothing here touches the filesystem; reading and writing files is the batch
scheduler's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union, Any

from relic.dvpl import compression
from relic.dvpl.definitions import (
    FOOTER_SIZE,
    MAX_PAYLOAD_SIZE,
    LZ4_MAX_INPUT_SIZE,
    LZ4_PAYLOAD_TYPES,
    WRITABLE_PAYLOAD_TYPES,
    DEFAULT_FALLBACK_POLICY,
    FallbackPolicy,
    PayloadType,
)
from relic.dvpl.errors import PayloadTooLargeError, UnsupportedPayloadTypeError
from relic.dvpl.hashtools import crc32
from relic.dvpl.serialization import Footer, FooterSerializer

_CRC32 = crc32()


@dataclass(slots=True)
class PackResult:
    container: bytes
    payload_type: PayloadType
    footer: Footer

    def __iter__(self) -> Iterator[Any]:
        yield self.container
        yield self.payload_type


@dataclass(slots=True)
class UnpackResult:
    payload: bytes
    payload_type: PayloadType
    footer: Footer

    def __iter__(self) -> Iterator[Any]:
        yield self.payload
        yield self.payload_type


def _resolve_type(value: Union[PayloadType, int], allowed: frozenset) -> PayloadType:
    try:
        payload_type = PayloadType(value)
    except ValueError as e:
        raise UnsupportedPayloadTypeError(value, sorted(allowed)) from e
    if payload_type not in allowed:
        raise UnsupportedPayloadTypeError(payload_type, sorted(allowed))
    return payload_type


def pack(
    payload: bytes,
    payload_type: Union[PayloadType, int] = PayloadType.LZ4HC,
    forced: bool = False,
    *,
    fallback: FallbackPolicy = DEFAULT_FALLBACK_POLICY,
) -> PackResult:
    """Wrap a payload in a DVPL container.

    Args:
        payload: The raw file contents.
        payload_type: The requested compression; NONE, LZ4HC or LZ4.
        forced: Keep the compressed payload even when it did not shrink.
        fallback: When a compressed payload counts as 'not smaller'.

    Returns:
        The container and the payload type actually written.

    Raises:
        UnsupportedPayloadTypeError: payload_type can't be written.
        PayloadTooLargeError: The payload can't be described by the footer or
            compressed in a single LZ4 block.
        CompressionError: The compressor failed.
    """
    size = len(payload)
    if size == 0:
        resolved = PayloadType.NONE
    else:
        resolved = _resolve_type(payload_type, WRITABLE_PAYLOAD_TYPES)
        if size > MAX_PAYLOAD_SIZE:
            raise PayloadTooLargeError(size, MAX_PAYLOAD_SIZE)
        if resolved in LZ4_PAYLOAD_TYPES and size > LZ4_MAX_INPUT_SIZE:
            raise PayloadTooLargeError(size, LZ4_MAX_INPUT_SIZE)

    stored = bytes(payload)
    if resolved in LZ4_PAYLOAD_TYPES:
        compressed = compression.compress(stored, resolved)
        if not forced and fallback.should_store_raw(len(compressed), size):
            resolved = PayloadType.NONE
        else:
            stored = compressed

    footer = Footer(
        uncompressed_size=size,
        stored_size=len(stored),
        crc32=_CRC32(stored),
        payload_type=resolved.value,
    )
    return PackResult(stored + FooterSerializer.pack(footer), resolved, footer)


def read_footer(container: bytes) -> Footer:
    """Read a container's footer without checking the payload's checksum."""
    return FooterSerializer.read(container)


def unpack(container: bytes, skip_crc: bool = False) -> UnpackResult:
    """Extract the payload of a DVPL container.

    Raises:
        ContainerTooSmallError: The container is shorter than a footer.
        MarkerMismatchError: The container does not end in 'DVPL'.
        StoredSizeMismatch: The footer's stored size is wrong.
        Crc32MismatchError: The stored payload is corrupt (unless skip_crc).
        UnsupportedPayloadTypeError: The footer names an unknown payload type.
        DecompressionError: The stored payload could not be decompressed.
    """
    footer = FooterSerializer.read(container)
    stored = bytes(memoryview(container)[: footer.stored_size])
    if not skip_crc:
        _CRC32.validate(stored, footer.crc32, name="Payload CRC 32")

    payload_type = _resolve_type(footer.payload_type, frozenset(PayloadType))
    if payload_type == PayloadType.NONE:
        payload = stored
    else:
        payload = compression.decompress(
            stored, payload_type, footer.uncompressed_size
        )
    return UnpackResult(payload, payload_type, footer)


__all__ = [
    "FOOTER_SIZE",
    "PackResult",
    "UnpackResult",
    "pack",
    "unpack",
    "read_footer",
]
