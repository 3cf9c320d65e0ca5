from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO, ClassVar, Union

from relic.dvpl.definitions import MARKER, FOOTER_SIZE, payload_type_label
from relic.dvpl.errors import (
    ContainerTooSmallError,
    MarkerMismatchError,
    StoredSizeMismatch,
)

Buffer = Union[bytes, bytearray, memoryview]


def _validate_marker(marker: bytes) -> None:
    if marker != MARKER:
        raise MarkerMismatchError(bytes(marker), MARKER)


@dataclass(slots=True)
class Footer:
    """The 20 byte trailer of every DVPL container."""

    uncompressed_size: int
    stored_size: int
    crc32: int
    payload_type: int
    marker: bytes = MARKER

    @property
    def payload_type_label(self) -> str:
        return payload_type_label(self.payload_type)

    @property
    def compression_ratio(self) -> float:
        if self.stored_size == 0:
            return 1.0
        return self.uncompressed_size / self.stored_size


class FooterSerializer:
    """Reads and writes the little-endian footer layout.

    ``[uint32 uncompressed][uint32 stored][uint32 crc32][uint32 type]["DVPL"]``
    """

    LAYOUT: ClassVar[struct.Struct] = struct.Struct("<IIII4s")

    @classmethod
    def pack(cls, footer: Footer) -> bytes:
        return cls.LAYOUT.pack(
            footer.uncompressed_size,
            footer.stored_size,
            footer.crc32,
            footer.payload_type,
            footer.marker,
        )

    @classmethod
    def unpack(cls, buffer: Buffer) -> Footer:
        if len(buffer) != cls.LAYOUT.size:
            raise ContainerTooSmallError(len(buffer), cls.LAYOUT.size)
        uncompressed, stored, crc, payload_type, marker = cls.LAYOUT.unpack(buffer)
        return Footer(uncompressed, stored, crc, payload_type, marker)

    @classmethod
    def write(cls, stream: BinaryIO, footer: Footer) -> int:
        written: int = stream.write(cls.pack(footer))
        return written

    @classmethod
    def read(cls, container: Buffer) -> Footer:
        """Read the footer trailing a container, validating its marker and stored
        size.

        The payload's checksum is NOT validated.
        """
        size = len(container)
        if size < FOOTER_SIZE:
            raise ContainerTooSmallError(size, FOOTER_SIZE)
        footer = cls.unpack(memoryview(container)[size - FOOTER_SIZE :])
        _validate_marker(footer.marker)
        if footer.stored_size != size - FOOTER_SIZE:
            raise StoredSizeMismatch(footer.stored_size, size - FOOTER_SIZE)
        return footer


__all__ = ["Footer", "FooterSerializer"]
