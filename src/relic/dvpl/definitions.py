"""Definitions expressed concretely by the DVPL container format."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

MARKER = b"DVPL"
FOOTER_SIZE = 20  # 4 * uint32 + marker
DVPL_SUFFIX = ".dvpl"
CONFIG_FILENAME = ".dvpl.yml"

# Every size field in the footer is a uint32
MAX_PAYLOAD_SIZE = 0xFFFFFFFF
# LZ4_MAX_INPUT_SIZE; the block API can't address larger single-shot buffers
LZ4_MAX_INPUT_SIZE = 0x7E000000
LZ4HC_LEVEL = 9


class PayloadType(int, Enum):
    """Specifies how the payload of a container is stored.

    RFC1951 (raw deflate) is a legacy format; it can be read, but is never written.
    """

    NONE = 0
    LZ4HC = 1
    LZ4 = 2
    RFC1951 = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def writable(self) -> bool:
        return self in WRITABLE_PAYLOAD_TYPES

    @classmethod
    def parse(cls, value: Union[PayloadType, int, str]) -> PayloadType:
        """Parse a payload type from its value (``1``, ``"1"``) or its label
        (``"lz4hc"``).

        Raises:
            ValueError: The value does not name a payload type.
        """
        if isinstance(value, PayloadType):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit():
                return cls(int(text))
            for member in cls:
                if member.label == text:
                    return member
            raise ValueError(f"'{value}' is not a valid {cls.__name__}")
        return cls(value)


WRITABLE_PAYLOAD_TYPES = frozenset(
    [PayloadType.NONE, PayloadType.LZ4HC, PayloadType.LZ4]
)
LZ4_PAYLOAD_TYPES = frozenset([PayloadType.LZ4HC, PayloadType.LZ4])


def payload_type_label(value: int) -> str:
    try:
        return PayloadType(value).label
    except ValueError:
        return "unknown"


class FallbackPolicy(Enum):
    """Decides when a compressed payload is discarded in favour of the raw
    payload."""

    NOT_SMALLER = "not-smaller"  # compressed >= original -> store raw
    LARGER = "larger"  # compressed > original -> store raw

    def should_store_raw(self, compressed_size: int, original_size: int) -> bool:
        if self is FallbackPolicy.LARGER:
            return compressed_size > original_size
        return compressed_size >= original_size


DEFAULT_FALLBACK_POLICY = FallbackPolicy.NOT_SMALLER


class ProcessMode(str, Enum):
    PACK = "pack"
    UNPACK = "unpack"


@dataclass(frozen=True, slots=True)
class CompressionChoice:
    """The compression requested for a single file.

    Args:
        payload_type (PayloadType): The algorithm to try.
        forced (bool): Keep the compressed payload even if it did not shrink.
    """

    payload_type: PayloadType = PayloadType.LZ4HC
    forced: bool = False

    def without_compression(self) -> CompressionChoice:
        return CompressionChoice(PayloadType.NONE, self.forced)


__all__ = [
    "MARKER",
    "FOOTER_SIZE",
    "DVPL_SUFFIX",
    "CONFIG_FILENAME",
    "MAX_PAYLOAD_SIZE",
    "LZ4_MAX_INPUT_SIZE",
    "LZ4HC_LEVEL",
    "PayloadType",
    "WRITABLE_PAYLOAD_TYPES",
    "LZ4_PAYLOAD_TYPES",
    "payload_type_label",
    "FallbackPolicy",
    "DEFAULT_FALLBACK_POLICY",
    "ProcessMode",
    "CompressionChoice",
]
