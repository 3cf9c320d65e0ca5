"""Errors raised while reading, writing or batch processing DVPL containers."""

from __future__ import annotations

from typing import Optional, Iterable, Any

from relic.core.errors import MismatchError, RelicToolError


class DvplError(RelicToolError):
    """Base class of all errors raised by relic.dvpl."""


class ContainerTooSmallError(MismatchError, DvplError):
    """The container cannot hold a footer."""

    def __init__(self, received: Optional[int] = None, expected: Optional[int] = None):
        super().__init__("Container Size", received, expected)


class MarkerMismatchError(MismatchError, DvplError):
    """The container does not end with the 'DVPL' marker."""

    def __init__(
        self, received: Optional[bytes] = None, expected: Optional[bytes] = None
    ):
        super().__init__("Marker", received, expected)


class StoredSizeMismatch(MismatchError, DvplError):
    """The footer's stored size disagrees with the bytes preceding it."""

    def __init__(self, received: Optional[int] = None, expected: Optional[int] = None):
        super().__init__("Stored Size", received, expected)


class HashMismatchError(MismatchError, DvplError):
    """A checksum of the stored payload did not match the expected value."""

    def __init__(self, name: str, received: Any = None, expected: Any = None):
        super().__init__(name, received, expected)


class Crc32MismatchError(HashMismatchError):
    ...


class UnsupportedPayloadTypeError(DvplError):
    def __init__(self, received: Any, allowed: Optional[Iterable[Any]] = None):
        super().__init__()
        self.received = received
        self.allowed = list(allowed) if allowed is not None else None

    def __str__(self) -> str:
        received = getattr(self.received, "label", self.received)
        if self.allowed is None:
            return f"Payload type `{received}` is not supported."
        allowed = [getattr(item, "label", item) for item in self.allowed]
        return f"Payload type `{received}` is not supported. Supported types: `{allowed}`"


class PayloadTooLargeError(DvplError):
    def __init__(self, size: int, limit: int):
        super().__init__()
        self.size = size
        self.limit = limit

    def __str__(self) -> str:
        return f"Payload of {self.size} bytes exceeds the limit of {self.limit} bytes"


class CompressionError(DvplError):
    """The compressor failed to produce a usable block."""


class DecompressionError(DvplError):
    """The stored payload could not be decompressed."""


class DecompressedSizeMismatch(MismatchError, DecompressionError):
    def __init__(self, received: Optional[int] = None, expected: Optional[int] = None):
        super().__init__("Decompressed Size", received, expected)


class InvalidPatternError(DvplError):
    def __init__(self, pattern: str, reason: str):
        super().__init__()
        self.pattern = pattern
        self.reason = reason

    def __str__(self) -> str:
        return f"Invalid glob pattern `{self.pattern}`: {self.reason}"


class ConfigError(DvplError):
    """The configuration file could not be read or holds invalid values."""


class BatchSetupError(DvplError):
    """The batch could not start; e.g. the input path does not exist."""


__all__ = [
    "DvplError",
    "ContainerTooSmallError",
    "MarkerMismatchError",
    "StoredSizeMismatch",
    "HashMismatchError",
    "Crc32MismatchError",
    "UnsupportedPayloadTypeError",
    "PayloadTooLargeError",
    "CompressionError",
    "DecompressionError",
    "DecompressedSizeMismatch",
    "InvalidPatternError",
    "ConfigError",
    "BatchSetupError",
]
