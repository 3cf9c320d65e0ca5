from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Generic, List, Optional, TypeVar, FrozenSet, Sequence

from relic.dvpl.definitions import (
    CompressionChoice,
    DEFAULT_FALLBACK_POLICY,
    FallbackPolicy,
    PayloadType,
    ProcessMode,
)


@dataclass(slots=True)
class BatchConfig:
    """Everything a batch run needs; built once by the caller.

    Args:
        mode: Pack or unpack.
        input_path: A file, or the root of a directory tree.
        output_path: Where results are written; defaults to input_path (in place).
        compression: The requested payload type when packing.
        force_compression: Keep compressed payloads even if they did not shrink.
        ignore_patterns: Globs of files to skip.
        filter_patterns: If set, only files matching one of these globs are processed.
        no_compress_patterns: Globs of files to pack without compression.
        num_workers: Number of executors; clamped to [1, cpu count].
        keep_original: Don't delete source files after success.
        skip_crc: Don't validate the checksum when unpacking.
        self_exclusions: File names never packed.
        fallback: When a compressed payload counts as 'not smaller'.
    """

    mode: ProcessMode
    input_path: Path
    output_path: Optional[Path] = None
    compression: PayloadType = PayloadType.LZ4HC
    force_compression: bool = False
    ignore_patterns: Sequence[str] = ()
    filter_patterns: Sequence[str] = ()
    no_compress_patterns: Sequence[str] = ()
    num_workers: Optional[int] = None
    keep_original: bool = False
    skip_crc: bool = False
    self_exclusions: FrozenSet[str] = frozenset()
    fallback: FallbackPolicy = DEFAULT_FALLBACK_POLICY
    logger: Optional[logging.Logger] = None
    verbose: bool = False

    @property
    def requested_compression(self) -> CompressionChoice:
        return CompressionChoice(self.compression, self.force_compression)


@dataclass(slots=True)
class FileTask:
    """One file's pack or unpack job."""

    source: Path
    destination: Path
    mode: ProcessMode
    compression: Optional[CompressionChoice] = None
    keep_original: bool = False
    skip_crc: bool = False

    @property
    def forced(self) -> bool:
        return self.compression is not None and self.compression.forced


_TIn = TypeVar("_TIn")
_TOut = TypeVar("_TOut")


@dataclass(slots=True)
class Result(Generic[_TIn, _TOut]):

    input: _TIn
    output: Optional[_TOut] = None
    errors: List[Exception] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @classmethod
    def create_error(cls, input: _TIn, *errors: Exception) -> Result[_TIn, _TOut]:
        return cls(input=input, output=None, errors=list(errors))


@dataclass(slots=True)
class TaskOutput:
    destination: Path
    payload_type: PayloadType
    bytes_read: int
    bytes_written: int


@dataclass(slots=True)
class TaskError:
    path: Path
    error: Exception

    def __str__(self) -> str:
        return f"{self.path}: {self.error}"


class BatchState(str, Enum):
    IDLE = "idle"
    WALKING = "walking"
    DRAINING = "draining"
    DONE = "done"


@dataclass(slots=True)
class BatchTimings:
    walking: float = 0
    draining: float = 0

    @property
    def total_time(self) -> float:
        return self.walking + self.draining


@dataclass(slots=True)
class BatchStats:
    total_files: int = 0
    succeeded_files: int = 0
    failed_files: int = 0
    skipped_files: int = 0
    cancelled_files: int = 0
    bytes_read: int = 0
    bytes_written: int = 0
    peak_active: int = 0
    peak_queued: int = 0
    timings: BatchTimings = field(default_factory=BatchTimings)


@dataclass(slots=True)
class BatchResult:
    mode: ProcessMode
    stats: BatchStats = field(default_factory=BatchStats)
    errors: List[TaskError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def partial(self) -> bool:
        return not self.success and self.stats.succeeded_files > 0

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


__all__ = [
    "BatchConfig",
    "FileTask",
    "Result",
    "TaskOutput",
    "TaskError",
    "BatchState",
    "BatchTimings",
    "BatchStats",
    "BatchResult",
]
