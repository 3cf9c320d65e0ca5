"""Concurrent pack/unpack of whole directory trees.

A batch walks its input, turns every file accepted by the filter into a
FileTask and hands it to a fixed pool of worker threads:

- the walker puts tasks on a bounded queue (2 x workers) and blocks while it is full
- each worker reads the source, runs the codec, writes the destination and removes
  the source (unless asked to keep it)
- a collector thread drains the result queue while the workers run

A failing file never stops the batch; its error is collected and reported once
every worker has finished.
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from queue import Queue
from typing import Any, Callable, Generator, List, Optional, Set, Union

from relic.core.logmsg import BraceMessage

from relic.dvpl import codec
from relic.dvpl.batch.definitions import (
    BatchConfig,
    BatchResult,
    BatchState,
    FileTask,
    Result,
    TaskError,
    TaskOutput,
)
from relic.dvpl.definitions import DVPL_SUFFIX, ProcessMode
from relic.dvpl.errors import BatchSetupError, DvplError
from relic.dvpl.filters import FileFilter, FilterReason, has_suffix, strip_suffix

ProgressCallback = Callable[[int, int], None]

# Sentinel; closes a queue for one consumer
_CLOSE: Any = object()


class FakeLogger:
    def __getattr__(self, name: Any) -> Any:
        def faker(*args: Any, **kwargs: Any) -> Any:
            return self

        return faker


def clamp_workers(
    num_workers: Optional[int], logger: Optional[logging.Logger] = None
) -> int:
    """Clamp a requested worker count to [1, cpu count]; None means cpu count."""
    available = os.cpu_count() or 1
    if num_workers is None:
        return available
    if num_workers <= 0:
        (logger or logging.getLogger(__name__)).error(
            f"# of workers ({num_workers}) invalid, defaulting to 1"
        )
        return 1
    return min(num_workers, available)


def detect_mode(path: Union[str, Path]) -> ProcessMode:
    """Guess whether a dropped path should be packed or unpacked.

    A file is unpacked if it carries the container suffix. A directory is unpacked
    if any file below it carries the suffix; the walk stops at the first one.
    """
    path = Path(path)
    if not path.exists():
        raise BatchSetupError(f"Input path `{path}` does not exist")
    if path.is_file():
        return ProcessMode.UNPACK if has_suffix(path.name) else ProcessMode.PACK
    for _, _, filenames in os.walk(path):
        if any(has_suffix(name) for name in filenames):
            return ProcessMode.UNPACK
    return ProcessMode.PACK


class DirectoryCacher:
    def __init__(self) -> None:
        # Thread-safe directory cache to avoid redundant mkdir calls
        self._dir_cache: Set[str] = set()
        self._dir_cache_lock = threading.Lock()

    def ensure_directory(self, dir_path: Path) -> bool:
        """Ensure directory exists with caching to avoid redundant mkdir calls.

        Args:
            dir_path: Directory path to create

        Returns:
            bool: True if directory was created, False otherwise
        """
        dir_str = str(dir_path)

        if dir_str in self._dir_cache:
            return False

        with self._dir_cache_lock:
            # Double-check after acquiring lock
            if dir_str in self._dir_cache:
                return False
            dir_path.mkdir(parents=True, exist_ok=True)
            self._dir_cache.add(dir_str)
            for parent_path in dir_path.parents:
                self._dir_cache.add(str(parent_path))
            return True


class BatchScheduler:
    """Runs one pack or unpack batch; a scheduler can only be run once."""

    def __init__(self, config: BatchConfig, cache: Optional[DirectoryCacher] = None):
        self.config = config
        self.logger = config.logger or logging.getLogger(__name__)
        self.verbose_logger = self.logger if config.verbose else FakeLogger()
        self.num_workers = clamp_workers(config.num_workers, self.logger)
        self.directories = cache or DirectoryCacher()
        self.filter = FileFilter(
            ignore=config.ignore_patterns,
            include=config.filter_patterns,
            no_compress=config.no_compress_patterns,
            self_exclusions=config.self_exclusions,
            logger=self.logger,
        )
        self.state = BatchState.IDLE
        self.result = BatchResult(config.mode)

        self._tasks: Queue[Any] = Queue(maxsize=self.queue_capacity)
        self._results: Queue[Any] = Queue(maxsize=self.queue_capacity)
        self._cancelled = threading.Event()
        self._active = 0
        self._active_lock = threading.Lock()
        self._on_progress: Optional[ProgressCallback] = None

    @property
    def queue_capacity(self) -> int:
        return 2 * self.num_workers

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop queueing new files; tasks already running are allowed to finish and
        queued tasks are dropped."""
        if not self._cancelled.is_set():
            self.logger.warning("Cancelling; waiting for running tasks to finish...")
        self._cancelled.set()

    def run(self, on_progress: Optional[ProgressCallback] = None) -> BatchResult:
        if self.state != BatchState.IDLE:
            raise DvplError("A batch can only be run once")
        root = Path(self.config.input_path)
        if not root.exists():
            raise BatchSetupError(f"Input path `{root}` does not exist")

        self._on_progress = on_progress
        self.verbose_logger.info(
            BraceMessage(
                "Starting {mode} batch: {root}", mode=self.config.mode.value, root=root
            )
        )
        self.verbose_logger.info(f"Using {self.num_workers} workers")

        collector = threading.Thread(
            target=self._collect, name="dvpl-collector", daemon=True
        )
        workers = [
            threading.Thread(target=self._work, name=f"dvpl-worker-{i}", daemon=True)
            for i in range(self.num_workers)
        ]
        collector.start()
        for worker in workers:
            worker.start()

        try:
            with self._timer() as timer:
                self.state = BatchState.WALKING
                try:
                    self._walk(root)
                finally:
                    for _ in workers:
                        self._tasks.put(_CLOSE)
                self.result.stats.timings.walking = timer()
        finally:
            with self._timer() as timer:
                self.state = BatchState.DRAINING
                for worker in workers:
                    worker.join()
                self._results.put(_CLOSE)
                collector.join()
                self.result.stats.timings.draining = timer()
            self.state = BatchState.DONE

        self.result.errors.sort(key=lambda error: str(error.path))
        self._print_summary()
        return self.result

    # Walking

    def _walk(self, root: Path) -> None:
        if root.is_file():
            self._walk_file(root)
            return

        output_root = Path(self.config.output_path or root)

        def _on_error(error: OSError) -> None:
            if error.filename is not None and Path(error.filename) == root:
                raise BatchSetupError(f"Cannot walk `{root}`: {error}") from error
            path = Path(error.filename) if error.filename is not None else root
            self.logger.error(
                BraceMessage("[error] Error accessing path {0}: {1}", path, error)
            )
            self.result.stats.total_files += 1
            self._results.put(Result.create_error(path, error))

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            dirnames.sort()
            for name in sorted(filenames):
                if self._cancelled.is_set():
                    return
                path = Path(dirpath) / name
                reason = self.filter.decide(name, self.config.mode)
                if reason != FilterReason.ACCEPTED:
                    self._skip(path, reason)
                    continue
                self._submit(path, output_root / path.relative_to(root))

    def _walk_file(self, path: Path) -> None:
        mode = self.config.mode
        if mode == ProcessMode.PACK and has_suffix(path.name):
            self._skip(path, FilterReason.ALREADY_PACKED)
            return
        if mode == ProcessMode.UNPACK and not has_suffix(path.name):
            self._skip(path, FilterReason.NOT_PACKED)
            return

        output = self.config.output_path
        if output is None:
            destination = path
        elif Path(output).is_dir():
            destination = Path(output) / path.name
        else:
            destination = Path(output)
        self._submit(path, destination)

    def _skip(self, path: Path, reason: FilterReason) -> None:
        self.result.stats.skipped_files += 1
        log = self.logger.info if self.config.verbose else self.logger.debug
        log(BraceMessage("{0}: {1}", reason.value, path))

    def _destination(self, destination: Path) -> Path:
        if self.config.mode == ProcessMode.PACK:
            if has_suffix(destination.name):
                return destination
            return destination.with_name(destination.name + DVPL_SUFFIX)
        return destination.with_name(strip_suffix(destination.name))

    def _submit(self, source: Path, destination: Path) -> None:
        stats = self.result.stats
        compression = None
        if self.config.mode == ProcessMode.PACK:
            compression = self.filter.effective_compression(
                source.name, self.config.requested_compression
            )
        try:
            resolved = self._destination(destination)
        except ValueError as e:
            # e.g. a file named exactly ".dvpl" has no name left once unpacked
            self.logger.error(
                BraceMessage("[error] Error processing file {0}: {1}", source, e)
            )
            stats.total_files += 1
            self._results.put(Result.create_error(source, e))
            return
        task = FileTask(
            source=source,
            destination=resolved,
            mode=self.config.mode,
            compression=compression,
            keep_original=self.config.keep_original,
            skip_crc=self.config.skip_crc,
        )
        # Blocks while the queue is full
        self._tasks.put(task)
        stats.total_files += 1
        stats.peak_queued = max(stats.peak_queued, self._tasks.qsize())

    # Draining

    @contextmanager
    def _track_active(self) -> Generator[None, Any, None]:
        with self._active_lock:
            self._active += 1
            stats = self.result.stats
            stats.peak_active = max(stats.peak_active, self._active)
        try:
            yield
        finally:
            with self._active_lock:
                self._active -= 1

    def _work(self) -> None:
        while True:
            task = self._tasks.get()
            if task is _CLOSE:
                return
            if self._cancelled.is_set():
                # Result without output or errors; the task never started
                self._results.put(Result(task.source))
                continue
            with self._track_active():
                result = self._execute(task)
            self._results.put(result)

    def _write(self, destination: Path, data: bytes) -> None:
        self.directories.ensure_directory(destination.parent)
        try:
            with destination.open("wb") as dst:
                dst.write(data)
        except OSError:
            destination.unlink(missing_ok=True)
            raise

    def _execute(self, task: FileTask) -> Result[Path, TaskOutput]:
        try:
            with task.source.open("rb") as src:
                data = src.read()

            if task.mode == ProcessMode.PACK:
                if task.compression is None:
                    raise DvplError(f"No compression chosen for `{task.source}`")
                packed = codec.pack(
                    data,
                    task.compression.payload_type,
                    task.compression.forced,
                    fallback=self.config.fallback,
                )
                output, payload_type = packed
                self.logger.info(
                    BraceMessage("Pack {0}: {1}", payload_type.label, task.source)
                )
            else:
                unpacked = codec.unpack(data, skip_crc=task.skip_crc)
                output, payload_type = unpacked
                self.logger.info(
                    BraceMessage("Unpack {0}: {1}", payload_type.label, task.source)
                )

            self._write(task.destination, output)
            if not task.keep_original:
                task.source.unlink()
            return Result(
                task.source,
                TaskOutput(task.destination, payload_type, len(data), len(output)),
            )
        except Exception as e:
            self.logger.error(
                BraceMessage("[error] Error processing file {0}: {1}", task.source, e)
            )
            return Result.create_error(task.source, e)

    def _collect(self) -> None:
        processed = 0
        while True:
            result = self._results.get()
            if result is _CLOSE:
                return
            stats = self.result.stats
            if result.has_errors:
                stats.failed_files += 1
                for error in result.errors:
                    self.result.errors.append(TaskError(result.input, error))
            elif result.output is None:
                stats.cancelled_files += 1
            else:
                stats.succeeded_files += 1
                stats.bytes_read += result.output.bytes_read
                stats.bytes_written += result.output.bytes_written
            processed += 1
            if self._on_progress is not None:
                self._on_progress(processed, stats.total_files)

    # Reporting

    def _print_summary(self) -> None:
        stats = self.result.stats
        verb = "Packed" if self.config.mode == ProcessMode.PACK else "Unpacked"
        summary = f"{verb} {stats.succeeded_files} of {stats.total_files} files; {stats.failed_files} failed, {stats.skipped_files} skipped"
        if stats.cancelled_files > 0:
            summary += f", {stats.cancelled_files} cancelled"
        self.logger.info("")
        self.logger.info(summary)
        for error in self.result.errors:
            self.logger.error(f"[error] {error}")
        self.verbose_logger.info("Timings")
        self.verbose_logger.info(f"  Walking:    {stats.timings.walking:.4f}")
        self.verbose_logger.info(f"  Draining:   {stats.timings.draining:.4f}")
        self.verbose_logger.info(f"  Total Time: {stats.timings.total_time:.4f}")
        self.logger.info("Operation completed!")

    @contextmanager
    def _timer(self) -> Generator[Callable[[], float], Any, None]:
        import time as time_module

        t0 = time_module.perf_counter()

        def delta() -> float:
            return time_module.perf_counter() - t0

        yield delta


def run_batch(
    config: BatchConfig, on_progress: Optional[ProgressCallback] = None
) -> BatchResult:
    """Build a scheduler for ``config`` and run it to completion."""
    return BatchScheduler(config).run(on_progress)


__all__ = [
    "ProgressCallback",
    "clamp_workers",
    "detect_mode",
    "DirectoryCacher",
    "BatchScheduler",
    "run_batch",
]
