"""The menu shown when the ``dvpl`` script is started without arguments.

The working directory is processed in place unless the config file names
``inputPath`` or ``outputPath``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, FrozenSet, Optional, Sequence, Tuple

from relic.dvpl.batch.definitions import BatchConfig
from relic.dvpl.batch.scheduler import BatchScheduler
from relic.dvpl.config import ConfigOverlay
from relic.dvpl.definitions import PayloadType, ProcessMode
from relic.dvpl.errors import BatchSetupError, ConfigError

InputFunc = Callable[[str], str]
PrintFunc = Callable[[str], None]

MODE_CHOICES: Tuple[Tuple[str, ProcessMode], ...] = (
    ("Compress", ProcessMode.PACK),
    ("Decompress", ProcessMode.UNPACK),
)
COMPRESSION_CHOICES: Tuple[Tuple[str, PayloadType], ...] = (
    ("None", PayloadType.NONE),
    ("LZ4HC (default)", PayloadType.LZ4HC),
    ("LZ4", PayloadType.LZ4),
)
DEFAULT_COMPRESSION_CHOICE = 1


def choose(
    title: str,
    options: Sequence[str],
    input_func: Optional[InputFunc] = None,
    print_func: Optional[PrintFunc] = None,
    default: Optional[int] = None,
) -> Optional[int]:
    """Ask until a valid option is picked; returns its index.

    An empty answer picks ``default`` (if any). Returns None if input ends.
    """
    input_func = input_func or input
    print_func = print_func or print
    print_func(title)
    for i, option in enumerate(options, start=1):
        print_func(f"  {i}. {option}")
    while True:
        try:
            answer = input_func("> ").strip()
        except EOFError:
            return None
        if len(answer) == 0 and default is not None:
            return default
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return int(answer) - 1
        print_func(f"Please enter a number between 1 and {len(options)}")


def preset_mode(overlay: ConfigOverlay) -> Optional[ProcessMode]:
    """The mode chosen by the config file's ``compress``/``decompress`` flags."""
    if overlay.compress and overlay.decompress:
        raise ConfigError("`compress` and `decompress` can't both be set")
    if overlay.compress:
        return ProcessMode.PACK
    if overlay.decompress:
        return ProcessMode.UNPACK
    return None


def run_interactive(
    root: Path,
    *,
    input_func: Optional[InputFunc] = None,
    print_func: Optional[PrintFunc] = None,
    logger: Optional[logging.Logger] = None,
    overlay: Optional[ConfigOverlay] = None,
    self_exclusions: FrozenSet[str] = frozenset(),
    num_workers: Optional[int] = None,
) -> int:
    """Ask for whatever the config file leaves open, then run one batch.

    With ``compress`` or ``decompress`` set in the config file no question is
    asked for the mode; with ``compression`` set none is asked for the payload
    type either.
    """
    logger = logger or logging.getLogger(__name__)
    overlay = overlay or ConfigOverlay()

    try:
        mode = preset_mode(overlay)
    except ConfigError as e:
        logger.error(f"[error] {e}")
        return 1
    if mode is None:
        mode_index = choose(
            "Select an operation:",
            [name for name, _ in MODE_CHOICES],
            input_func,
            print_func,
        )
        if mode_index is None:
            return 1
        mode = MODE_CHOICES[mode_index][1]

    compression = overlay.compression
    if mode == ProcessMode.PACK and compression is None:
        compression_index = choose(
            "Select a compression:",
            [name for name, _ in COMPRESSION_CHOICES],
            input_func,
            print_func,
            default=DEFAULT_COMPRESSION_CHOICE,
        )
        if compression_index is None:
            return 1
        compression = COMPRESSION_CHOICES[compression_index][1]
    if compression is not None and not compression.writable:
        logger.error(f"[error] Payload type `{compression.label}` can't be written")
        return 1

    config = BatchConfig(
        mode=mode,
        input_path=Path(overlay.pick("input_path", None, root)),
        output_path=overlay.output_path,
        compression=compression if compression is not None else PayloadType.LZ4HC,
        force_compression=overlay.pick("force_compression", None, False),
        ignore_patterns=overlay.pick("ignore_patterns", None, []),
        filter_patterns=overlay.pick("filter_patterns", None, []),
        no_compress_patterns=overlay.pick("no_compress_patterns", None, []),
        num_workers=overlay.pick("workers", num_workers),
        keep_original=overlay.pick("keep_original", None, False),
        skip_crc=overlay.pick("skip_crc", None, False),
        self_exclusions=self_exclusions,
        logger=logger,
    )
    try:
        result = BatchScheduler(config).run()
    except BatchSetupError as e:
        logger.error(f"[error] {e}")
        return 1
    return result.exit_code


__all__ = [
    "MODE_CHOICES",
    "COMPRESSION_CHOICES",
    "choose",
    "preset_mode",
    "run_interactive",
]
