from __future__ import annotations

import argparse
import logging
import os
import sys
from argparse import ArgumentParser, Namespace
from logging import Logger
from pathlib import Path
from typing import Optional, Sequence, FrozenSet, List

from relic.core.cli import (
    CliPluginGroup,
    _SubParsersAction,
    CliPlugin,
    RelicArgParser,
    get_file_type_validator,
    get_path_validator,
)
from relic.core.logmsg import BraceMessage

from relic.dvpl import codec
from relic.dvpl.batch.definitions import BatchConfig
from relic.dvpl.batch.scheduler import BatchScheduler, detect_mode
from relic.dvpl.config import ConfigOverlay, resolve_config, split_patterns
from relic.dvpl.definitions import CONFIG_FILENAME, PayloadType, ProcessMode
from relic.dvpl.errors import BatchSetupError, ConfigError, DvplError
from relic.dvpl.hashtools import crc32
from relic.dvpl.interactive import run_interactive

_SUCCESS = 0
_FAILURE = 1

_COMMANDS = ("pack", "unpack", "auto", "info")


def self_exclusions() -> FrozenSet[str]:
    """Names the packer must never touch; its own executable and config file."""
    names = {CONFIG_FILENAME}
    if sys.argv and sys.argv[0]:
        names.add(Path(sys.argv[0]).name)
    return frozenset(names)


def _payload_type(value: str) -> PayloadType:
    try:
        payload_type = PayloadType.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    if not payload_type.writable:
        raise argparse.ArgumentTypeError(
            f"'{payload_type.label}' can be read, but not written"
        )
    return payload_type


def _patterns(value: Optional[Sequence[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    patterns: List[str] = []
    for item in value:
        patterns.extend(split_patterns(item))
    return patterns


class RelicDvplCli(CliPluginGroup):
    GROUP = "relic.cli.dvpl"

    def _create_parser(
        self, command_group: Optional[_SubParsersAction] = None
    ) -> ArgumentParser:
        name = "dvpl"
        desc = "Pack and unpack DVPL containers"
        if command_group is None:
            return RelicArgParser(name, description=desc)
        return command_group.add_parser(name, description=desc)


class _BatchCli(CliPlugin):
    MODE: ProcessMode = None  # type: ignore

    def _add_arguments(self, parser: ArgumentParser) -> None:
        parser.add_argument(
            "src",
            nargs="?",
            default=None,
            type=get_path_validator(exists=True),
            help="Input file or directory (default: `inputPath` from the config file)",
        )
        parser.add_argument(
            "out",
            nargs="?",
            default=None,
            type=get_path_validator(exists=False),
            help="Output file or directory (default: the input, in place)",
        )
        parser.add_argument(
            "--ignore",
            action="append",
            default=None,
            help="Comma-separated globs of files to ignore; may be repeated",
        )
        parser.add_argument(
            "--filter",
            action="append",
            default=None,
            help="Comma-separated globs; only matching files are processed",
        )
        parser.add_argument(
            "-w",
            "--workers",
            type=int,
            default=None,
            help="Number of parallel workers (default: CPU count)",
        )
        parser.add_argument(
            "-k",
            "--keep-original",
            action="store_true",
            default=None,
            help="Keep the source files",
        )
        parser.add_argument(
            "--config",
            type=get_file_type_validator(exists=True),
            default=None,
            help=f"Config file (default: `{CONFIG_FILENAME}` in the working directory or next to the program)",
        )
        parser.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            default=False,
            help="Log skipped files and timings",
        )

    def _build_config(
        self, ns: Namespace, overlay: ConfigOverlay, logger: Logger
    ) -> Optional[BatchConfig]:
        src = overlay.pick("input_path", ns.src)
        if src is None:
            logger.error("[error] No input path given")
            return None
        out = overlay.pick("output_path", ns.out)
        return BatchConfig(
            mode=self.MODE,
            input_path=Path(src),
            output_path=Path(out) if out is not None else None,
            ignore_patterns=overlay.pick("ignore_patterns", _patterns(ns.ignore), []),
            filter_patterns=overlay.pick("filter_patterns", _patterns(ns.filter), []),
            num_workers=overlay.pick("workers", ns.workers),
            keep_original=overlay.pick("keep_original", ns.keep_original, False),
            self_exclusions=self_exclusions(),
            logger=logger,
            verbose=ns.verbose,
        )

    def command(self, ns: Namespace, *, logger: Logger) -> Optional[int]:
        try:
            overlay = resolve_config(ns.config, logger=logger)
            config = self._build_config(ns, overlay, logger)
        except ConfigError as e:
            logger.error(f"[error] {e}")
            return _FAILURE
        if config is None:
            return _FAILURE

        logger.info(
            BraceMessage("{0} `{1}`", self.MODE.value.capitalize(), config.input_path)
        )
        try:
            result = BatchScheduler(config).run()
        except BatchSetupError as e:
            logger.error(f"[error] {e}")
            return _FAILURE
        return result.exit_code


class RelicDvplPackCli(_BatchCli):
    MODE = ProcessMode.PACK

    def _create_parser(
        self, command_group: Optional[_SubParsersAction] = None
    ) -> ArgumentParser:
        parser: ArgumentParser
        desc = """Pack files into DVPL containers.
            Directories are packed recursively; every file gains a '.dvpl' suffix."""
        if command_group is None:
            parser = RelicArgParser("pack", description=desc)
        else:
            parser = command_group.add_parser("pack", description=desc)

        self._add_arguments(parser)
        parser.add_argument(
            "-c",
            "--compression",
            type=_payload_type,
            default=None,
            help="Compression: none (0), lz4hc (1) or lz4 (2) (default: lz4hc)",
        )
        parser.add_argument(
            "--no-compress",
            action="append",
            default=None,
            help="Comma-separated globs of files to store without compression",
        )
        parser.add_argument(
            "-f",
            "--force",
            action="store_true",
            default=None,
            help="Keep compressed payloads even when they are not smaller",
        )
        return parser

    def _build_config(
        self, ns: Namespace, overlay: ConfigOverlay, logger: Logger
    ) -> Optional[BatchConfig]:
        config = super()._build_config(ns, overlay, logger)
        if config is None:
            return None
        compression = overlay.pick("compression", ns.compression, PayloadType.LZ4HC)
        if not compression.writable:
            raise ConfigError(f"Payload type `{compression.label}` can't be written")
        config.compression = compression
        config.no_compress_patterns = overlay.pick(
            "no_compress_patterns", _patterns(ns.no_compress), []
        )
        config.force_compression = overlay.pick("force_compression", ns.force, False)
        return config


class RelicDvplUnpackCli(_BatchCli):
    MODE = ProcessMode.UNPACK

    def _create_parser(
        self, command_group: Optional[_SubParsersAction] = None
    ) -> ArgumentParser:
        parser: ArgumentParser
        desc = """Unpack DVPL containers.
            Directories are unpacked recursively; only '.dvpl' files are read and the suffix is removed."""
        if command_group is None:
            parser = RelicArgParser("unpack", description=desc)
        else:
            parser = command_group.add_parser("unpack", description=desc)

        self._add_arguments(parser)
        parser.add_argument(
            "--skip-crc",
            action="store_true",
            default=None,
            help="Don't verify the payload checksum",
        )
        return parser

    def _build_config(
        self, ns: Namespace, overlay: ConfigOverlay, logger: Logger
    ) -> Optional[BatchConfig]:
        config = super()._build_config(ns, overlay, logger)
        if config is not None:
            config.skip_crc = overlay.pick("skip_crc", ns.skip_crc, False)
        return config


class RelicDvplAutoCli(CliPlugin):
    def _create_parser(
        self, command_group: Optional[_SubParsersAction] = None
    ) -> ArgumentParser:
        parser: ArgumentParser
        desc = """Pack or unpack each path in place, as when dropped onto the program.
            A directory containing any '.dvpl' file is unpacked; otherwise it is packed."""
        if command_group is None:
            parser = RelicArgParser("auto", description=desc)
        else:
            parser = command_group.add_parser("auto", description=desc)

        parser.add_argument(
            "paths",
            nargs="+",
            type=get_path_validator(exists=True),
            help="Files or directories",
        )
        parser.add_argument(
            "-w",
            "--workers",
            type=int,
            default=None,
            help="Number of parallel workers (default: CPU count)",
        )
        parser.add_argument(
            "--config",
            type=get_file_type_validator(exists=True),
            default=None,
            help="Config file",
        )
        return parser

    def command(self, ns: Namespace, *, logger: Logger) -> Optional[int]:
        paths: List[str] = ns.paths
        try:
            overlay = resolve_config(ns.config, logger=logger)
        except ConfigError as e:
            logger.error(f"[error] {e}")
            return _FAILURE

        compression = overlay.pick("compression", None, PayloadType.LZ4HC)
        if not compression.writable:
            logger.error(f"[error] Payload type `{compression.label}` can't be written")
            return _FAILURE

        exit_code = _SUCCESS
        for path in paths:
            try:
                mode = detect_mode(path)
                logger.info(f"{mode.value.capitalize()} `{path}`")
                config = BatchConfig(
                    mode=mode,
                    input_path=Path(path),
                    compression=compression,
                    force_compression=overlay.pick("force_compression", None, False),
                    ignore_patterns=overlay.pick("ignore_patterns", None, []),
                    filter_patterns=overlay.pick("filter_patterns", None, []),
                    no_compress_patterns=overlay.pick("no_compress_patterns", None, []),
                    num_workers=overlay.pick("workers", ns.workers),
                    keep_original=overlay.pick("keep_original", None, False),
                    skip_crc=overlay.pick("skip_crc", None, False),
                    self_exclusions=self_exclusions(),
                    logger=logger,
                )
                result = BatchScheduler(config).run()
            except BatchSetupError as e:
                logger.error(f"[error] {e}")
                exit_code = _FAILURE
                continue
            if not result.success:
                exit_code = _FAILURE
        return exit_code


class RelicDvplInfoCli(CliPlugin):
    def _create_parser(
        self, command_group: Optional[_SubParsersAction] = None
    ) -> ArgumentParser:
        parser: ArgumentParser
        desc = """Print the footer of a DVPL container and verify its checksum."""
        if command_group is None:
            parser = RelicArgParser("info", description=desc)
        else:
            parser = command_group.add_parser("info", description=desc)

        parser.add_argument(
            "src",
            type=get_file_type_validator(exists=True),
            help="DVPL file",
        )
        return parser

    def command(self, ns: Namespace, *, logger: Logger) -> Optional[int]:
        infile: str = ns.src
        logger.info(f"Reading Info `{infile}`")
        with open(infile, "rb") as handle:
            container = handle.read()
        try:
            footer = codec.read_footer(container)
        except DvplError as e:
            logger.warning(f"File is not a DVPL container: {e}")
            return _FAILURE

        crc_ok = crc32().check(container[: footer.stored_size], footer.crc32)
        logger.info(f"  Payload Type:      {footer.payload_type_label} ({footer.payload_type})")
        logger.info(f"  Uncompressed Size: {footer.uncompressed_size}")
        logger.info(f"  Stored Size:       {footer.stored_size}")
        logger.info(f"  Ratio:             {footer.compression_ratio:.2f}")
        logger.info(f"  CRC 32:            0x{footer.crc32:08X} ({'OK' if crc_ok else 'MISMATCH'})")
        return _SUCCESS if crc_ok else _FAILURE


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point of the ``dvpl`` script.

    Without arguments the interactive menu is shown; if the first argument is an
    existing path, every argument is handled as if dropped onto the program.
    """
    from relic.core import CLI

    args = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logger = logging.getLogger("relic.dvpl")

    if len(args) == 0:
        try:
            overlay = resolve_config(logger=logger)
        except ConfigError as e:
            logger.error(f"[error] {e}")
            return _FAILURE
        return run_interactive(
            Path.cwd(),
            logger=logger,
            overlay=overlay,
            self_exclusions=self_exclusions(),
        )
    if args[0] not in _COMMANDS and os.path.exists(args[0]):
        args = ["auto", *args]
    exit_code = CLI.run_with("relic", "dvpl", *args, logger=logger)
    return exit_code if isinstance(exit_code, int) else _SUCCESS
