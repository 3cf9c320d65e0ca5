"""The optional ``.dvpl.yml`` overlay.

Example::

    compress: true
    inputPath: ./Data
    outputPath: ./Packed
    keepOriginal: false
    compression: lz4hc        # or 0 / 1 / 2
    ignorePatterns: ["*.exe", "*.dll"]
    filterPatterns: []
    noCompressPatterns: "*.webp,*.ogg"
    workers: 8
    forceCompression: false
    skipCrc: false

Values given on the command line always win over the file.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from relic.dvpl.definitions import CONFIG_FILENAME, PayloadType
from relic.dvpl.errors import ConfigError

_module_logger = logging.getLogger(__name__)

# yaml key -> ConfigOverlay attribute
_KEYS: Dict[str, str] = {
    "compress": "compress",
    "compressFlag": "compress",
    "decompress": "decompress",
    "decompressFlag": "decompress",
    "inputPath": "input_path",
    "outputPath": "output_path",
    "keepOriginal": "keep_original",
    "compression": "compression",
    "ignorePatterns": "ignore_patterns",
    "filterPatterns": "filter_patterns",
    "noCompressPatterns": "no_compress_patterns",
    "workers": "workers",
    "forceCompression": "force_compression",
    "skipCrc": "skip_crc",
}


@dataclass(slots=True)
class ConfigOverlay:
    """Values read from a config file; None means 'not set'."""

    compress: Optional[bool] = None
    decompress: Optional[bool] = None
    input_path: Optional[Path] = None
    output_path: Optional[Path] = None
    keep_original: Optional[bool] = None
    compression: Optional[PayloadType] = None
    ignore_patterns: Optional[List[str]] = None
    filter_patterns: Optional[List[str]] = None
    no_compress_patterns: Optional[List[str]] = None
    workers: Optional[int] = None
    force_compression: Optional[bool] = None
    skip_crc: Optional[bool] = None
    source: Optional[Path] = None

    def pick(self, name: str, explicit: Any, default: Any = None) -> Any:
        """Resolve a setting; explicit (command line) > config file > default."""
        if explicit is not None:
            return explicit
        value = getattr(self, name)
        if value is not None:
            return value
        return default


def split_patterns(value: Union[str, Iterable[str], None]) -> List[str]:
    """Accept globs as a list or as a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    else:
        items = value
    return [str(item).strip() for item in items if str(item).strip()]


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"`{key}` must be true or false, got `{value!r}`")
    return value


def _parse_value(key: str, attr: str, value: Any) -> Any:
    if value is None:
        return None
    if attr in ("input_path", "output_path"):
        if not isinstance(value, str):
            raise ConfigError(f"`{key}` must be a path, got `{value!r}`")
        return Path(value) if value else None
    if attr == "compression":
        try:
            return PayloadType.parse(value)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"`{key}` is not a payload type: `{value!r}`") from e
    if attr == "workers":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"`{key}` must be an integer, got `{value!r}`")
        return value
    if attr.endswith("_patterns"):
        if not isinstance(value, (str, list)):
            raise ConfigError(f"`{key}` must be a list of globs, got `{value!r}`")
        return split_patterns(value)
    return _as_bool(key, value)


def parse_config(
    data: Any,
    source: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> ConfigOverlay:
    logger = logger or _module_logger
    if data is None:
        return ConfigOverlay(source=source)
    if not isinstance(data, dict):
        raise ConfigError(f"Config `{source}` must be a mapping")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        attr = _KEYS.get(key)
        if attr is None:
            logger.warning(f"[warning] Unknown config key `{key}` in `{source}`")
            continue
        values[attr] = _parse_value(key, attr, value)
    return ConfigOverlay(source=source, **values)


def load_config(
    path: Union[str, Path], logger: Optional[logging.Logger] = None
) -> ConfigOverlay:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigError(f"Error reading config file `{path}`: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing config file `{path}`: {e}") from e
    return parse_config(data, path, logger)


def default_search_dirs() -> List[Path]:
    dirs = [Path.cwd()]
    if sys.argv and sys.argv[0]:
        exe_dir = Path(sys.argv[0]).resolve().parent
        if exe_dir not in dirs:
            dirs.append(exe_dir)
    return dirs


def find_config(search_dirs: Optional[Sequence[Path]] = None) -> Optional[Path]:
    for directory in search_dirs if search_dirs is not None else default_search_dirs():
        candidate = Path(directory) / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def resolve_config(
    explicit: Optional[Union[str, Path]] = None,
    search_dirs: Optional[Sequence[Path]] = None,
    logger: Optional[logging.Logger] = None,
) -> ConfigOverlay:
    """Load the explicit config file, or the first ``.dvpl.yml`` found.

    Returns an empty overlay when no file is found.
    """
    logger = logger or _module_logger
    if explicit is not None:
        return load_config(explicit, logger)
    path = find_config(search_dirs)
    if path is None:
        logger.debug(f"[debug] Config file not found: {CONFIG_FILENAME}")
        return ConfigOverlay()
    logger.debug(f"[debug] Config file found: {path}")
    return load_config(path, logger)


CONFIG_KEYS = tuple(_KEYS)

__all__ = [
    "ConfigOverlay",
    "CONFIG_KEYS",
    "split_patterns",
    "parse_config",
    "load_config",
    "find_config",
    "resolve_config",
]
