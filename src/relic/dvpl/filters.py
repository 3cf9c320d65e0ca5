"""Decides which files take part in a run, and how they are compressed.

Patterns are shell globs (``*``, ``?``, ``[abc]``, ``[!abc]``/``[^abc]``) matched
case-sensitively against a file's base name. A malformed pattern is reported
once and never matches; it does not stop the run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import translate
from typing import Optional, Iterable, Sequence, Tuple, FrozenSet

from relic.core.logmsg import BraceMessage

from relic.dvpl.definitions import DVPL_SUFFIX, CompressionChoice, ProcessMode
from relic.dvpl.errors import InvalidPatternError

_module_logger = logging.getLogger(__name__)


def has_suffix(name: str) -> bool:
    return name.endswith(DVPL_SUFFIX)


def strip_suffix(name: str) -> str:
    """Remove the container suffix exactly once."""
    if has_suffix(name):
        return name[: -len(DVPL_SUFFIX)]
    return name


def validate_pattern(pattern: str) -> None:
    """Raise InvalidPatternError if the glob is malformed."""
    if len(pattern) == 0:
        raise InvalidPatternError(pattern, "pattern is empty")
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        i += 1
        if c == "\\" and i == n:
            raise InvalidPatternError(pattern, "trailing escape")
        if c == "[":
            j = i
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                raise InvalidPatternError(pattern, "unterminated character class")
            i = j + 1


def _normalize(pattern: str) -> str:
    # fnmatch only understands '!' as class negation
    return re.sub(r"\[\^", "[!", pattern)


@dataclass(frozen=True, slots=True)
class GlobPattern:
    pattern: str
    regex: Optional[re.Pattern[str]]

    @property
    def valid(self) -> bool:
        return self.regex is not None

    def match(self, name: str) -> bool:
        return self.regex is not None and self.regex.match(name) is not None

    @classmethod
    def compile(
        cls, pattern: str, logger: Optional[logging.Logger] = None
    ) -> GlobPattern:
        try:
            validate_pattern(pattern)
        except InvalidPatternError as e:
            (logger or _module_logger).warning(
                BraceMessage("[warning] {0}; the pattern will never match", e)
            )
            return cls(pattern, None)
        return cls(pattern, re.compile(translate(_normalize(pattern))))


def compile_patterns(
    patterns: Optional[Iterable[str]], logger: Optional[logging.Logger] = None
) -> Tuple[GlobPattern, ...]:
    if not patterns:
        return ()
    return tuple(GlobPattern.compile(p, logger) for p in patterns)


def matches_any(name: str, patterns: Sequence[GlobPattern]) -> bool:
    return any(p.match(name) for p in patterns)


class FilterReason(str, Enum):
    ACCEPTED = "accepted"
    SELF_EXCLUDED = "Excluding file"
    ALREADY_PACKED = "Skip .dvpl file"
    NOT_PACKED = "Skip file"
    IGNORED = "Ignoring file"
    NOT_SELECTED = "Filtered out"


@dataclass(slots=True)
class FileFilter:
    """The per-run filter configuration.

    Args:
        ignore: Files matching any of these globs are skipped.
        include: If not empty, only files matching one of these globs are processed.
        no_compress: Files matching any of these globs are packed without compression.
        self_exclusions: Names never packed; the running program and its config file.
    """

    ignore: Sequence[str] = ()
    include: Sequence[str] = ()
    no_compress: Sequence[str] = ()
    self_exclusions: FrozenSet[str] = frozenset()
    logger: Optional[logging.Logger] = None
    _ignore: Tuple[GlobPattern, ...] = field(init=False, repr=False)
    _include: Tuple[GlobPattern, ...] = field(init=False, repr=False)
    _no_compress: Tuple[GlobPattern, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._ignore = compile_patterns(self.ignore, self.logger)
        self._include = compile_patterns(self.include, self.logger)
        self._no_compress = compile_patterns(self.no_compress, self.logger)

    def decide(self, name: str, mode: ProcessMode) -> FilterReason:
        """Evaluate the filter rules in order; the first rule to match decides."""
        if mode == ProcessMode.PACK:
            if name in self.self_exclusions:
                return FilterReason.SELF_EXCLUDED
            if has_suffix(name):
                return FilterReason.ALREADY_PACKED
            candidate = name
        else:
            if not has_suffix(name):
                return FilterReason.NOT_PACKED
            candidate = strip_suffix(name)

        if matches_any(candidate, self._ignore):
            return FilterReason.IGNORED
        if len(self._include) > 0 and not matches_any(candidate, self._include):
            return FilterReason.NOT_SELECTED
        return FilterReason.ACCEPTED

    def should_process(self, name: str, mode: ProcessMode) -> bool:
        return self.decide(name, mode) == FilterReason.ACCEPTED

    def effective_compression(
        self, name: str, requested: CompressionChoice
    ) -> CompressionChoice:
        if matches_any(name, self._no_compress):
            return requested.without_compression()
        return requested


def should_process(
    name: str,
    mode: ProcessMode,
    ignore_patterns: Sequence[str] = (),
    filter_patterns: Sequence[str] = (),
    self_exclusions: Iterable[str] = (),
) -> bool:
    return FileFilter(
        ignore=ignore_patterns,
        include=filter_patterns,
        self_exclusions=frozenset(self_exclusions),
    ).should_process(name, mode)


def effective_compression(
    name: str, requested: CompressionChoice, no_compress_patterns: Sequence[str] = ()
) -> CompressionChoice:
    return FileFilter(no_compress=no_compress_patterns).effective_compression(
        name, requested
    )


__all__ = [
    "has_suffix",
    "strip_suffix",
    "validate_pattern",
    "GlobPattern",
    "compile_patterns",
    "matches_any",
    "FilterReason",
    "FileFilter",
    "should_process",
    "effective_compression",
]
