import logging

import pytest

from relic.dvpl.definitions import CompressionChoice, PayloadType, ProcessMode
from relic.dvpl.errors import InvalidPatternError
from relic.dvpl.filters import (
    FileFilter,
    FilterReason,
    GlobPattern,
    effective_compression,
    has_suffix,
    should_process,
    strip_suffix,
    validate_pattern,
)


@pytest.mark.parametrize(
    ["name", "expected"],
    [
        ("a.txt.dvpl", "a.txt"),
        ("a.dvpl.dvpl", "a.dvpl"),
        ("a.txt", "a.txt"),
        (".dvpl", ""),
        ("a.DVPL", "a.DVPL"),
    ],
)
def test_strip_suffix(name: str, expected: str):
    assert strip_suffix(name) == expected


def test_has_suffix_is_case_sensitive():
    assert has_suffix("a.dvpl")
    assert not has_suffix("a.DVPL")


@pytest.mark.parametrize(
    ["pattern", "name", "expected"],
    [
        ("*.txt", "a.txt", True),
        ("*.txt", "a.TXT", False),
        ("?.txt", "a.txt", True),
        ("?.txt", "ab.txt", False),
        ("[ab].txt", "b.txt", True),
        ("[!ab].txt", "b.txt", False),
        ("[^ab].txt", "c.txt", True),
        ("[^ab].txt", "a.txt", False),
        ("*", "anything", True),
    ],
)
def test_glob_match(pattern: str, name: str, expected: bool):
    assert GlobPattern.compile(pattern).match(name) == expected


@pytest.mark.parametrize("pattern", ["", "[abc", "abc\\", "*.[!"])
def test_invalid_pattern(pattern: str):
    with pytest.raises(InvalidPatternError):
        validate_pattern(pattern)


def test_invalid_pattern_never_matches(caplog):
    with caplog.at_level(logging.WARNING):
        glob = GlobPattern.compile("[abc")
    assert not glob.valid
    assert not glob.match("[abc")
    assert not glob.match("a")
    assert "[abc" in caplog.text


def test_invalid_pattern_does_not_break_others():
    f = FileFilter(ignore=["[abc", "*.exe"])
    assert f.decide("b.exe", ProcessMode.PACK) == FilterReason.IGNORED
    assert f.decide("b.txt", ProcessMode.PACK) == FilterReason.ACCEPTED


def test_filter_composition():
    names = ["a.txt", "b.exe", "c.txt.dvpl"]
    kwargs = dict(ignore_patterns=["*.exe"], filter_patterns=["*.txt"])
    packed = [n for n in names if should_process(n, ProcessMode.PACK, **kwargs)]
    unpacked = [n for n in names if should_process(n, ProcessMode.UNPACK, **kwargs)]
    assert packed == ["a.txt"]
    assert unpacked == ["c.txt.dvpl"]


@pytest.mark.parametrize(
    ["name", "mode", "reason"],
    [
        ("dvpl.exe", ProcessMode.PACK, FilterReason.SELF_EXCLUDED),
        (".dvpl.yml", ProcessMode.PACK, FilterReason.SELF_EXCLUDED),
        ("a.dvpl", ProcessMode.PACK, FilterReason.ALREADY_PACKED),
        ("a.txt", ProcessMode.UNPACK, FilterReason.NOT_PACKED),
        ("a.log", ProcessMode.PACK, FilterReason.IGNORED),
        ("a.log.dvpl", ProcessMode.UNPACK, FilterReason.IGNORED),
        ("a.bin", ProcessMode.PACK, FilterReason.NOT_SELECTED),
        ("a.txt", ProcessMode.PACK, FilterReason.ACCEPTED),
        ("a.txt.dvpl", ProcessMode.UNPACK, FilterReason.ACCEPTED),
    ],
)
def test_filter_decide(name: str, mode: ProcessMode, reason: FilterReason):
    f = FileFilter(
        ignore=["*.log"],
        include=["*.txt", "*.log"],
        self_exclusions=frozenset({"dvpl.exe", ".dvpl.yml"}),
    )
    assert f.decide(name, mode) == reason


def test_self_exclusion_only_when_packing():
    f = FileFilter(self_exclusions=frozenset({"tool.dvpl"}))
    assert f.decide("tool.dvpl", ProcessMode.UNPACK) == FilterReason.ACCEPTED


def test_no_filter_accepts_everything():
    assert should_process("anything.bin", ProcessMode.PACK)
    assert should_process("anything.bin.dvpl", ProcessMode.UNPACK)


@pytest.mark.parametrize(
    ["name", "expected"],
    [("a.webp", PayloadType.NONE), ("a.txt", PayloadType.LZ4)],
)
def test_effective_compression(name: str, expected: PayloadType):
    requested = CompressionChoice(PayloadType.LZ4, forced=True)
    result = effective_compression(name, requested, ["*.webp", "*.ogg"])
    assert result.payload_type == expected
    assert result.forced
