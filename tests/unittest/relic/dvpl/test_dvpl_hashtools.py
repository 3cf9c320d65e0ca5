from typing import Optional
from zlib import crc32 as calc_crc32

import pytest

from relic.dvpl.errors import Crc32MismatchError, HashMismatchError
from relic.dvpl.hashtools import crc32, Hasher

_DATA = [b"", b"DVPL", b"Hello World!", bytes(range(256)) * 4]


@pytest.mark.parametrize("buffer", _DATA)
@pytest.mark.parametrize("eigen", [None, 0, 0x12345678])
def test_crc32_hash(buffer: bytes, eigen: Optional[int]):
    expected = calc_crc32(buffer, eigen or 0) & 0xFFFFFFFF
    assert crc32(eigen).hash(buffer) == expected
    assert crc32(eigen)(memoryview(buffer)) == expected


@pytest.mark.parametrize("buffer", _DATA)
def test_crc32_check(buffer: bytes):
    hasher = crc32()
    expected = calc_crc32(buffer)
    assert hasher.check(buffer, expected)
    assert not hasher.check(buffer, expected ^ 0xFFFFFFFF)


@pytest.mark.parametrize("buffer", _DATA)
def test_crc32_validate(buffer: bytes):
    hasher = crc32()
    expected = calc_crc32(buffer)
    hasher.validate(buffer, expected)
    with pytest.raises(Crc32MismatchError):
        hasher.validate(buffer, expected ^ 0xFFFFFFFF, name="Payload CRC 32")


def test_crc32_known_value():
    assert crc32().hash(b"123456789") == 0xCBF43926


def test_generic_hasher_raises_hash_mismatch():
    hasher = Hasher(len)
    hasher.validate(b"abc", 3)
    with pytest.raises(HashMismatchError):
        hasher.validate(b"abc", 4)
