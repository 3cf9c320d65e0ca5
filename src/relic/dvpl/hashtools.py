import zlib
from typing import Optional, Callable, Generic, TypeVar, Type, Union

from relic.dvpl.errors import HashMismatchError, Crc32MismatchError

_T = TypeVar("_T")

Hashable = Union[bytes, bytearray, memoryview]


class _Hasher(Generic[_T]):
    HASHER_NAME = "Hash"

    def __init__(
        self,
        hash_func: Callable[[Hashable], _T],
        error_cls: Type[HashMismatchError] = HashMismatchError,
    ):
        self._hasher = hash_func
        # Allows callers to catch different hash mismatches separately
        self._error = error_cls

    def __call__(self, buffer: Hashable) -> _T:
        return self.hash(buffer)

    def hash(self, buffer: Hashable) -> _T:
        return self._hasher(buffer)

    def check(self, buffer: Hashable, expected: _T) -> bool:
        return self.hash(buffer) == expected

    def validate(
        self, buffer: Hashable, expected: _T, *, name: Optional[str] = None
    ) -> None:
        result = self.hash(buffer)
        if result != expected:
            raise self._error(name or self.HASHER_NAME, result, expected)


class crc32(_Hasher[int]):
    """CRC-32/IEEE, as written into the DVPL footer."""

    HASHER_NAME = "CRC 32"

    def __init__(self, eigen: Optional[int] = None):
        func = self.__factory(eigen=eigen)
        super().__init__(func, error_cls=Crc32MismatchError)

    @staticmethod
    def __factory(eigen: Optional[int] = None) -> Callable[[Hashable], int]:
        def _crc32(buffer: Hashable) -> int:
            crc = eigen if eigen is not None else 0
            return zlib.crc32(buffer, crc) & 0xFFFFFFFF

        return _crc32


Hasher = _Hasher

__all__ = ["Hashable", "Hasher", "crc32"]
