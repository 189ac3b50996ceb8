import re
import typing as t

from grpclib.metadata import _Metadata
from grpclib.metadata import _MetadataLike
from multidict import MultiDict


_Value = t.Union[str, bytes]

BINARY_SUFFIX = "-bin"

_KEY_RE = re.compile(r"^[0-9a-z_.\-]+$")
_VALUE_RE = re.compile(r"^[ !-~]+$")
_RESERVED_PREFIX = "grpc-"


def _validate(key: str, value: _Value) -> None:
    if not isinstance(key, str) or not _KEY_RE.fullmatch(key):
        raise ValueError("Invalid metadata key: {!r}".format(key))
    if key.startswith(_RESERVED_PREFIX):
        raise ValueError("Reserved metadata key: {!r}".format(key))
    if key.endswith(BINARY_SUFFIX):
        if not isinstance(value, bytes):
            raise TypeError(
                "Invalid metadata value type, bytes expected: {!r}".format(value)
            )
    else:
        if not isinstance(value, str):
            raise TypeError(
                "Invalid metadata value type, str expected: {!r}".format(value)
            )
        if not _VALUE_RE.fullmatch(value):
            raise ValueError("Invalid metadata value: {!r}".format(value))


class Metadata:
    """Ordered multi-map of call metadata.

    Every key maps to one or more values, kept in insertion order. Values of
    keys ending in ``-bin`` are ``bytes``, all other values are ``str``.
    Merging never overwrites: values from both sides are kept under their
    key.
    """

    def __init__(self, items: t.Optional[_MetadataLike] = None) -> None:
        self._items: MultiDict[_Value] = MultiDict()
        if items is not None:
            if isinstance(items, t.Mapping):
                items = list(items.items())
            for key, value in items:
                self.add(key, value)

    @classmethod
    def from_multidict(cls, metadata: t.Optional[_Metadata]) -> "Metadata":
        """Wraps metadata decoded by grpclib, skipping nothing."""
        result = cls()
        if metadata is not None:
            for key, value in metadata.items():
                result._items.add(key, value)
        return result

    def add(self, key: str, value: _Value) -> None:
        _validate(key, value)
        self._items.add(key, value)

    def set(self, key: str, value: _Value) -> None:
        """Replaces all values of ``key`` with a single value."""
        _validate(key, value)
        self._items[key] = value

    def get(self, key: str) -> t.List[_Value]:
        return self._items.getall(key, [])

    def remove(self, key: str) -> None:
        self._items.popall(key, None)

    def merge(self, other: "Metadata") -> None:
        self._items.extend(other._items)

    def copy(self) -> "Metadata":
        result = Metadata()
        result._items = self._items.copy()
        return result

    def items(self) -> t.List[t.Tuple[str, _Value]]:
        return list(self._items.items())

    def keys(self) -> t.List[str]:
        seen: t.Dict[str, None] = {}
        for key in self._items.keys():
            seen.setdefault(key, None)
        return list(seen)

    def to_multidict(self) -> _Metadata:
        return t.cast(_Metadata, self._items.copy())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> t.Iterator[t.Tuple[str, _Value]]:
        return iter(self._items.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return "Metadata({!r})".format(self.items())
