"""In-memory binary values with a declared media type.

``Blob`` and ``File`` mirror the web platform objects of the same name
so handlers can return typed binary payloads without building a
``Response`` by hand.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field


def _join(parts: Iterable[str | bytes | bytearray | memoryview]) -> bytes:
    return b"".join(p.encode("utf-8") if isinstance(p, str) else bytes(p) for p in parts)


@dataclass(frozen=True, slots=True, init=False)
class Blob:
    """Immutable bytes with a media type."""

    data: bytes
    type: str = ""

    def __init__(
        self,
        parts: Iterable[str | bytes | bytearray | memoryview] | bytes = b"",
        type: str = "",  # noqa: A002
    ) -> None:
        data = bytes(parts) if isinstance(parts, (bytes, bytearray, memoryview)) else _join(parts)
        object.__setattr__(self, "data", data)
        object.__setattr__(self, "type", type.lower())

    @property
    def size(self) -> int:
        return len(self.data)

    def read(self) -> bytes:
        return self.data

    def text(self) -> str:
        return self.data.decode("utf-8")


@dataclass(frozen=True, slots=True, init=False)
class File(Blob):
    """A ``Blob`` with a file name, served with ``Content-Disposition``."""

    name: str = field(default="")

    def __init__(
        self,
        parts: Iterable[str | bytes | bytearray | memoryview] | bytes,
        name: str,
        type: str = "",  # noqa: A002
    ) -> None:
        Blob.__init__(self, parts, type)
        object.__setattr__(self, "name", name)
