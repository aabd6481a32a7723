"""Store addresses of the form /orbitdb/<manifest cid>/<name>."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass

from .cid import Cid, CidError, decode

_PREFIX = "/orbitdb/"


class InvalidAddressError(ValueError):
    """Raised when a string is not a valid store address."""


def _join(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


def _split(name: str) -> list[str]:
    if name.startswith(_PREFIX):
        name = name[len(_PREFIX):]
    return name.split("/")


@dataclass(frozen=True)
class Address:
    """A store address: the manifest root and the store path."""

    root: Cid
    path: str

    def __str__(self) -> str:
        return _join("/orbitdb", self.root.encode(), self.path)


def is_valid(name: str) -> bool:
    """Tell whether the given name is a store address."""
    try:
        decode(_split(name)[0])
    except CidError:
        return False
    return True


def parse(path: str) -> Address:
    """Parse a store address, raising InvalidAddressError if it is not one."""
    parts = _split(path)
    try:
        root = decode(parts[0])
    except CidError as err:
        raise InvalidAddressError(f"not a valid OrbitDB address: {path}") from err
    return Address(root=root, path="/".join(parts[1:]))