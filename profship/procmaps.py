"""Executable memory mappings of the current process."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterator, Optional

from .elf import elf_build_id

_HEX = re.compile(rb"[0-9a-fA-F]+")
_DELETED = " (deleted)"
_UINT64_MAX = (1 << 64) - 1


@dataclass
class MemMap:
    """One mapping of a binary (or shared library) into memory."""

    start: int
    end: int
    offset: int
    file: str
    build_id: str
    funcs: int = 0
    fake: bool = False


def _parse_hex(field: bytes) -> Optional[int]:
    if not _HEX.fullmatch(field):
        return None
    value = int(field, 16)
    return value if value <= _UINT64_MAX else None


def _build_id(file: str) -> str:
    try:
        return elf_build_id(file)
    except (OSError, ValueError, EOFError):
        return ""


def parse_proc_self_maps(data: bytes) -> Iterator[MemMap]:
    """Yield the executable mappings listed in ``/proc/<pid>/maps`` content."""
    for raw_line in data.split(b"\n"):
        rest: Optional[bytes] = raw_line

        def take() -> bytes:
            nonlocal rest
            if rest is None:
                return b""
            field, sep, after = rest.partition(b" ")
            if not sep:
                rest = None
                return field
            rest = after.lstrip(b" ") or None
            return field

        lo_str, dash, hi_str = take().partition(b"-")
        if not dash:
            continue
        lo = _parse_hex(lo_str)
        hi = _parse_hex(hi_str)
        if lo is None or hi is None:
            continue
        perm = take()
        if len(perm) < 4 or perm[2:3] != b"x":
            continue
        offset = _parse_hex(take())
        if offset is None:
            continue
        take()  # dev
        inode = take()
        if rest is None:
            continue
        file = os.fsdecode(rest)
        if file.endswith(_DELETED):
            file = file[: -len(_DELETED)]
        if inode == b"0" and file == "":
            # Huge-page text mappings list unpopulated memory as inode 0.
            continue
        yield MemMap(start=lo, end=hi, offset=offset, file=file, build_id=_build_id(file))


def read_mapping(path: str | os.PathLike = "/proc/self/maps") -> list[MemMap]:
    """Return the executable mappings, or one fake entry if none are found."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError:
        data = b""
    mappings = list(parse_proc_self_maps(data))
    if not mappings:
        mappings = [MemMap(start=0, end=0, offset=0, file="", build_id="", fake=True)]
    return mappings