"""Reading the GNU build ID from an ELF binary."""

from __future__ import annotations

import os
import struct
from typing import BinaryIO

_SHT_NOTE = 7
_NT_GNU_BUILD_ID = 3
_BUF_SIZE = 256


class ElfError(ValueError):
    """The file is not a well-formed ELF binary or has no build ID."""


_BAD_ELF = "malformed ELF binary"
_NO_BUILD_ID = "no NT_GNU_BUILD_ID found in ELF binary"


def _read_at(f: BinaryIO, size: int, offset: int) -> bytes:
    f.seek(offset)
    data = f.read(size)
    if len(data) < size:
        raise EOFError(f"short read at offset {offset}")
    return data


def _align4(n: int) -> int:
    return (n + 3) & ~3


def elf_build_id(path: str | os.PathLike) -> str:
    """Return the GNU build ID of the ELF file at ``path`` as lower-case hex.

    Raises ElfError for a malformed file or one without a build ID note,
    OSError if the file cannot be opened and EOFError on a truncated file.
    """
    with open(path, "rb") as f:
        header = _read_at(f, 64, 0)
        if header[:4] != b"\x7fELF":
            raise ElfError(_BAD_ELF)

        if header[5] == 1:
            order = "<"
        elif header[5] == 2:
            order = ">"
        else:
            raise ElfError(_BAD_ELF)

        def u16(buf: bytes, pos: int) -> int:
            return struct.unpack_from(order + "H", buf, pos)[0]

        def u32(buf: bytes, pos: int) -> int:
            return struct.unpack_from(order + "I", buf, pos)[0]

        def u64(buf: bytes, pos: int) -> int:
            return struct.unpack_from(order + "Q", buf, pos)[0]

        if header[4] == 1:
            shoff = u32(header, 32)
            shentsize = u16(header, 46)
            if shentsize != 40:
                raise ElfError(_BAD_ELF)
            shnum = u16(header, 48)
        elif header[4] == 2:
            shoff = u64(header, 40)
            shentsize = u16(header, 58)
            if shentsize != 64:
                raise ElfError(_BAD_ELF)
            shnum = u16(header, 60)
        else:
            raise ElfError(_BAD_ELF)

        for i in range(shnum):
            section = _read_at(f, shentsize, shoff + i * shentsize)
            if u32(section, 4) != _SHT_NOTE:
                continue
            if shentsize == 40:
                off = u32(section, 16)
                size = u32(section, 20)
            else:
                off = u64(section, 24)
                size = u64(section, 32)
            end = off + size
            while off < end:
                note = _read_at(f, 16, off)
                name_size = u32(note, 0)
                desc_size = u32(note, 4)
                note_type = u32(note, 8)
                desc_off = off + 12 + _align4(name_size)
                off = desc_off + _align4(desc_size)
                if name_size != 4 or note_type != _NT_GNU_BUILD_ID or note[12:16] != b"GNU\x00":
                    continue
                if desc_size > _BUF_SIZE:
                    raise ElfError(_BAD_ELF)
                return _read_at(f, desc_size, desc_off).hex()
    raise ElfError(_NO_BUILD_ID)