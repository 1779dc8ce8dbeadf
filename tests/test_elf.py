import struct

import pytest

from profship.elf import ElfError, elf_build_id


def _note(name, note_type, desc):
    name_pad = name + b"\x00" * ((-len(name)) % 4)
    desc_pad = desc + b"\x00" * ((-len(desc)) % 4)
    return struct.pack("<III", len(name), len(desc), note_type) + name_pad + desc_pad


def _note_be(name, note_type, desc):
    name_pad = name + b"\x00" * ((-len(name)) % 4)
    desc_pad = desc + b"\x00" * ((-len(desc)) % 4)
    return struct.pack(">III", len(name), len(desc), note_type) + name_pad + desc_pad


def _elf(blob, bits=64, big_endian=False, sh_type=7):
    e = ">" if big_endian else "<"
    header = bytearray(64)
    header[:4] = b"\x7fELF"
    header[4] = 2 if bits == 64 else 1
    header[5] = 2 if big_endian else 1
    note_off = 64
    shoff = 64 + len(blob)
    if bits == 64:
        struct.pack_into(e + "Q", header, 40, shoff)
        struct.pack_into(e + "H", header, 58, 64)
        struct.pack_into(e + "H", header, 60, 1)
        sh = bytearray(64)
        struct.pack_into(e + "I", sh, 4, sh_type)
        struct.pack_into(e + "QQ", sh, 24, note_off, len(blob))
    else:
        struct.pack_into(e + "I", header, 32, shoff)
        struct.pack_into(e + "H", header, 46, 40)
        struct.pack_into(e + "H", header, 48, 1)
        sh = bytearray(40)
        struct.pack_into(e + "I", sh, 4, sh_type)
        struct.pack_into(e + "II", sh, 16, note_off, len(blob))
    return bytes(header) + blob + bytes(sh)


DESC = bytes(range(1, 21))


def test_build_id_64_little_endian(tmp_path):
    path = tmp_path / "bin64"
    path.write_bytes(_elf(_note(b"GNU\x00", 3, DESC)))
    assert elf_build_id(path) == DESC.hex()


def test_build_id_32_big_endian(tmp_path):
    path = tmp_path / "bin32"
    path.write_bytes(_elf(_note_be(b"GNU\x00", 3, DESC), bits=32, big_endian=True))
    assert elf_build_id(str(path)) == DESC.hex()


def test_other_notes_are_skipped(tmp_path):
    blob = _note(b"XYZ\x00", 1, b"\xaa" * 6) + _note(b"GNU\x00", 1, b"\xbb" * 4) + _note(b"GNU\x00", 3, DESC)
    path = tmp_path / "notes"
    path.write_bytes(_elf(blob))
    assert elf_build_id(path) == DESC.hex()


def test_no_build_id(tmp_path):
    path = tmp_path / "nobuild"
    path.write_bytes(_elf(_note(b"XYZ\x00", 3, DESC)))
    with pytest.raises(ElfError, match="no NT_GNU_BUILD_ID"):
        elf_build_id(path)


def test_non_note_section_ignored(tmp_path):
    path = tmp_path / "progbits"
    path.write_bytes(_elf(_note(b"GNU\x00", 3, DESC), sh_type=1))
    with pytest.raises(ElfError, match="no NT_GNU_BUILD_ID"):
        elf_build_id(path)


def test_bad_magic(tmp_path):
    path = tmp_path / "notelf"
    path.write_bytes(b"\x00" * 128)
    with pytest.raises(ElfError, match="malformed ELF binary"):
        elf_build_id(path)


def test_bad_byte_order(tmp_path):
    data = bytearray(_elf(_note(b"GNU\x00", 3, DESC)))
    data[5] = 9
    path = tmp_path / "badorder"
    path.write_bytes(bytes(data))
    with pytest.raises(ElfError, match="malformed"):
        elf_build_id(path)


def test_bad_class(tmp_path):
    data = bytearray(_elf(_note(b"GNU\x00", 3, DESC)))
    data[4] = 9
    path = tmp_path / "badclass"
    path.write_bytes(bytes(data))
    with pytest.raises(ElfError, match="malformed"):
        elf_build_id(path)


def test_bad_section_entry_size(tmp_path):
    data = bytearray(_elf(_note(b"GNU\x00", 3, DESC)))
    struct.pack_into("<H", data, 58, 40)
    path = tmp_path / "badsize"
    path.write_bytes(bytes(data))
    with pytest.raises(ElfError, match="malformed"):
        elf_build_id(path)


def test_oversized_desc(tmp_path):
    path = tmp_path / "bigdesc"
    path.write_bytes(_elf(_note(b"GNU\x00", 3, b"\x01" * 300)))
    with pytest.raises(ElfError, match="malformed"):
        elf_build_id(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        elf_build_id(tmp_path / "absent")


def test_truncated_file(tmp_path):
    path = tmp_path / "short"
    path.write_bytes(b"\x7fELF")
    with pytest.raises(EOFError):
        elf_build_id(path)