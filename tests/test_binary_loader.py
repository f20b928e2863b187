"""Tests for elflens.binary_loader — data classes and ELF parsing."""

import sys
from pathlib import Path

import pytest

from elflens.binary_loader import BinaryInfo, SectionInfo, load_binary_bytes, section_bytes
from elflens.errors import DecodeError

# -------------------------------------------------------------------------
# SectionInfo / BinaryInfo
# -------------------------------------------------------------------------


class TestSectionInfo:
    def test_creation(self) -> None:
        s = SectionInfo(name=".text", va=0x8000, size=0x200, file_offset=0x100, executable=True)
        assert s.name == ".text"
        assert s.va == 0x8000
        assert s.size == 0x200
        assert s.file_offset == 0x100
        assert s.executable

    def test_not_executable_by_default(self) -> None:
        assert not SectionInfo(name=".data", va=0, size=0, file_offset=0).executable


class TestBinaryInfo:
    def test_defaults(self) -> None:
        info = BinaryInfo(format="elf")
        assert info.arch is None
        assert info.sections == {}
        assert info.function_starts == frozenset()

    def test_executable_sections_in_address_order(self) -> None:
        info = BinaryInfo(
            format="elf",
            sections={
                ".fini": SectionInfo(".fini", 0x9000, 0x10, 0x1000, executable=True),
                ".data": SectionInfo(".data", 0x20000, 0x10, 0x2000),
                ".text": SectionInfo(".text", 0x8000, 0x100, 0x100, executable=True),
            },
        )
        assert [s.name for s in info.executable_sections()] == [".text", ".fini"]


# -------------------------------------------------------------------------
# section_bytes
# -------------------------------------------------------------------------


class TestSectionBytes:
    def test_basic_extraction(self) -> None:
        data = b"\x00" * 0x10 + b"\xab\xcd\xef\x12" + b"\x00" * 8
        info = BinaryInfo(format="elf", data=data)
        section = SectionInfo(".text", 0x8000, 4, 0x10, executable=True)
        assert section_bytes(info, section) == b"\xab\xcd\xef\x12"

    def test_clamps_to_image_end(self) -> None:
        info = BinaryInfo(format="elf", data=b"\x00" * 0x10 + b"\xaa" * 4)
        section = SectionInfo(".text", 0x8000, 0x100, 0x10, executable=True)
        assert section_bytes(info, section) == b"\xaa" * 4


# -------------------------------------------------------------------------
# load_binary_bytes
# -------------------------------------------------------------------------


def _host_elf() -> bytes | None:
    path = Path(sys.executable).resolve()
    try:
        data = path.read_bytes()
    except OSError:
        return None
    return data if data[:4] == b"\x7fELF" else None


class TestLoadBinaryBytes:
    def test_empty_input(self) -> None:
        with pytest.raises(DecodeError, match="empty"):
            load_binary_bytes(b"")

    def test_garbage_input(self) -> None:
        with pytest.raises(DecodeError):
            load_binary_bytes(b"\x00\x01\x02\x03 definitely not a binary " * 8)

    def test_host_interpreter(self) -> None:
        raw = _host_elf()
        if raw is None:
            pytest.skip("interpreter is not an ELF file")
        info = load_binary_bytes(raw)
        assert info.format == "elf"
        assert info.arch in {"x86_32", "x86_64", "arm32", "thumb", "arm64", None}
        assert info.executable_sections()
        assert info.data == raw
        text = info.sections.get(".text")
        if text is not None:
            assert text.executable
            assert len(section_bytes(info, text)) == text.size
