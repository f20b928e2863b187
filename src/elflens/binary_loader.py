"""ELF image loader for elflens.

Parses an in-memory ELF image with LIEF and exposes what the decoder needs:
the architecture, the executable sections and the addresses of function
symbols.  Input arrives as bytes (the caller already read the file), so no
path is involved.

Usage::

    from elflens.binary_loader import load_binary_bytes, section_bytes

    info = load_binary_bytes(raw)
    for section in info.executable_sections():
        code = section_bytes(info, section)
"""

from dataclasses import dataclass, field

import lief

from elflens.errors import DecodeError

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class SectionInfo:
    """Metadata for a single section in a binary."""

    name: str
    va: int  # virtual address (absolute)
    size: int  # size in memory
    file_offset: int  # offset in the image
    executable: bool = False


@dataclass
class BinaryInfo:
    """Layout of a parsed ELF image."""

    format: str
    arch: str | None = None  # "x86_32", "x86_64", "arm32", "thumb", "arm64"
    sections: dict[str, SectionInfo] = field(default_factory=dict)
    function_starts: frozenset[int] = frozenset()

    # Raw image bytes
    data: bytes = field(default=b"", repr=False)

    def executable_sections(self) -> list[SectionInfo]:
        """Executable sections in address order."""
        return sorted((s for s in self.sections.values() if s.executable), key=lambda s: s.va)


# ---------------------------------------------------------------------------
# Architecture detection
# ---------------------------------------------------------------------------

_ELF_MACHINE_TO_ARCH: dict[lief.ELF.ARCH, str] = {
    lief.ELF.ARCH.I386: "x86_32",
    lief.ELF.ARCH.X86_64: "x86_64",
    lief.ELF.ARCH.ARM: "arm32",
    lief.ELF.ARCH.AARCH64: "arm64",
}


def _function_symbols(binary: lief.ELF.Binary) -> list[int]:
    """Values of all defined function symbols (Thumb bit still set)."""
    values: list[int] = []
    for sym in binary.symbols:
        if sym.type == lief.ELF.Symbol.TYPE.FUNC and sym.value:
            values.append(sym.value)
    return values


def _section_name(raw_name: object) -> str:
    if isinstance(raw_name, bytes):
        return raw_name.decode("utf-8", errors="replace")
    return str(raw_name)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_binary_bytes(raw: bytes) -> BinaryInfo:
    """Parse an ELF image held in memory.

    Raises:
        DecodeError: If the bytes are empty, cannot be parsed, or are not ELF.
    """
    if not raw:
        raise DecodeError("Input is empty")

    binary = lief.parse(raw)
    if binary is None:
        raise DecodeError("Failed to parse binary (unknown format)")
    if not isinstance(binary, lief.ELF.Binary):
        raise DecodeError(f"Unsupported binary format: {type(binary).__name__} (expected ELF)")

    arch = _ELF_MACHINE_TO_ARCH.get(binary.header.machine_type)
    symbols = _function_symbols(binary)

    # ARM function symbols carry the Thumb bit in their low bit
    if arch == "arm32":
        if any(value & 1 for value in symbols):
            arch = "thumb"
        symbols = [value & ~1 for value in symbols]

    sections: dict[str, SectionInfo] = {}
    for section in binary.sections:
        name = _section_name(section.name)
        if not name:
            continue
        sections[name] = SectionInfo(
            name=name,
            va=section.virtual_address,
            size=section.size,
            file_offset=section.offset,
            executable=section.has(lief.ELF.Section.FLAGS.EXECINSTR),
        )

    return BinaryInfo(
        format="elf",
        arch=arch,
        sections=sections,
        function_starts=frozenset(symbols),
        data=bytes(raw),
    )


def section_bytes(info: BinaryInfo, section: SectionInfo) -> bytes:
    """Return the bytes of *section*, clamped to the end of the image."""
    end = min(section.file_offset + section.size, len(info.data))
    return info.data[section.file_offset : end]
