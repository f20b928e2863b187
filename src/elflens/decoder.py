"""Instruction decoders feeding the disassembly pipeline.

A decoder turns the raw bytes of a binary into a flat list of
``RawInstruction`` records, each attributed to a source location.  The
pipeline only depends on the ``Decoder`` protocol; ``DwarfDecoder`` is the
stock implementation for ELF images:

- LIEF parses the image (architecture, executable sections, function symbols)
- pyelftools reads the DWARF ``.debug_line`` programs
- capstone decodes the instructions and their branch targets

Usage::

    from elflens.decoder import DwarfDecoder

    instructions = DwarfDecoder(arch="auto").analyze(Path("fw.elf").read_bytes())
"""

from __future__ import annotations

import io
from bisect import bisect_right
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Protocol

from elftools.common.exceptions import DWARFError, ELFError
from elftools.elf.elffile import ELFFile

from elflens.binary_loader import load_binary_bytes, section_bytes
from elflens.config import capstone_constants
from elflens.errors import DecodeError
from elflens.records import EMPTY_LOCATION, RawInstruction, SourceLocation


class Decoder(Protocol):
    """Anything that can turn binary bytes into attributed instructions."""

    def analyze(self, raw: bytes) -> list[RawInstruction]:
        """Decode *raw*, raising ``DecodeError`` when it cannot."""
        ...


# ---------------------------------------------------------------------------
# DWARF line table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineTable:
    """Address → source location map built from DWARF line programs.

    ``locations[i]`` applies from ``addresses[i]`` up to the next address.
    A ``None`` location marks the end of a sequence: addresses in that gap
    have no attribution.
    """

    addresses: tuple[int, ...] = ()
    locations: tuple[SourceLocation | None, ...] = ()
    sequence_starts: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[tuple[int, SourceLocation | None]],
        sequence_starts: Iterable[int] = (),
    ) -> LineTable:
        """Build a table from ``(address, location)`` rows in program order.

        The first row at an address wins, except that a real location always
        replaces an end-of-sequence marker at the same address.
        """
        by_address: dict[int, SourceLocation | None] = {}
        for address, loc in rows:
            if address not in by_address or (by_address[address] is None and loc is not None):
                by_address[address] = loc
        ordered = sorted(by_address.items())
        return cls(
            addresses=tuple(a for a, _ in ordered),
            locations=tuple(loc for _, loc in ordered),
            sequence_starts=frozenset(sequence_starts),
        )

    def lookup(self, address: int) -> SourceLocation:
        """Return the location covering *address*, or an empty location."""
        i = bisect_right(self.addresses, address) - 1
        if i < 0:
            return EMPTY_LOCATION
        return self.locations[i] or EMPTY_LOCATION


def _text(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return "" if value is None else str(value)


def _is_absolute(path: str) -> bool:
    return path.startswith(("/", "\\")) or (len(path) > 1 and path[1] == ":")


def _join(base: str, rel: str) -> str:
    if not base or not rel or _is_absolute(rel):
        return rel or base
    return f"{base.rstrip('/')}/{rel}"


def _split_file(full: str) -> tuple[str, str]:
    """Split a source path into ``(directory, filename)`` on either separator."""
    cut = max(full.rfind("/"), full.rfind("\\"))
    if cut < 0:
        return "", full
    return full[:cut], full[cut + 1 :]


def _file_resolver(program, comp_dir: str):
    """Return a cached ``file index -> (path, filename)`` function for one CU."""
    header = program.header
    version = header["version"]
    files = header["file_entry"]
    dirs = [_text(d) for d in header["include_directory"]]
    cache: dict[int, tuple[str, str]] = {}

    def resolve(index: int) -> tuple[str, str]:
        if index in cache:
            return cache[index]
        # DWARF 5 indexes files and directories from 0, earlier versions from 1
        pos = index if version >= 5 else index - 1
        if not 0 <= pos < len(files):
            cache[index] = ("", "")
            return cache[index]
        entry = files[pos]
        dir_index = entry.dir_index
        if version >= 5:
            directory = dirs[dir_index] if dir_index < len(dirs) else ""
        else:
            directory = comp_dir if dir_index == 0 else dirs[dir_index - 1]
        full = _join(_join(comp_dir, directory), _text(entry.name))
        cache[index] = _split_file(full)
        return cache[index]

    return resolve


def read_line_table(raw: bytes) -> LineTable:
    """Read every DWARF line program of an ELF image into one table."""
    elf = ELFFile(io.BytesIO(raw))
    if not elf.has_dwarf_info():
        return LineTable()

    dwarf = elf.get_dwarf_info()
    rows: list[tuple[int, SourceLocation | None]] = []
    starts: set[int] = set()
    for cu in dwarf.iter_CUs():
        program = dwarf.line_program_for_CU(cu)
        if program is None:
            continue
        comp_dir_attr = cu.get_top_DIE().attributes.get("DW_AT_comp_dir")
        comp_dir = _text(comp_dir_attr.value) if comp_dir_attr else ""
        resolve = _file_resolver(program, comp_dir)

        new_sequence = True
        for entry in program.get_entries():
            state = entry.state
            if state is None:
                continue
            if state.end_sequence:
                rows.append((state.address, None))
                new_sequence = True
                continue
            path, filename = resolve(state.file)
            rows.append(
                (
                    state.address,
                    SourceLocation(
                        filename=filename, path=path, line=state.line, column=state.column
                    ),
                )
            )
            if new_sequence:
                starts.add(state.address)
                new_sequence = False

    return LineTable.from_rows(rows, starts)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


def _branch_target(insn) -> int | None:
    """Immediate destination of a jump or call, if it has one."""
    from capstone import CS_GRP_CALL, CS_GRP_JUMP, CS_OP_IMM

    if not (insn.group(CS_GRP_JUMP) or insn.group(CS_GRP_CALL)):
        return None
    target = None
    for operand in insn.operands:
        if operand.type == CS_OP_IMM:
            target = operand.imm
    return target


class DwarfDecoder:
    """Decode an ELF image with capstone and attribute it using DWARF line info.

    ``arch`` is an architecture preset name or ``"auto"`` to take it from the
    ELF header.  A location is flagged as a function start when its address
    opens a line-table sequence or carries a function symbol.
    """

    def __init__(self, arch: str = "auto") -> None:
        self.arch = arch

    def analyze(self, raw: bytes) -> list[RawInstruction]:
        info = load_binary_bytes(raw)
        arch = info.arch if self.arch == "auto" else self.arch
        if arch is None:
            raise DecodeError("Cannot detect the architecture; set [disassembly] arch in elflens.toml")

        try:
            lines = read_line_table(raw)
        except (ELFError, DWARFError) as exc:
            raise DecodeError(f"Malformed DWARF line info: {exc}") from exc
        starts = lines.sequence_starts | info.function_starts

        from capstone import Cs

        md = Cs(*capstone_constants(arch))
        md.detail = True

        def attribute(address: int) -> SourceLocation:
            loc = lines.lookup(address)
            if loc.has_source and address in starts:
                return replace(loc, is_function_start=True)
            return loc

        instructions: list[RawInstruction] = []
        for section in info.executable_sections():
            for insn in md.disasm(section_bytes(info, section), section.va):
                target = _branch_target(insn)
                instructions.append(
                    RawInstruction(
                        address=insn.address,
                        opcode_text=f"{insn.mnemonic} {insn.op_str}".strip(),
                        branch_target_address=target or 0,
                        branch_target_location=(
                            attribute(target) if target is not None else EMPTY_LOCATION
                        ),
                        location=attribute(insn.address),
                    )
                )
        return instructions
