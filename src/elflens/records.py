"""Record model for a disassembled binary annotated with source locations.

A ``DisassemblyResult`` is the ordered listing produced by one disassembly
job.  Every record carries a ``sequence_index`` equal to its position in
the listing; that number is also the line number of the record in the
rendered ``.asm`` text, so it must never change once assigned.

Usage::

    from elflens.records import build_result

    result = build_result("firmware.elf", decoder.analyze(raw))
    for record in result.records:
        print(record.sequence_index, record.opcode_text)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceLocation:
    """Attribution of an address to a position in a source file.

    An empty ``filename`` means "no attribution" (e.g. a branch into a PLT
    stub or an address the line table does not cover).
    """

    filename: str = ""
    path: str = ""
    line: int = 0
    column: int = 0
    is_function_start: bool = False

    @property
    def has_source(self) -> bool:
        return bool(self.filename)

    @property
    def sort_key(self) -> str:
        """Case-folded ``path/filename`` with forward slashes, for comparison only."""
        return normalize_source_key(self.path, self.filename)


EMPTY_LOCATION = SourceLocation()


def normalize_source_key(path: str, filename: str) -> str:
    """Build the comparison key used to group records by source file."""
    return f"{path}/{filename}".replace("\\", "/").upper()


@dataclass(frozen=True)
class RawInstruction:
    """One decoded instruction as delivered by a decoder, before numbering."""

    address: int
    opcode_text: str
    branch_target_address: int = 0
    branch_target_location: SourceLocation = EMPTY_LOCATION
    location: SourceLocation = EMPTY_LOCATION


@dataclass(frozen=True)
class InstructionRecord:
    """A disassembled instruction with its source attribution and listing position."""

    address: int
    opcode_text: str
    branch_target_address: int
    branch_target_location: SourceLocation
    location: SourceLocation
    sequence_index: int

    @property
    def is_separator(self) -> bool:
        return self.address == 0


@dataclass(frozen=True)
class DisassemblyResult:
    """The complete ordered listing of one disassembly job."""

    source_name: str
    records: tuple[InstructionRecord, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.records)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def separator_record(sequence_index: int) -> InstructionRecord:
    """Return the blank record that marks a function boundary in the listing."""
    return InstructionRecord(
        address=0,
        opcode_text="",
        branch_target_address=0,
        branch_target_location=EMPTY_LOCATION,
        location=EMPTY_LOCATION,
        sequence_index=sequence_index,
    )


def build_result(source_name: str, instructions: Iterable[RawInstruction]) -> DisassemblyResult:
    """Number decoded instructions and insert function-boundary separators.

    Each instruction whose location starts a function is preceded by exactly
    one separator record.  Separators take their own ``sequence_index``, so
    indices stay contiguous from 0 and match positions in ``records``.
    """
    records: list[InstructionRecord] = []
    for insn in instructions:
        if insn.location.is_function_start:
            records.append(separator_record(len(records)))
        records.append(
            InstructionRecord(
                address=insn.address,
                opcode_text=insn.opcode_text,
                branch_target_address=insn.branch_target_address,
                branch_target_location=insn.branch_target_location,
                location=insn.location,
                sequence_index=len(records),
            )
        )
    return DisassemblyResult(source_name=source_name, records=tuple(records))
