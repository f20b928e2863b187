"""Canonical text rendering of a disassembly listing.

Layout of one instruction line::

    0x8000120 push {r7, lr}            main.c:12:5                   0x8000200 util.c:3:1
    |<-------------- 35 ------------->|<------------ 30 ------------>|

The source column is only present when the instruction has an attributed
file, and the branch column only when the branch target has one.  Function
separators render as blank lines, so line ``i`` of the text is always the
record with ``sequence_index == i``.
"""

from elflens.records import DisassemblyResult, InstructionRecord

INSTRUCTION_WIDTH = 35
LOCATION_WIDTH = 30


def render_record(record: InstructionRecord) -> str:
    """Render one record as a newline-terminated listing line."""
    if record.is_separator:
        return "\n"

    line = f"0x{record.address:x} {record.opcode_text} ".ljust(INSTRUCTION_WIDTH)
    loc = record.location
    if loc.filename:
        line += f"{loc.filename}:{loc.line}:{loc.column} ".ljust(LOCATION_WIDTH)
    target = record.branch_target_location
    if target.filename:
        line += (
            f"0x{record.branch_target_address:x} "
            f"{target.filename}:{target.line}:{target.column}"
        )
    return line + "\n"


def render_listing(result: DisassemblyResult) -> str:
    """Render every record of *result* in listing order."""
    return "".join(render_record(record) for record in result.records)


def render_bytes(result: DisassemblyResult) -> bytes:
    """Render *result* as UTF-8 encoded text."""
    return render_listing(result).encode("utf-8")
