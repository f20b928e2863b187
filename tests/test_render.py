"""Tests for elflens.render — canonical listing layout."""

from elflens.records import RawInstruction, SourceLocation, build_result
from elflens.render import render_bytes, render_listing, render_record


def _loc(filename: str, line: int, column: int = 1, *, start: bool = False) -> SourceLocation:
    return SourceLocation(
        filename=filename, path="/src", line=line, column=column, is_function_start=start
    )


def _single(insn: RawInstruction) -> str:
    return render_record(build_result("x", [insn]).records[0])


# ---------------------------------------------------------------------------
# render_record
# ---------------------------------------------------------------------------


class TestRenderRecord:
    def test_instruction_with_location(self) -> None:
        line = _single(RawInstruction(0x100, "push {r7, lr}", location=_loc("main.c", 12, 5)))
        assert line == "0x100 push {r7, lr}" + " " * 16 + "main.c:12:5" + " " * 19 + "\n"

    def test_instruction_with_branch(self) -> None:
        line = _single(
            RawInstruction(
                0x104,
                "bl 0x200",
                branch_target_address=0x200,
                branch_target_location=_loc("util.c", 3, 1),
                location=_loc("main.c", 13, 3),
            )
        )
        assert line == (
            "0x104 bl 0x200" + " " * 21 + "main.c:13:3" + " " * 19 + "0x200 util.c:3:1\n"
        )

    def test_branch_without_own_location(self) -> None:
        line = _single(
            RawInstruction(
                0x108,
                "b 0x300",
                branch_target_address=0x300,
                branch_target_location=_loc("util.c", 4, 1),
            )
        )
        assert line == "0x108 b 0x300" + " " * 22 + "0x300 util.c:4:1\n"

    def test_unattributed_branch_target_is_omitted(self) -> None:
        line = _single(
            RawInstruction(0x10C, "bl 0x400", 0x400, location=_loc("main.c", 14, 3))
        )
        assert "0x400 " not in line.split("main.c")[1]
        assert line.endswith(" \n")

    def test_bare_instruction(self) -> None:
        assert _single(RawInstruction(0x10, "nop")) == "0x10 nop".ljust(34) + " \n"

    def test_hex_is_lowercase_unpadded(self) -> None:
        assert _single(RawInstruction(0xDEADBEEF, "nop")).startswith("0xdeadbeef nop ")

    def test_long_opcode_not_truncated(self) -> None:
        opcode = "vld1.8 {d16, d17, d18, d19}, [r0:256]!"
        line = _single(RawInstruction(0x8000, opcode, location=_loc("neon.c", 2)))
        assert line.startswith(f"0x8000 {opcode} neon.c:2:1 ")

    def test_separator_is_blank_line(self) -> None:
        result = build_result("x", [RawInstruction(0x100, "nop", location=_loc("a.c", 1, start=True))])
        assert render_record(result.records[0]) == "\n"


# ---------------------------------------------------------------------------
# render_listing / render_bytes
# ---------------------------------------------------------------------------


def _listing():
    return build_result(
        "fw.elf",
        [
            RawInstruction(0x100, "push {r7, lr}", location=_loc("a.c", 1, start=True)),
            RawInstruction(0x102, "bl 0x200", 0x200, _loc("b.c", 9), _loc("a.c", 2)),
            RawInstruction(0x200, "bx lr", location=_loc("b.c", 9, start=True)),
            RawInstruction(0x202, "nop"),
        ],
    )


class TestRenderListing:
    def test_one_line_per_record(self) -> None:
        result = _listing()
        text = render_listing(result)
        assert text.count("\n") == len(result)
        assert text.endswith("\n")
        assert len(text.splitlines()) == len(result)

    def test_line_number_is_sequence_index(self) -> None:
        result = _listing()
        lines = render_listing(result).splitlines()
        for record in result.records:
            line = lines[record.sequence_index]
            if record.is_separator:
                assert line == ""
            else:
                assert line.startswith(f"0x{record.address:x} {record.opcode_text}")

    def test_listing_order_not_sorted_order(self) -> None:
        lines = render_listing(_listing()).splitlines()
        assert lines[0] == ""
        assert lines[1].startswith("0x100 ")
        assert lines[3] == ""
        assert lines[5].startswith("0x202 ")

    def test_empty_result(self) -> None:
        assert render_listing(build_result("x", [])) == ""

    def test_bytes_are_utf8(self) -> None:
        result = build_result("x", [RawInstruction(0x100, "nop", location=_loc("müll.c", 1))])
        data = render_bytes(result)
        assert isinstance(data, bytes)
        assert data.decode("utf-8") == render_listing(result)
        assert "müll.c:1:1".encode() in data
