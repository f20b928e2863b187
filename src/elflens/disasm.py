"""Disassemble an ELF file into a source-annotated ``.asm`` listing.

Usage:
    elflens disasm build/fw.elf
    elflens disasm build/fw.elf --source src/main.c:42
"""

from pathlib import Path

import typer

from elflens.cli import (
    ConfigDirOption,
    error_exit,
    get_config,
    json_print,
    open_worker,
    parse_source_position,
    read_binary,
    require_rendered,
)
from elflens.utils import atomic_write_bytes

_EPILOG = """\
[bold]Examples:[/bold]

elflens disasm build/fw.elf                          Write build/fw.elf.asm

elflens disasm build/fw.elf -o fw.asm                Write to an explicit path

elflens disasm build/fw.elf --source src/main.c:42   Also report the listing line for main.c:42

elflens disasm build/fw.elf --json                   Machine-readable JSON output

[dim]Each listing line is one instruction: address, mnemonic, source file:line:column
and, for branches, the target address and its source location.  Blank lines
separate functions.  Settings are read from elflens.toml if present.[/dim]"""

app = typer.Typer(
    help="Disassemble an ELF file into a source-annotated listing.",
    rich_markup_mode="rich",
    epilog=_EPILOG,
)


@app.callback(invoke_without_command=True)
def main(
    binary: Path = typer.Argument(..., help="ELF file to disassemble"),
    source: str | None = typer.Option(
        None, "--source", "-s", help="Source position FILE:LINE[:COLUMN] to locate afterwards"
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Listing output path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print stage timings"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    config_dir: Path | None = ConfigDirOption,
) -> None:
    """Disassemble *binary*, write the listing and optionally locate a source line.

    The listing goes to ``<binary><output_suffix>`` (``.asm`` by default) or to
    ``--output``.  With ``--source``, the matching listing line is printed as
    ``listing:line`` so editors and terminals can jump straight to it.
    """
    cfg = get_config(config_dir, json_mode=json_output)
    query = parse_source_position(source, json_mode=json_output) if source else None
    raw = read_binary(binary, json_mode=json_output)
    listing = output or cfg.listing_path(binary)

    with open_worker(cfg, verbose=verbose) as worker:
        rendered = require_rendered(
            worker.submit(raw, str(binary)).result(), json_mode=json_output
        )
        try:
            listing.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(listing, rendered.content)
        except OSError as e:
            error_exit(f"Cannot write {listing}: {e}", json_mode=json_output)
        sequence_index = worker.locate(query).result() if query is not None else None

    if json_output:
        data: dict = {
            "binary": rendered.source_name,
            "listing": str(listing),
            "lines": rendered.line_count,
        }
        if query is not None:
            data["located"] = {
                "file": source,
                "sequence_index": sequence_index,
                "listing_line": sequence_index + 1,
            }
        json_print(data)
        return

    print(f"Wrote {rendered.line_count} lines to {listing}")
    if query is not None:
        print(f"{listing}:{sequence_index + 1}")


def main_entry() -> None:
    """Run the Typer CLI application."""
    app()


if __name__ == "__main__":
    main_entry()
