"""Find the listing line generated for a source position.

Usage:
    elflens locate build/fw.elf src/main.c:42
    elflens locate build/fw.elf src/main.c:42:7 --json
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

elflens locate build/fw.elf src/main.c:42         Print build/fw.elf.asm:<line>

elflens locate build/fw.elf src/main.c:42 --write Also (re)write the listing

elflens locate build/fw.elf src/main.c:42 --json  Machine-readable JSON output

[dim]Picks the first instruction generated for that line or the next line
that produced code.  Lines past the end of a file fall back to the file's
first instruction.  The column is accepted but not used for matching.[/dim]"""

app = typer.Typer(
    help="Find the listing line generated for a source position.",
    rich_markup_mode="rich",
    epilog=_EPILOG,
)


@app.callback(invoke_without_command=True)
def main(
    binary: Path = typer.Argument(..., help="ELF file to disassemble"),
    position: str = typer.Argument(..., help="Source position FILE:LINE[:COLUMN]"),
    write: bool = typer.Option(False, "--write", "-w", help="Also write the listing file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print stage timings"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    config_dir: Path | None = ConfigDirOption,
) -> None:
    """Disassemble *binary* and print the listing line for *position*.

    Listing lines are reported 1-based (``listing:line``); the JSON output
    also carries the 0-based ``sequence_index``.
    """
    cfg = get_config(config_dir, json_mode=json_output)
    query = parse_source_position(position, json_mode=json_output)
    raw = read_binary(binary, json_mode=json_output)
    listing = cfg.listing_path(binary)

    with open_worker(cfg, verbose=verbose) as worker:
        rendered = require_rendered(
            worker.submit(raw, str(binary)).result(), json_mode=json_output
        )
        sequence_index = worker.locate(query).result()

    if write:
        try:
            listing.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(listing, rendered.content)
        except OSError as e:
            error_exit(f"Cannot write {listing}: {e}", json_mode=json_output)

    if json_output:
        json_print(
            {
                "binary": rendered.source_name,
                "listing": str(listing),
                "path": query.path,
                "filename": query.filename,
                "line": query.line,
                "column": query.column,
                "sequence_index": sequence_index,
                "listing_line": sequence_index + 1,
            }
        )
        return

    print(f"{listing}:{sequence_index + 1}")


def main_entry() -> None:
    """Run the Typer CLI application."""
    app()


if __name__ == "__main__":
    main_entry()
