"""main.py – Umbrella CLI entry point for elflens.

Lazily imports and registers the subcommand typer apps so that a missing
native dependency (capstone, LIEF, pyelftools) is reported by the command
that needs it instead of breaking the whole CLI.
"""

import importlib
import sys
from collections.abc import Callable

import typer

app = typer.Typer(
    help="Map source lines to the instructions they compiled to.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Typical workflow:[/bold]
  elflens disasm build/fw.elf                    Write build/fw.elf.asm
  elflens disasm build/fw.elf -s src/main.c:42   Write it and jump to main.c:42
  elflens locate build/fw.elf src/main.c:42      Only report the listing line

[dim]Settings are read from elflens.toml when present.
Run 'elflens <cmd> --help' for details.[/dim]""",
)

# ---------------------------------------------------------------------------
# Subcommand registry
# ---------------------------------------------------------------------------

_COMMANDS: list[tuple[str, str, str]] = [
    ("disasm", "elflens.disasm", "Disassemble an ELF file into a source-annotated listing."),
    ("locate", "elflens.locate", "Find the listing line generated for a source position."),
]


def _make_stub_cmd(mod_name: str, err: ImportError) -> Callable[[], None]:
    """Create a stub command function that reports a missing dependency."""

    def _stub() -> None:
        print(f"Error: could not load '{mod_name}': {err}", file=sys.stderr)
        raise typer.Exit(code=1)

    return _stub


for _name, _module, _help in _COMMANDS:
    try:
        _mod = importlib.import_module(_module)
        _epilog = getattr(_mod.app.info, "epilog", None)
        if not isinstance(_epilog, str):
            _epilog = None
        app.command(name=_name, help=_help, epilog=_epilog)(_mod.main)
    except ImportError as _exc:
        app.command(name=_name, help=f"[unavailable] {_help}")(_make_stub_cmd(_module, _exc))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
