"""Shared CLI utilities for elflens commands.

Provides the common Typer options, config loading, worker construction and
standardised output / error helpers used by ``elflens disasm`` and
``elflens locate``.

Usage in a command::

    import typer
    from elflens.cli import ConfigDirOption, get_config, error_exit, open_worker

    app = typer.Typer()

    @app.command()
    def main(config_dir: Path | None = ConfigDirOption) -> None:
        cfg = get_config(config_dir)
        with open_worker(cfg) as worker:
            ...
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console

from elflens.config import ElflensConfig, load_config
from elflens.correlation import LineQuery
from elflens.decoder import Decoder, DwarfDecoder
from elflens.errors import ConfigError
from elflens.pipeline import (
    Failed,
    JobPipeline,
    PipelineWorker,
    RejectedBusy,
    Rendered,
    SubmitOutcome,
)

# Re-usable Typer option for the directory to search for elflens.toml
ConfigDirOption: Path | None = typer.Option(
    None,
    "--config-dir",
    "-C",
    help="Directory to search (upwards) for elflens.toml (default: current directory).",
)

# ---------------------------------------------------------------------------
# Standardised output helpers
# ---------------------------------------------------------------------------

_err_console = Console(stderr=True)


def error_exit(msg: str, *, json_mode: bool = False, code: int = 1) -> NoReturn:
    """Print *msg* as an error and ``raise typer.Exit(code)``."""
    if json_mode:
        print(json.dumps({"error": msg}, indent=2))
    else:
        _err_console.print(f"[red bold]error:[/red bold] {msg}")
    raise typer.Exit(code=code)


def json_print(data: dict[str, Any] | list[Any]) -> None:
    """Print *data* as pretty-printed JSON to stdout."""
    print(json.dumps(data, indent=2))


def get_config(config_dir: Path | None = None, *, json_mode: bool = False) -> ElflensConfig:
    """Load the config, exiting with a readable message when it is invalid."""
    try:
        return load_config(config_dir)
    except ConfigError as e:
        error_exit(str(e), json_mode=json_mode)


def _absolute_source(file_part: str) -> str:
    if file_part.startswith(("/", "\\")) or (len(file_part) > 1 and file_part[1] == ":"):
        return file_part
    return os.path.abspath(file_part)


def parse_source_position(text: str, *, json_mode: bool = False) -> LineQuery:
    """Parse ``FILE:LINE[:COLUMN]`` into a ``LineQuery``.

    The file part may itself contain colons (``C:\\src\\main.c:12:5``), so
    numbers are split off from the right.  A relative file is resolved
    against the working directory, matching the absolute paths in the
    DWARF line table.
    """
    parts = text.rsplit(":", 2)
    if len(parts) == 3 and parts[1].isdigit() and parts[2].isdigit():
        file_part, line, column = parts[0], int(parts[1]), int(parts[2])
    else:
        file_part, _, line_str = text.rpartition(":")
        if not file_part or not line_str.isdigit():
            error_exit(
                f"Invalid source position {text!r}, expected FILE:LINE[:COLUMN]",
                json_mode=json_mode,
            )
        line, column = int(line_str), 0
    return LineQuery.from_file(_absolute_source(file_part), line, column)


# ---------------------------------------------------------------------------
# Pipeline plumbing
# ---------------------------------------------------------------------------


def make_decoder(cfg: ElflensConfig) -> Decoder:
    """Return the decoder configured for this project."""
    return DwarfDecoder(arch=cfg.arch)


def open_worker(cfg: ElflensConfig, *, verbose: bool = False) -> PipelineWorker:
    """Build a pipeline and start a worker serving it.

    Stage timings go to stderr when *verbose* (or ``[display] verbose``) is set.
    """
    console = _err_console if verbose or cfg.verbose else None
    return PipelineWorker(JobPipeline(make_decoder(cfg), console=console))


def require_rendered(outcome: SubmitOutcome, *, json_mode: bool = False) -> Rendered:
    """Return *outcome* if the job succeeded, otherwise exit with its error."""
    if isinstance(outcome, Failed):
        error_exit(f"Disassembly failed: {outcome.error}", json_mode=json_mode)
    if isinstance(outcome, RejectedBusy):
        error_exit("Another disassembly is still running", json_mode=json_mode)
    return outcome


def read_binary(binary: Path, *, json_mode: bool = False) -> bytes:
    """Read the input binary, exiting if it is missing or unreadable."""
    if not binary.is_file():
        error_exit(f"Binary not found at {binary}", json_mode=json_mode)
    try:
        return binary.read_bytes()
    except OSError as e:
        error_exit(str(e), json_mode=json_mode)
