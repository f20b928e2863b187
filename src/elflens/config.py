"""Project configuration loader for elflens.

Reads ``elflens.toml`` from the project root (found by walking up from the
current directory) and exposes the settings as a dataclass.  Every setting
has a default, so a project without ``elflens.toml`` works unchanged.

Example ``elflens.toml``::

    [disassembly]
    arch = "thumb"          # or "auto" to read it from the ELF header
    output_suffix = ".asm"
    output_dir = "build/asm"

    [display]
    verbose = true

Usage::

    from elflens.config import capstone_constants, load_config

    cfg = load_config()
    md = capstone.Cs(*capstone_constants(cfg.arch))
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from elflens.errors import ConfigError

CONFIG_FILENAME = "elflens.toml"

# ---------------------------------------------------------------------------
# Architecture presets
# ---------------------------------------------------------------------------

_ARCH_PRESETS: dict[str, dict[str, str]] = {
    "x86_32": {
        "capstone_arch": "CS_ARCH_X86",
        "capstone_mode": "CS_MODE_32",
    },
    "x86_64": {
        "capstone_arch": "CS_ARCH_X86",
        "capstone_mode": "CS_MODE_64",
    },
    "arm32": {
        "capstone_arch": "CS_ARCH_ARM",
        "capstone_mode": "CS_MODE_ARM",
    },
    "thumb": {
        "capstone_arch": "CS_ARCH_ARM",
        "capstone_mode": "CS_MODE_THUMB",
    },
    "arm64": {
        "capstone_arch": "CS_ARCH_ARM64",
        "capstone_mode": "CS_MODE_ARM",
    },
}

ARCH_CHOICES = ("auto", *_ARCH_PRESETS)


def capstone_constants(arch: str) -> tuple[int, int]:
    """Return the ``(CS_ARCH_*, CS_MODE_*)`` pair for an architecture preset."""
    import capstone

    try:
        preset = _ARCH_PRESETS[arch]
    except KeyError:
        raise ConfigError(f"Unknown architecture {arch!r}. Choices: {list(_ARCH_PRESETS)}") from None
    return getattr(capstone, preset["capstone_arch"]), getattr(capstone, preset["capstone_mode"])


@dataclass
class ElflensConfig:
    """Parsed configuration with resolved paths."""

    # Directory holding elflens.toml (cwd when there is none)
    root: Path

    # --- [disassembly] ---
    arch: str = "auto"
    output_suffix: str = ".asm"
    output_dir: Path | None = None

    # --- [display] ---
    verbose: bool = False

    def listing_path(self, binary: Path) -> Path:
        """Where the rendered listing for *binary* is written."""
        name = binary.name + self.output_suffix
        if self.output_dir is not None:
            return self.output_dir / name
        return binary.with_name(name)


def _resolve(root: Path, rel: str | None) -> Path | None:
    """Resolve a path relative to the config root."""
    if not rel:
        return None
    p = Path(rel)
    if p.is_absolute():
        return p
    return root / p


def _find_root(start: Path | None = None) -> Path | None:
    """Walk up from *start* (or cwd) to the first directory holding elflens.toml."""
    candidate = (start or Path.cwd()).resolve()
    while True:
        if (candidate / CONFIG_FILENAME).exists():
            return candidate
        if candidate == candidate.parent:
            return None
        candidate = candidate.parent


def _table(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] in {CONFIG_FILENAME} must be a table")
    return value


def _typed(table: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = table.get(key, default)
    if not isinstance(value, kind):
        raise ConfigError(
            f"{key!r} in {CONFIG_FILENAME} must be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def load_config(root: Path | None = None) -> ElflensConfig:
    """Load ``elflens.toml``.

    Args:
        root: Directory to start searching from.  Defaults to the current
              working directory; parents are searched as well.

    Returns defaults when no config file is found.

    Raises:
        ConfigError: If the file is not valid TOML or a setting is invalid.
    """
    found = _find_root(root)
    if found is None:
        return ElflensConfig(root=(root or Path.cwd()).resolve())

    toml_path = found / CONFIG_FILENAME
    try:
        with open(toml_path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    disassembly = _table(raw, "disassembly")
    display = _table(raw, "display")

    arch = _typed(disassembly, "arch", str, "auto")
    if arch not in ARCH_CHOICES:
        raise ConfigError(f"Unknown architecture {arch!r}. Choices: {list(ARCH_CHOICES)}")

    return ElflensConfig(
        root=found,
        arch=arch,
        output_suffix=_typed(disassembly, "output_suffix", str, ".asm"),
        output_dir=_resolve(found, _typed(disassembly, "output_dir", str, "")),
        verbose=_typed(display, "verbose", bool, False),
    )
