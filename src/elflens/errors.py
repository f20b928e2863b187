"""Exception types raised by elflens."""


class ElflensError(Exception):
    """Base class for all elflens errors."""


class DecodeError(ElflensError, ValueError):
    """The decoder could not turn the input bytes into instructions."""


class ConfigError(ElflensError, ValueError):
    """``elflens.toml`` is malformed or names an unknown setting."""
