"""Error hierarchy for gaskinx."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class GaskinxError(Exception):
    """Base exception for gaskinx failures."""

    def __init__(
        self,
        procedure: str,
        message: str,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(f"{procedure}: {message}")
        self.procedure = procedure
        self.context = dict(context) if context else {}


class ConfigurationError(GaskinxError, NotImplementedError):
    """A requested option is not implemented."""


class UnsupportedOperationError(GaskinxError):
    """Operation not available for the installed reactions."""


class UnknownReactionTypeError(GaskinxError, ValueError):
    """Reaction type tag is not recognized."""


class InputError(GaskinxError, ValueError):
    """Malformed reaction descriptor or state input."""


class NumericalConsistencyError(GaskinxError, ArithmeticError):
    """A rate constant or rate of progress is not finite."""


class KineticsDeprecationWarning(FutureWarning):
    """Behavior of a compatibility entry point will change."""


__all__ = [
    "GaskinxError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "UnknownReactionTypeError",
    "InputError",
    "NumericalConsistencyError",
    "KineticsDeprecationWarning",
]
