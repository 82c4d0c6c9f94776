"""Exception types raised (or returned) by the slicing runtime."""

from __future__ import annotations


class CuraRuntimeError(RuntimeError):
    """Base exception for slicing runtime errors."""


class NotInitialized(CuraRuntimeError):
    """Raised when the engine is used before ``initialize`` has completed."""


class AlreadyInitialized(CuraRuntimeError):
    """Raised when ``initialize`` is called while an engine handle exists."""


class ConversionError(CuraRuntimeError):
    """The input model could not be converted to STL.

    ``run`` hands this back as its result instead of raising it.
    """

    def __init__(self, message: str, extension: str | None = None):
        super().__init__(message)
        self.extension = extension


class EngineFailure(CuraRuntimeError):
    """The engine aborted, exited non-zero or produced no usable output."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class DefinitionError(CuraRuntimeError):
    """Definition files could not be loaded, staged or removed."""


class DefinitionMismatch(DefinitionError):
    """The staged definition files no longer match what was written."""


__all__ = [
    "CuraRuntimeError",
    "NotInitialized",
    "AlreadyInitialized",
    "ConversionError",
    "EngineFailure",
    "DefinitionError",
    "DefinitionMismatch",
]
