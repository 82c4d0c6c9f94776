"""Embedded CuraEngine runtime: definition staging, progress, metadata and runs."""

from .engine import CuraEngineProcess, Engine
from .errors import (
    AlreadyInitialized,
    ConversionError,
    CuraRuntimeError,
    DefinitionError,
    DefinitionMismatch,
    EngineFailure,
    NotInitialized,
)
from .schemas import CombinedDefinition, Override, SliceMetadata, SliceResult
from .slicer import CuraSlicer
from .worker import SlicingWorker, get_worker

__version__ = "0.1.0"

__all__ = [
    "CuraEngineProcess",
    "CuraSlicer",
    "Engine",
    "SlicingWorker",
    "get_worker",
    "CombinedDefinition",
    "Override",
    "SliceMetadata",
    "SliceResult",
    "AlreadyInitialized",
    "ConversionError",
    "CuraRuntimeError",
    "DefinitionError",
    "DefinitionMismatch",
    "EngineFailure",
    "NotInitialized",
]
