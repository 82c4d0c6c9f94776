"""Async facade over the engine lifecycle, definition staging and runs.

The core is synchronous and blocking; each call is moved off the event loop
with ``asyncio.to_thread`` so overlapping runs queue on the engine lease
instead of stalling the loop.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Optional

from common.config import Settings, get_settings
from common.logging import get_logger

from .channels import EventChannel, Subscription
from .converter import Converter, convert
from .definitions import DefinitionLibrary, DefinitionStager
from .engine import EngineFactory, create_engine
from .errors import ConversionError
from .lifecycle import EngineLifecycle
from .runner import RunOrchestrator
from .schemas import CombinedDefinition, Override, SliceMetadata

LOGGER = get_logger(__name__)


class SlicingWorker:
    """Low-level slicing API; one instance owns one engine handle."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine_factory: Optional[EngineFactory] = None,
        converter: Converter = convert,
        primary_definitions: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        """Initialize the worker.

        Args:
            settings: Runtime settings (defaults to the process settings)
            engine_factory: Builds the engine from the verbose flag; defaults
                to a CuraEngine process configured from ``settings``
            converter: Model-to-STL converter
            primary_definitions: Base definitions to stage; loaded from
                ``settings.cura_definitions_dir`` when omitted
        """
        self.settings = settings or get_settings()
        factory = engine_factory or (lambda verbose: create_engine(verbose, self.settings))
        self.lifecycle = EngineLifecycle(factory)
        self.progress = EventChannel[float]("progress")
        self.metadata = EventChannel[SliceMetadata]("metadata")
        self.stager = DefinitionStager(self.lifecycle, primary_definitions)
        self._load_primary = primary_definitions is None
        self.orchestrator = RunOrchestrator(
            self.lifecycle,
            progress_channel=self.progress,
            metadata_channel=self.metadata,
            converter=converter,
        )

    @property
    def is_initialized(self) -> bool:
        return self.lifecycle.is_initialized

    async def initialize(self, verbose: Optional[bool] = None) -> None:
        """Create the engine.

        Args:
            verbose: Forward native engine output (defaults to CURA_VERBOSE)

        Raises:
            AlreadyInitialized: If this worker already holds an engine
        """
        if verbose is None:
            verbose = self.settings.cura_verbose
        await asyncio.to_thread(self.lifecycle.initialize, verbose)

    async def stage_definitions(self, definition: CombinedDefinition | Mapping[str, Any]) -> None:
        """Add printer definition files to the engine's filesystem."""
        self.lifecycle.require("add definitions")
        if self._load_primary:
            library = DefinitionLibrary(self.settings.cura_definitions_dir)
            self.stager.primary_definitions = await asyncio.to_thread(library.primary_definitions)
            self._load_primary = False
        await asyncio.to_thread(self.stager.stage, definition)

    async def unstage_definitions(self) -> None:
        """Remove the printer definition files staged earlier."""
        await asyncio.to_thread(self.stager.unstage)

    def observe_progress(self, observer: Callable[[float], None]) -> Subscription[float]:
        """Subscribe to blended progress, replacing any previous subscriber."""
        return self.progress.subscribe(observer)

    def observe_metadata(
        self, observer: Callable[[SliceMetadata], None]
    ) -> Subscription[SliceMetadata]:
        """Subscribe to run metadata, replacing any previous subscriber."""
        return self.metadata.subscribe(observer)

    async def run(
        self,
        command: Optional[str],
        overrides: Optional[Iterable[Override | dict]],
        verbose: Optional[bool],
        data: bytes,
        extension: str,
    ) -> bytes | ConversionError:
        """Slice a model. See :meth:`RunOrchestrator.run`."""
        self.lifecycle.require("run Cura Engine")
        overrides = list(overrides) if overrides is not None else None
        return await asyncio.to_thread(
            self.orchestrator.run, command, overrides, verbose, data, extension
        )

    async def shutdown(self) -> None:
        """Dispose the engine; staged definitions go with it."""
        await asyncio.to_thread(self.lifecycle.shutdown)
        self.stager.reset()


@lru_cache(maxsize=1)
def get_worker() -> SlicingWorker:
    """Process-wide worker."""

    return SlicingWorker()


__all__ = ["SlicingWorker", "get_worker"]
