"""High-level slicer client."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from common.logging import get_logger

from .errors import ConversionError
from .schemas import CombinedDefinition, Override, SliceMetadata, SliceResult
from .worker import SlicingWorker, get_worker

LOGGER = get_logger(__name__)


class CuraSlicer:
    """Slices models for one printer definition.

    The engine is initialized and the definition staged on the first
    ``slice``; ``destroy`` removes the definition and shuts the engine down.

    Example:
        slicer = CuraSlicer(library.resolve("ultimaker2"))
        result = await slicer.slice(stl_bytes, "stl")
        Path("model.gcode").write_bytes(result.gcode)
        await slicer.destroy()
    """

    def __init__(
        self,
        definition: CombinedDefinition | Mapping[str, Any],
        command: Optional[str] = None,
        overrides: Optional[Iterable[Override | dict]] = None,
        verbose: bool = False,
        worker: Optional[SlicingWorker] = None,
    ):
        """Initialize the slicer.

        Args:
            definition: Printer and extruder definitions
            command: Raw engine launch command (overrides and verbose are then ignored)
            overrides: Setting overrides applied to every slice
            verbose: Verbose engine logging
            worker: Worker to slice on (defaults to the process-wide worker)
        """
        if not isinstance(definition, CombinedDefinition):
            definition = CombinedDefinition.model_validate(definition)
        self.definition = definition
        self.command = command
        self.overrides = [
            o if isinstance(o, Override) else Override.model_validate(o)
            for o in overrides or ()
        ]
        self.verbose = verbose
        self.worker = worker or get_worker()
        self._prepared = False

    async def _prepare(self) -> None:
        if self._prepared:
            return
        if not self.worker.is_initialized:
            await self.worker.initialize(self.verbose)
        await self.worker.stage_definitions(self.definition)
        self._prepared = True

    async def slice(
        self,
        data: bytes,
        extension: str,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> SliceResult:
        """Slice a model into G-code.

        Args:
            data: Model file contents
            extension: Model file format (``stl``, ``obj``, ``3mf``, ...)
            on_progress: Called with overall progress in [0, 1]

        Raises:
            ConversionError: If the model could not be converted to STL
            EngineFailure: If the engine failed
        """
        await self._prepare()

        captured: list[SliceMetadata] = []
        metadata_sub = self.worker.observe_metadata(captured.append)
        progress_sub = self.worker.observe_progress(on_progress) if on_progress else None
        try:
            gcode = await self.worker.run(
                self.command, self.overrides, self.verbose, data, extension
            )
        finally:
            metadata_sub.unsubscribe()
            if progress_sub is not None:
                progress_sub.unsubscribe()

        if isinstance(gcode, ConversionError):
            raise gcode

        return SliceResult(gcode=gcode, metadata=captured[-1] if captured else None)

    async def destroy(self) -> None:
        """Remove staged definitions and shut the engine down."""
        if self._prepared:
            await self.worker.unstage_definitions()
            self._prepared = False
        await self.worker.shutdown()
        LOGGER.debug("Slicer destroyed")


__all__ = ["CuraSlicer"]
