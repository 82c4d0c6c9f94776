"""Run orchestration: convert, stage the model, slice, harvest the G-code."""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional

from common.logging import get_logger

from .arguments import MODEL_INPUT, MODEL_OUTPUT, generate_arguments, split_command
from .channels import EventChannel
from .converter import Converter, convert
from .engine import METADATA_HOOK, PROGRESS_HOOK, Engine
from .errors import ConversionError, EngineFailure
from .lifecycle import EngineLifecycle
from .metadata import MetadataCollector
from .progress import ProgressBlender, normalize_extension
from .schemas import Override, SliceMetadata

LOGGER = get_logger(__name__)


class RunState(str, Enum):
    """Where the orchestrator is within a run."""

    IDLE = "idle"
    CONVERTING = "converting"
    STAGED = "staged"
    SLICING = "slicing"
    FAILED = "failed"


class RunOrchestrator:
    """Sequences one slicing run against the shared engine.

    Runs hold the engine lease for their whole duration, so overlapping
    calls are served one at a time in arrival order.
    """

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        progress_channel: Optional[EventChannel[float]] = None,
        metadata_channel: Optional[EventChannel[SliceMetadata]] = None,
        converter: Converter = convert,
    ):
        self.lifecycle = lifecycle
        self.progress_channel = progress_channel or EventChannel("progress")
        self.metadata_channel = metadata_channel or EventChannel("metadata")
        self.converter = converter
        self.state = RunState.IDLE

    def run(
        self,
        command: Optional[str],
        overrides: Optional[Iterable[Override | dict]],
        verbose: Optional[bool],
        data: bytes,
        extension: str,
    ) -> bytes | ConversionError:
        """Slice ``data`` and return the G-code.

        Args:
            command: Raw engine launch command; when given, ``overrides`` and
                ``verbose`` are ignored
            overrides: Setting overrides, applied in order
            verbose: Ask the engine for verbose logging
            data: Model file contents
            extension: Model file format

        Returns:
            G-code bytes, or the ``ConversionError`` if conversion failed

        Raises:
            NotInitialized: If the engine has not been initialized
            EngineFailure: If the engine fails or writes no output
        """
        self.lifecycle.require("run Cura Engine")

        with self.lifecycle.lease("run Cura Engine") as engine:
            blender = ProgressBlender(self.progress_channel, extension)
            fmt = normalize_extension(extension)

            self.state = RunState.CONVERTING
            try:
                stl = self.converter(data, fmt, blender.converter_progress)
            except Exception:
                self.state = RunState.IDLE
                raise
            if isinstance(stl, ConversionError):
                # Stays FAILED until the next run starts
                self.state = RunState.FAILED
                LOGGER.warning("Run aborted, conversion failed", extension=fmt, error=str(stl))
                return stl

            try:
                engine.fs.write_file(MODEL_INPUT, stl)
                self.state = RunState.STAGED

                args = (
                    split_command(command)
                    if command is not None
                    else generate_arguments(overrides, verbose)
                )
                if verbose:
                    LOGGER.info("Calling Cura Engine", args=" ".join(args))
                else:
                    LOGGER.debug("Calling Cura Engine", args=" ".join(args))

                self._slice(engine, args, blender)
                gcode = self._read_output(engine)
            finally:
                self._remove_transient_files(engine)
                self.state = RunState.IDLE

            blender.finish()

        LOGGER.info(
            "Run completed",
            extension=fmt,
            input_bytes=len(data),
            output_bytes=len(gcode),
        )
        return gcode

    def _slice(self, engine: Engine, args: list[str], blender: ProgressBlender) -> None:
        collector = MetadataCollector(self.metadata_channel)
        engine.register_hook(PROGRESS_HOOK, blender.slicer_progress)
        engine.register_hook(METADATA_HOOK, collector)
        self.state = RunState.SLICING
        try:
            engine.call_main(args)
        except Exception as e:
            LOGGER.error("Cura Engine failed", error=str(e))
            raise
        finally:
            engine.unregister_hook(PROGRESS_HOOK)
            engine.unregister_hook(METADATA_HOOK)

    def _read_output(self, engine: Engine) -> bytes:
        if not engine.fs.exists(MODEL_OUTPUT):
            raise EngineFailure(f"Cura Engine did not produce {MODEL_OUTPUT}")
        return engine.fs.read_file(MODEL_OUTPUT)

    def _remove_transient_files(self, engine: Engine) -> None:
        # Runs inside ``finally``; must not replace an in-flight engine error
        for path in (MODEL_INPUT, MODEL_OUTPUT):
            try:
                if engine.fs.exists(path):
                    engine.fs.unlink(path)
            except OSError as e:
                LOGGER.warning("Could not remove transient file", path=path, error=str(e))


__all__ = ["RunOrchestrator", "RunState"]
