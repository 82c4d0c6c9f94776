"""Engine handles: the blocking CuraEngine entry point and its hooks."""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import IO, Callable, Optional, cast

from common.config import Settings, get_settings
from common.logging import get_logger

from .errors import EngineFailure
from .filesystem import DirectoryFilesystem, VirtualFilesystem

LOGGER = get_logger(__name__)

# Hook names are compiled into the engine build and cannot be changed here
PROGRESS_HOOK = "cura-wasm-progress-callback"
METADATA_HOOK = "cura-wasm-metadata-callback"
HOOK_NAMES = (PROGRESS_HOOK, METADATA_HOOK)

EngineFactory = Callable[[bool], "Engine"]


class Engine(ABC):
    """A slicing engine with a virtual filesystem and a blocking entry point.

    While ``call_main`` runs, the engine re-enters the host synchronously
    through whichever hooks are registered under ``HOOK_NAMES``.
    """

    def __init__(self, fs: VirtualFilesystem, verbose: bool = False):
        self.fs = fs
        self.verbose = verbose
        self._hooks: dict[str, Callable[..., None]] = {}

    def register_hook(self, name: str, hook: Callable[..., None]) -> None:
        """Register ``hook`` under one of the engine's fixed hook names."""
        if name not in HOOK_NAMES:
            raise ValueError(f"Unknown engine hook: {name}")
        self._hooks[name] = hook

    def unregister_hook(self, name: str) -> None:
        self._hooks.pop(name, None)

    def has_hook(self, name: str) -> bool:
        return name in self._hooks

    def emit_progress(self, fraction: float) -> None:
        """Report raw slicing progress in [0, 1] to the registered hook."""
        hook = self._hooks.get(PROGRESS_HOOK)
        if hook is not None:
            hook(fraction)

    def emit_metadata(self, *values: object) -> None:
        """Report the 12 positional metadata values to the registered hook."""
        hook = self._hooks.get(METADATA_HOOK)
        if hook is not None:
            hook(*values)

    def print(self, line: str) -> None:
        """Native engine output; dropped unless the engine is verbose."""
        if self.verbose:
            LOGGER.info("Engine output", line=line)

    @abstractmethod
    def call_main(self, args: list[str]) -> None:
        """Run the engine with a CLI argument vector. Blocks until done.

        Raises:
            EngineFailure: If the engine aborts or reports failure
        """

    def dispose(self) -> None:
        """Release resources held by the engine."""


_PERCENT_PROGRESS = re.compile(r"Progress:\s*(?:[\w+]+:\s*)?(\d+(?:\.\d+)?)\s*%")
_STAGE_PROGRESS = re.compile(r"Progress:[\w+]+:\d+:\d+\s+(\d*\.?\d+(?:[eE][-+]?\d+)?)")

_HEADER_LINE = re.compile(r"^;\s*([A-Za-z0-9_. ]+?)\s*:\s*(.*?)\s*$")
_NUMBER = re.compile(r"[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?")

# Header keys per metadata field, UltiGCode/Marlin style first, Griffin second
_HEADER_KEYS: dict[str, tuple[str, ...]] = {
    "print_time": ("TIME", "PRINT.TIME"),
    "material1_usage": ("MATERIAL", "EXTRUDER_TRAIN.0.MATERIAL.VOLUME_USED"),
    "material2_usage": ("MATERIAL2", "EXTRUDER_TRAIN.1.MATERIAL.VOLUME_USED"),
    "nozzle_size": ("NOZZLE_DIAMETER", "EXTRUDER_TRAIN.0.NOZZLE.DIAMETER"),
    "min_x": ("MINX", "PRINT.SIZE.MIN.X"),
    "min_y": ("MINY", "PRINT.SIZE.MIN.Y"),
    "min_z": ("MINZ", "PRINT.SIZE.MIN.Z"),
    "max_x": ("MAXX", "PRINT.SIZE.MAX.X"),
    "max_y": ("MAXY", "PRINT.SIZE.MAX.Y"),
    "max_z": ("MAXZ", "PRINT.SIZE.MAX.Z"),
}

_HEADER_SCAN_BYTES = 64 * 1024


def parse_progress_line(line: str) -> Optional[float]:
    """Extract a progress fraction from a CuraEngine log line, if present."""
    match = _PERCENT_PROGRESS.search(line)
    if match:
        fraction = float(match.group(1)) / 100
    else:
        match = _STAGE_PROGRESS.search(line)
        if not match:
            return None
        fraction = float(match.group(1))
    return min(max(fraction, 0.0), 1.0)


def parse_gcode_header(gcode: bytes) -> Optional[tuple]:
    """Build the metadata callback arguments from a G-code header.

    Returns the 12 values in callback order, or None when the file carries
    no ``;FLAVOR:`` header.
    """
    header: dict[str, str] = {}
    text = gcode[:_HEADER_SCAN_BYTES].decode("utf-8", errors="replace")
    for line in text.splitlines():
        match = _HEADER_LINE.match(line)
        if match:
            header.setdefault(match.group(1), match.group(2))

    flavor = header.get("FLAVOR")
    if not flavor:
        return None

    def number(field: str) -> Optional[float]:
        for key in _HEADER_KEYS[field]:
            found = _NUMBER.search(header.get(key, ""))
            if found:
                return float(found.group(0))
        return None

    # ";Filament used: 1.2345m" (Marlin) is in metres
    filament_mm: Optional[float] = None
    filament = _NUMBER.search(header.get("Filament used", ""))
    if filament:
        filament_mm = float(filament.group(0)) * 1000

    material1 = number("material1_usage")
    if material1 is None:
        material1 = filament_mm or 0.0

    return (
        flavor,
        number("print_time") or 0.0,
        material1,
        number("material2_usage") or 0.0,
        number("nozzle_size") or 0.0,
        filament_mm if filament_mm is not None else material1,
        number("min_x") or 0.0,
        number("min_y") or 0.0,
        number("min_z") or 0.0,
        number("max_x") or 0.0,
        number("max_y") or 0.0,
        number("max_z") or 0.0,
    )


def _with_progress_flag(args: list[str]) -> list[str]:
    """Insert ``-p`` after the ``slice`` verb; CuraEngine only logs progress with it."""
    if not args or args[0] != "slice" or "-p" in args:
        return list(args)
    return [args[0], "-p", *args[1:]]


def _output_argument(args: list[str]) -> Optional[str]:
    for index, arg in enumerate(args[:-1]):
        if arg == "-o":
            return args[index + 1]
    return None


class CuraEngineProcess(Engine):
    """CuraEngine binary driven as a blocking subprocess.

    The engine's virtual filesystem is a private scratch directory used as
    the working directory of every invocation. Progress is read from the
    engine's progress log lines and metadata from the header of the G-code
    it writes.
    """

    fs: DirectoryFilesystem

    def __init__(
        self,
        bin_path: str | Path,
        verbose: bool = False,
        work_dir: str | Path | None = None,
    ):
        """Initialize the engine.

        Args:
            bin_path: CuraEngine binary, absolute or looked up on PATH
            verbose: Forward the engine's own output to the log
            work_dir: Parent directory for the scratch directory

        Raises:
            EngineFailure: If the binary cannot be found
        """
        resolved = shutil.which(str(bin_path))
        if resolved is None:
            raise EngineFailure(
                f"CuraEngine not found at {bin_path}. "
                "Set CURAENGINE_BIN to the CuraEngine binary."
            )
        self.bin_path = Path(resolved)

        if work_dir is not None:
            Path(work_dir).mkdir(parents=True, exist_ok=True)
        root = tempfile.mkdtemp(prefix="cura-runtime-", dir=work_dir)
        super().__init__(DirectoryFilesystem(root), verbose)

        LOGGER.info(
            "CuraEngine process engine ready",
            bin_path=str(self.bin_path),
            root=root,
            verbose=verbose,
        )

    def call_main(self, args: list[str]) -> None:
        cmd = [str(self.bin_path), *_with_progress_flag(args)]
        LOGGER.debug("Executing engine command", cmd=" ".join(cmd))

        tail: deque[str] = deque(maxlen=10)
        process = subprocess.Popen(
            cmd,
            cwd=self.fs.root,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
        stdout = cast(IO[str], process.stdout)
        with stdout:
            for raw_line in stdout:
                line = raw_line.rstrip()
                if not line:
                    continue
                tail.append(line)
                self.print(line)
                fraction = parse_progress_line(line)
                if fraction is not None:
                    self.emit_progress(fraction)

        return_code = process.wait()
        if return_code != 0:
            error_msg = "\n".join(tail) if tail else "Unknown error"
            raise EngineFailure(
                f"CuraEngine exited with code {return_code}: {error_msg}",
                exit_code=return_code,
            )

        output = _output_argument(args)
        if output is None or not self.fs.exists(output):
            return

        values = parse_gcode_header(self.fs.read_file(output))
        if values is None:
            LOGGER.warning("G-code has no metadata header", output=output)
            return
        self.emit_metadata(*values)

    def dispose(self) -> None:
        self.fs.destroy()
        LOGGER.debug("Removed engine scratch directory", root=str(self.fs.root))


def create_engine(verbose: bool = False, settings: Optional[Settings] = None) -> Engine:
    """Default engine factory: a CuraEngine process configured from settings."""
    settings = settings or get_settings()
    return CuraEngineProcess(
        settings.curaengine_bin,
        verbose=verbose,
        work_dir=settings.cura_work_dir,
    )


__all__ = [
    "Engine",
    "EngineFactory",
    "CuraEngineProcess",
    "PROGRESS_HOOK",
    "METADATA_HOOK",
    "HOOK_NAMES",
    "create_engine",
    "parse_gcode_header",
    "parse_progress_line",
]
