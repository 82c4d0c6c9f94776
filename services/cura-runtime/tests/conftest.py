# noqa: D104
"""Pytest fixtures for cura-runtime tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Sequence

import pytest
import trimesh

from common.config import Settings
from cura_runtime.engine import HOOK_NAMES, Engine
from cura_runtime.filesystem import MemoryFilesystem
from cura_runtime.lifecycle import EngineLifecycle
from cura_runtime.schemas import CombinedDefinition
from cura_runtime.worker import SlicingWorker

# Reference metadata for the benchy model sliced for an Ultimaker 2
BENCHY_METADATA = (
    "UltiGCode",
    9061,
    11172,
    0,
    0.4,
    11172,
    78.628,
    95.565,
    0.3,
    142.112,
    127.435,
    48,
)

DEFAULT_GCODE = b";FLAVOR:UltiGCode\n;TIME:9061\nG28\nG1 X10 Y10\n"


class ScriptedEngine(Engine):
    """In-memory engine that replays scripted progress and metadata."""

    def __init__(
        self,
        verbose: bool = False,
        progress: Sequence[float] = (0.0, 0.101, 0.104, 0.25, 0.5, 0.5, 0.999, 1.0),
        metadata: Optional[tuple] = BENCHY_METADATA,
        gcode: bytes = DEFAULT_GCODE,
        fail: Optional[Exception] = None,
        write_output: bool = True,
    ):
        super().__init__(MemoryFilesystem(), verbose)
        self.progress = list(progress)
        self.metadata = metadata
        self.gcode = gcode
        self.fail = fail
        self.write_output = write_output
        self.calls: list[list[str]] = []
        self.models: list[bytes] = []
        self.hooks_during_call: dict[str, bool] = {}
        self.disposed = False

    @staticmethod
    def _arg_after(args: list[str], flag: str) -> str:
        return args[args.index(flag) + 1]

    def call_main(self, args: list[str]) -> None:
        self.calls.append(list(args))
        self.hooks_during_call = {name: self.has_hook(name) for name in HOOK_NAMES}
        self.models.append(self.fs.read_file(self._arg_after(args, "-l")))

        for fraction in self.progress:
            self.emit_progress(fraction)
        if self.fail is not None:
            raise self.fail
        if self.metadata is not None:
            self.emit_metadata(*self.metadata)
        if self.write_output:
            self.fs.write_file(self._arg_after(args, "-o"), self.gcode)

    def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def engine() -> ScriptedEngine:
    """Scripted in-memory engine."""
    return ScriptedEngine()


@pytest.fixture
def lifecycle(engine: ScriptedEngine) -> EngineLifecycle:
    """Uninitialized lifecycle whose factory hands out ``engine``."""
    return EngineLifecycle(lambda verbose: engine)


@pytest.fixture
def primary_definitions() -> dict[str, dict]:
    """Minimal base definitions."""
    return {
        "fdmprinter": {"version": 2, "name": "FFF Printer", "settings": {}},
        "fdmextruder": {"version": 2, "name": "Extruder", "settings": {}},
    }


@pytest.fixture
def combined_definition() -> CombinedDefinition:
    """Single-extruder printer definition."""
    return CombinedDefinition(
        printer={"version": 2, "name": "Ultimaker 2", "inherits": "fdmprinter"},
        extruders=[{"version": 2, "name": "Extruder 1", "inherits": "fdmextruder"}],
    )


@pytest.fixture
def dual_definition() -> CombinedDefinition:
    """Two-extruder printer definition."""
    return CombinedDefinition(
        printer={"version": 2, "name": "Dual", "inherits": "fdmprinter"},
        extruders=[
            {"version": 2, "name": "Left", "inherits": "fdmextruder"},
            {"version": 2, "name": "Right", "inherits": "fdmextruder"},
        ],
    )


@pytest.fixture
def definitions_dir(
    tmp_path: Path,
    primary_definitions: dict[str, dict],
    combined_definition: CombinedDefinition,
    dual_definition: CombinedDefinition,
) -> Path:
    """Definitions directory with base definitions and two printers."""
    root = tmp_path / "definitions"
    printers = root / "printers"
    printers.mkdir(parents=True)
    for name, content in primary_definitions.items():
        (root / f"{name}.def.json").write_text(json.dumps(content))
    (printers / "ultimaker2.json").write_text(combined_definition.model_dump_json())
    (printers / "dual.json").write_text(dual_definition.model_dump_json())
    return root


@pytest.fixture
def settings(definitions_dir: Path) -> Settings:
    """Settings pointing at the test definitions directory."""
    return Settings(cura_definitions_dir=str(definitions_dir))


@pytest.fixture
def worker(settings: Settings, engine: ScriptedEngine) -> SlicingWorker:
    """Worker backed by the scripted engine."""
    return SlicingWorker(settings=settings, engine_factory=lambda verbose: engine)


@pytest.fixture
def cube_mesh() -> trimesh.Trimesh:
    """Create a small cube mesh (20mm)."""
    return trimesh.creation.box(extents=[20, 20, 20])


@pytest.fixture
def stl_bytes(cube_mesh: trimesh.Trimesh) -> bytes:
    """Binary STL of the cube."""
    return cube_mesh.export(file_type="stl")


@pytest.fixture
def obj_bytes(cube_mesh: trimesh.Trimesh) -> bytes:
    """Wavefront OBJ of the cube."""
    exported = cube_mesh.export(file_type="obj")
    return exported.encode("utf-8") if isinstance(exported, str) else exported
