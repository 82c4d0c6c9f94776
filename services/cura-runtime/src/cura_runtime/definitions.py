"""Printer definition files: host-side library and engine-side staging."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from common.logging import get_logger

from .arguments import DEFINITIONS_DIR
from .errors import DefinitionError, DefinitionMismatch, NotInitialized
from .filesystem import VirtualFilesystem
from .lifecycle import EngineLifecycle
from .schemas import CombinedDefinition

LOGGER = get_logger(__name__)

# Base definitions every printer definition inherits from
PRIMARY_DEFINITIONS = ("fdmprinter", "fdmextruder")

PRINTER_DEFINITION_FILE = "printer.def.json"


def definition_path(name: str) -> str:
    return f"{DEFINITIONS_DIR}/{name}.def.json"


def extruder_path(index: int) -> str:
    return f"{DEFINITIONS_DIR}/extruder-{index}.def.json"


class DefinitionLibrary:
    """Loads definitions from a directory on the host.

    Layout::

        <definitions_dir>/fdmprinter.def.json
        <definitions_dir>/fdmextruder.def.json
        <definitions_dir>/printers/<printer_id>.json   {"printer": {...}, "extruders": [...]}
    """

    def __init__(self, definitions_dir: str | Path):
        self.definitions_dir = Path(definitions_dir)
        self._primary_cache: Optional[dict[str, dict[str, Any]]] = None

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            raise DefinitionError(f"Definition file not found: {path}")
        try:
            return json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise DefinitionError(f"Failed to read definition {path}: {e}") from e

    def primary_definitions(self) -> dict[str, dict[str, Any]]:
        """Return the base definitions keyed by name.

        Raises:
            DefinitionError: If any base definition is missing or unreadable
        """
        if self._primary_cache is None:
            self._primary_cache = {
                name: self._read_json(self.definitions_dir / f"{name}.def.json")
                for name in PRIMARY_DEFINITIONS
            }
            LOGGER.debug(
                "Loaded primary definitions",
                definitions_dir=str(self.definitions_dir),
                names=list(self._primary_cache),
            )
        return self._primary_cache

    def list_printers(self) -> list[str]:
        printers_dir = self.definitions_dir / "printers"
        if not printers_dir.exists():
            return []
        return sorted(path.stem for path in printers_dir.glob("*.json"))

    def resolve(self, printer_id: str) -> CombinedDefinition:
        """Load a printer definition bundle by id.

        Raises:
            DefinitionError: If the printer is unknown or its bundle is invalid
        """
        data = self._read_json(self.definitions_dir / "printers" / f"{printer_id}.json")
        try:
            return CombinedDefinition.model_validate(data)
        except ValidationError as e:
            raise DefinitionError(f"Invalid printer definition {printer_id}: {e}") from e


class DefinitionStager:
    """Writes definition files into the engine's virtual filesystem.

    The files written by ``stage`` are exactly the files ``unstage`` removes,
    so definitions must be unstaged before a different set is staged.
    """

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        primary_definitions: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        self.lifecycle = lifecycle
        self.primary_definitions = dict(primary_definitions or {})
        self.extruder_count: Optional[int] = None
        self._staged_primary: tuple[str, ...] = ()

    @property
    def is_staged(self) -> bool:
        return self.extruder_count is not None

    def staged_paths(self) -> list[str]:
        """Virtual paths written by the last ``stage`` call."""
        if self.extruder_count is None:
            return []
        paths = [definition_path(name) for name in self._staged_primary]
        paths.append(f"{DEFINITIONS_DIR}/{PRINTER_DEFINITION_FILE}")
        paths.extend(extruder_path(i) for i in range(self.extruder_count))
        return paths

    def stage(self, definition: CombinedDefinition | Mapping[str, Any]) -> None:
        """Write primary, printer and extruder definitions.

        Raises:
            NotInitialized: If the engine has not been initialized
            DefinitionError: If definitions are already staged
        """
        if not isinstance(definition, CombinedDefinition):
            definition = CombinedDefinition.model_validate(definition)

        # Serialize up front so a bad definition leaves nothing behind
        files: list[tuple[str, str]] = [
            (definition_path(name), json.dumps(content))
            for name, content in self.primary_definitions.items()
        ]
        files.append(
            (f"{DEFINITIONS_DIR}/{PRINTER_DEFINITION_FILE}", json.dumps(definition.printer))
        )
        files.extend(
            (extruder_path(i), json.dumps(extruder))
            for i, extruder in enumerate(definition.extruders)
        )

        with self.lifecycle.lease("add definitions") as engine:
            if self.is_staged:
                raise DefinitionError(
                    "Definitions are already staged; remove them before staging new ones"
                )
            engine.fs.mkdir(DEFINITIONS_DIR)
            written: list[str] = []
            try:
                for path, payload in files:
                    engine.fs.write_file(path, payload)
                    written.append(path)
            except Exception as e:
                LOGGER.error("Staging definitions failed", error=str(e), written=written)
                self._rollback(engine.fs, written)
                raise

            self._staged_primary = tuple(self.primary_definitions)
            self.extruder_count = len(definition.extruders)

        LOGGER.info(
            "Definitions staged",
            primary=list(self._staged_primary),
            extruders=self.extruder_count,
        )

    def unstage(self) -> None:
        """Remove every staged definition file and the definitions directory.

        Raises:
            NotInitialized: If the engine is not initialized or nothing is staged
            DefinitionMismatch: If the directory no longer holds exactly the
                staged files; nothing is removed in that case
        """
        self.lifecycle.require("remove definitions")
        if self.extruder_count is None:
            raise NotInitialized("Attempting to remove definitions before initialization!")

        with self.lifecycle.lease("remove definitions") as engine:
            paths = self.staged_paths()
            expected = {path.rsplit("/", 1)[-1] for path in paths}
            present = (
                set(engine.fs.listdir(DEFINITIONS_DIR))
                if engine.fs.exists(DEFINITIONS_DIR)
                else set()
            )
            missing = sorted(expected - present)
            unexpected = sorted(present - expected)
            if missing or unexpected:
                LOGGER.error(
                    "Staged definitions changed since staging",
                    missing=missing,
                    unexpected=unexpected,
                    extruders=self.extruder_count,
                )
                raise DefinitionMismatch(
                    f"Staged definitions changed since staging "
                    f"(missing: {missing}, unexpected: {unexpected})"
                )

            for path in paths:
                engine.fs.unlink(path)
            engine.fs.rmdir(DEFINITIONS_DIR)

            removed = self.extruder_count
            self.reset()

        LOGGER.info("Definitions removed", extruders=removed)

    @staticmethod
    def _rollback(fs: VirtualFilesystem, written: list[str]) -> None:
        """Remove a partially staged set; the staging error takes precedence."""
        try:
            for path in reversed(written):
                if fs.exists(path):
                    fs.unlink(path)
            fs.rmdir(DEFINITIONS_DIR)
        except OSError as e:
            LOGGER.warning("Could not roll back partial staging", error=str(e))

    def reset(self) -> None:
        """Forget staged state without touching the filesystem."""
        self.extruder_count = None
        self._staged_primary = ()


__all__ = [
    "PRIMARY_DEFINITIONS",
    "DefinitionLibrary",
    "DefinitionStager",
    "definition_path",
    "extruder_path",
]
