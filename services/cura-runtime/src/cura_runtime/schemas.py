"""Pydantic schemas for slicing runs."""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EXTRUDER_SCOPE = re.compile(r"^e(\d+)$")


class Override(BaseModel):
    """A single CuraEngine setting override.

    ``scope`` is ``None`` to apply the setting to every extruder, or the
    zero-based index of the extruder it applies to. The engine-style string
    form (``"e0"``, ``"e1"``, ...) is accepted as well.
    """

    scope: Optional[int] = Field(
        default=None,
        description="Extruder index, or None for all extruders",
        ge=0,
    )
    key: str = Field(
        ...,
        description="CuraEngine setting name",
        min_length=1,
        examples=["layer_height", "mesh_position_x"],
    )
    value: str = Field(
        ...,
        description="Setting value, passed to CuraEngine verbatim",
        examples=["0.2", "20"],
    )

    @field_validator("scope", mode="before")
    @classmethod
    def _parse_scope(cls, value: Any) -> Any:
        if isinstance(value, str):
            match = _EXTRUDER_SCOPE.match(value.strip().lower())
            if not match:
                raise ValueError(f"invalid extruder scope: {value!r}")
            return int(match.group(1))
        return value

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value


class SliceMetadata(BaseModel):
    """Print estimates reported by the engine once per successful run."""

    model_config = ConfigDict(populate_by_name=True)

    flavor: str = Field(..., description="G-code flavor", examples=["UltiGCode"])
    print_time: float = Field(..., alias="printTime", description="Print time (seconds)")
    material1_usage: float = Field(..., alias="material1Usage")
    material2_usage: float = Field(..., alias="material2Usage")
    nozzle_size: float = Field(..., alias="nozzleSize", description="Nozzle diameter (mm)")
    filament_usage: float = Field(..., alias="filamentUsage")
    min_x: float = Field(..., alias="minX")
    min_y: float = Field(..., alias="minY")
    min_z: float = Field(..., alias="minZ")
    max_x: float = Field(..., alias="maxX")
    max_y: float = Field(..., alias="maxY")
    max_z: float = Field(..., alias="maxZ")


# Positional order of the engine's metadata callback arguments
METADATA_FIELDS: tuple[str, ...] = tuple(SliceMetadata.model_fields)


class CombinedDefinition(BaseModel):
    """A printer definition plus one definition per extruder."""

    printer: dict[str, Any] = Field(..., description="printer.def.json contents")
    extruders: list[dict[str, Any]] = Field(
        ...,
        description="Extruder definitions, extruder 0 first",
        min_length=1,
    )


class SliceResult(BaseModel):
    """G-code produced by a slice together with its metadata."""

    gcode: bytes
    metadata: Optional[SliceMetadata] = None


__all__ = [
    "Override",
    "SliceMetadata",
    "METADATA_FIELDS",
    "CombinedDefinition",
    "SliceResult",
]
