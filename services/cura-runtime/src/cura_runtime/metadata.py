"""Capture the engine's one-shot metadata callback."""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from common.logging import get_logger

from .channels import EventChannel
from .errors import EngineFailure
from .schemas import METADATA_FIELDS, SliceMetadata

LOGGER = get_logger(__name__)


class MetadataCollector:
    """Engine metadata hook.

    Called with the positional values ``flavor, printTime, material1Usage,
    material2Usage, nozzleSize, filamentUsage, minX, minY, minZ, maxX, maxY,
    maxZ``. Each call replaces ``latest`` and is forwarded to the channel.
    """

    def __init__(self, channel: EventChannel[SliceMetadata]):
        self.channel = channel
        self.latest: Optional[SliceMetadata] = None
        self.calls = 0

    def __call__(self, *values: object) -> None:
        if len(values) != len(METADATA_FIELDS):
            raise EngineFailure(
                f"Engine reported {len(values)} metadata values, "
                f"expected {len(METADATA_FIELDS)}"
            )
        try:
            metadata = SliceMetadata(**dict(zip(METADATA_FIELDS, values)))
        except ValidationError as e:
            raise EngineFailure(f"Engine reported malformed metadata: {e}") from e

        self.calls += 1
        if self.calls > 1:
            LOGGER.warning("Engine reported metadata more than once", calls=self.calls)
        self.latest = metadata
        self.channel.publish(metadata)


__all__ = ["MetadataCollector"]
