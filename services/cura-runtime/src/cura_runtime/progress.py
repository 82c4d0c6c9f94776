"""Blend converter and slicer progress into a single [0, 1] stream."""

from __future__ import annotations

import math
from typing import Optional

from .channels import EventChannel

STL_EXTENSION = "stl"

# Share of the progress bar given to file conversion for non-STL input
CONVERTER_BIAS = 0.3


def normalize_extension(extension: str) -> str:
    """``".STL"`` -> ``"stl"``."""
    return extension.strip().lstrip(".").lower()


def converter_bias(extension: str) -> float:
    """Weight of the conversion phase: 0 for STL input, 0.3 otherwise."""
    return 0.0 if normalize_extension(extension) == STL_EXTENSION else CONVERTER_BIAS


def _clamp(fraction: float) -> float:
    return min(max(float(fraction), 0.0), 1.0)


def _round_half_up(fraction: float) -> float:
    return math.floor(100 * fraction + 0.5) / 100


class ProgressBlender:
    """Maps per-phase progress onto one non-decreasing stream.

    Conversion progress is scaled into ``[0, converter_bias]`` and slicer
    progress into ``[converter_bias, 1]``. Slicer progress is rounded to two
    decimals and only forwarded when the rounded value changes.
    """

    def __init__(self, channel: EventChannel[float], extension: str):
        self.channel = channel
        self.converter_bias = converter_bias(extension)
        self.slicer_bias = 1 - self.converter_bias
        self._previous_slicer_progress = 0.0
        self._last_emitted: Optional[float] = None

    @property
    def last_emitted(self) -> Optional[float]:
        return self._last_emitted

    def converter_progress(self, fraction: float) -> None:
        self._emit(_clamp(fraction) * self.converter_bias)

    def slicer_progress(self, fraction: float) -> None:
        rounded = _round_half_up(_clamp(fraction))
        if rounded == self._previous_slicer_progress:
            return
        self._previous_slicer_progress = rounded
        self._emit(rounded * self.slicer_bias + self.converter_bias)

    def finish(self) -> None:
        """Emit a terminal 1.0 unless the stream already reached it."""
        if self._last_emitted is None or self._last_emitted < 1.0:
            self._previous_slicer_progress = 1.0
            self._emit(1.0)

    def _emit(self, value: float) -> None:
        value = min(round(value, 10), 1.0)
        if self._last_emitted is not None and value < self._last_emitted:
            return
        self._last_emitted = value
        self.channel.publish(value)


__all__ = [
    "CONVERTER_BIAS",
    "STL_EXTENSION",
    "ProgressBlender",
    "converter_bias",
    "normalize_extension",
]
