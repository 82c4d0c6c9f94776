"""Convert input models to the STL the engine loads."""

from __future__ import annotations

from io import BytesIO
from typing import Callable, Optional

import trimesh

from common.logging import get_logger

from .errors import ConversionError
from .progress import STL_EXTENSION, normalize_extension

LOGGER = get_logger(__name__)

ProgressSink = Callable[[float], None]
Converter = Callable[[bytes, str, ProgressSink], "bytes | ConversionError"]

SUPPORTED_EXTENSIONS = ("stl", "obj", "ply", "off", "glb", "3mf")


def convert(
    data: bytes,
    extension: str,
    progress: Optional[ProgressSink] = None,
) -> bytes | ConversionError:
    """Convert mesh bytes of the given format into STL bytes.

    STL input is passed through untouched. Failures are returned, not raised.

    Args:
        data: Raw model bytes
        extension: Model format (``stl``, ``obj``, ``ply``, ``off``, ``glb``, ``3mf``)
        progress: Optional sink for conversion progress in [0, 1]
    """
    report = progress or (lambda _fraction: None)
    fmt = normalize_extension(extension)

    if not data:
        return _failed("Mesh payload is empty", fmt)

    if fmt == STL_EXTENSION:
        report(1.0)
        return bytes(data)

    if fmt not in SUPPORTED_EXTENSIONS:
        return _failed(f"Unsupported file extension: {extension}", fmt)

    report(0.0)
    try:
        mesh = trimesh.load(BytesIO(data), file_type=fmt, force="mesh")
    except Exception as e:
        return _failed(f"Failed to load {fmt} model: {e}", fmt)

    if mesh.is_empty:
        return _failed("Loaded mesh is empty", fmt)
    report(0.5)

    exported = mesh.export(file_type="stl")
    report(1.0)

    LOGGER.debug(
        "Converted model to STL",
        source_format=fmt,
        faces=len(mesh.faces),
        size_bytes=len(exported),
    )
    if isinstance(exported, bytes):
        return exported
    if isinstance(exported, str):
        return exported.encode("utf-8")
    # trimesh may return bytearray-like objects
    return bytes(exported)


def _failed(message: str, fmt: str) -> ConversionError:
    LOGGER.warning("Model conversion failed", source_format=fmt, error=message)
    return ConversionError(message, extension=fmt)


__all__ = ["Converter", "ProgressSink", "SUPPORTED_EXTENSIONS", "convert"]
