"""CuraEngine command line synthesis.

CuraEngine syntax: ``slice -j printer.def.json -p [-v] [-e<i>|-g] -s key=value ... -l model.stl -o output.gcode``
"""

from __future__ import annotations

from typing import Iterable, Optional

from .schemas import Override

DEFINITIONS_DIR = "/definitions"
PRINTER_DEFINITION = "definitions/printer.def.json"
MODEL_INPUT = "Model.stl"
MODEL_OUTPUT = "Model.gcode"


def generate_arguments(
    overrides: Optional[Iterable[Override | dict]] = None,
    verbose: Optional[bool] = False,
) -> list[str]:
    """Build the engine argument vector for a run.

    Overrides are emitted in the order given. A scoped override switches the
    settings target to that extruder (``-e<i>``); an unscoped override after
    a scoped one switches back to the global settings (``-g``).
    """
    # -p: report progress while slicing
    args = ["slice", "-j", PRINTER_DEFINITION, "-p"]

    if verbose:
        args.append("-v")

    current_scope: Optional[int] = None
    for raw in overrides or ():
        override = raw if isinstance(raw, Override) else Override.model_validate(raw)
        if override.scope != current_scope:
            args.append("-g" if override.scope is None else f"-e{override.scope}")
            current_scope = override.scope
        args.extend(["-s", f"{override.key}={override.value}"])

    if current_scope is not None:
        args.append("-g")

    args.extend(["-l", MODEL_INPUT, "-o", MODEL_OUTPUT])
    return args


def split_command(command: str) -> list[str]:
    """Split a raw launch command into arguments, verbatim on single spaces."""
    return command.split(" ")


__all__ = [
    "DEFINITIONS_DIR",
    "PRINTER_DEFINITION",
    "MODEL_INPUT",
    "MODEL_OUTPUT",
    "generate_arguments",
    "split_command",
]
