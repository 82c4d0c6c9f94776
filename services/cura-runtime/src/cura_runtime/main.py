# noqa: D401
"""CLI entry point for the Cura slicing runtime."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from common.config import get_settings
from common.logging import configure_logging

from .definitions import DefinitionLibrary
from .errors import CuraRuntimeError
from .progress import normalize_extension
from .schemas import Override, SliceResult
from .slicer import CuraSlicer
from .worker import SlicingWorker

app = typer.Typer(
    name="cura-runtime",
    help="Slice 3D models to G-code with an embedded CuraEngine",
    add_completion=False,
)

console = Console()

_OVERRIDE = re.compile(r"^(?:(e\d+):)?([^=]+)=(.*)$")


def parse_override(text: str) -> Override:
    """``layer_height=0.2`` or ``e1:material_print_temperature=215``."""
    match = _OVERRIDE.match(text.strip())
    if not match:
        raise typer.BadParameter(f"expected [eN:]key=value, got {text!r}")
    scope, key, value = match.groups()
    return Override(scope=scope, key=key.strip(), value=value.strip())


def _definitions_dir(value: Optional[Path]) -> Path:
    return value or Path(get_settings().cura_definitions_dir)


async def _slice(
    slicer: CuraSlicer, data: bytes, extension: str, show_progress: bool
) -> SliceResult:
    try:
        if not show_progress:
            return await slicer.slice(data, extension)

        with Progress(
            TextColumn("[bold green]Slicing"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("slice", total=1.0)
            return await slicer.slice(
                data,
                extension,
                on_progress=lambda value: progress.update(task, completed=value),
            )
    finally:
        await slicer.destroy()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (defaults to LOG_LEVEL)",
    ),
) -> None:
    """Slice 3D models to G-code with an embedded CuraEngine."""
    configure_logging(log_level or get_settings().log_level)


@app.command()
def printers(
    definitions_dir: Optional[Path] = typer.Option(
        None,
        "--definitions-dir",
        "-d",
        help="Definitions directory (defaults to CURA_DEFINITIONS_DIR)",
    ),
) -> None:
    """List printer definitions available for slicing."""
    library = DefinitionLibrary(_definitions_dir(definitions_dir))
    printer_ids = library.list_printers()
    if not printer_ids:
        console.print(f"[yellow]No printers found in {library.definitions_dir}[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Printers")
    table.add_column("ID", style="cyan")
    table.add_column("Extruders", justify="right")
    for printer_id in printer_ids:
        try:
            extruders = str(len(library.resolve(printer_id).extruders))
        except CuraRuntimeError as e:
            extruders = f"[red]{e}[/red]"
        table.add_row(printer_id, extruders)
    console.print(table)


@app.command("slice")
def slice_model(
    model: Path = typer.Argument(..., exists=True, dir_okay=False, help="Model file"),
    printer: str = typer.Option(..., "--printer", "-p", help="Printer definition ID"),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="G-code output path (defaults to the model path with .gcode)",
    ),
    override: List[str] = typer.Option(
        [],
        "--override",
        "-s",
        help="Setting override [eN:]key=value, repeatable",
    ),
    command: Optional[str] = typer.Option(
        None,
        "--command",
        "-c",
        help="Raw CuraEngine launch command (ignores overrides)",
    ),
    definitions_dir: Optional[Path] = typer.Option(
        None,
        "--definitions-dir",
        "-d",
        help="Definitions directory (defaults to CURA_DEFINITIONS_DIR)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Verbose engine output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide the progress bar"),
) -> None:
    """Slice a model file into G-code."""
    overrides = [parse_override(text) for text in override]
    output_path = output or model.with_suffix(".gcode")
    definitions_path = _definitions_dir(definitions_dir)

    try:
        library = DefinitionLibrary(definitions_path)
        definition = library.resolve(printer)
        settings = get_settings().model_copy(
            update={"cura_definitions_dir": str(definitions_path)}
        )
        slicer = CuraSlicer(
            definition,
            command=command,
            overrides=overrides,
            verbose=verbose or settings.cura_verbose,
            worker=SlicingWorker(settings=settings),
        )
        result = asyncio.run(
            _slice(slicer, model.read_bytes(), normalize_extension(model.suffix), not quiet)
        )
    except CuraRuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    output_path.write_bytes(result.gcode)
    console.print(f"[green]✓[/green] Wrote {output_path} ({len(result.gcode)} bytes)")

    if result.metadata is not None:
        meta = result.metadata
        table = Table(title="Print estimate")
        table.add_column("Field", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Flavor", meta.flavor)
        table.add_row("Print time (s)", f"{meta.print_time:.0f}")
        table.add_row("Material 1", f"{meta.material1_usage:g}")
        table.add_row("Material 2", f"{meta.material2_usage:g}")
        table.add_row("Nozzle (mm)", f"{meta.nozzle_size:g}")
        table.add_row("Filament", f"{meta.filament_usage:g}")
        table.add_row(
            "Bounds min",
            f"{meta.min_x:g}, {meta.min_y:g}, {meta.min_z:g}",
        )
        table.add_row(
            "Bounds max",
            f"{meta.max_x:g}, {meta.max_y:g}, {meta.max_z:g}",
        )
        console.print(table)


if __name__ == "__main__":
    app()
