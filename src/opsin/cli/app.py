"""Opsin CLI application.

Commands:
    list        - List .cube files in the LUT directory
    info        - Parse a LUT and show its statistics
    sample      - Transform one RGB color through a LUT
    precompute  - Build (or load) the precomputed table for a LUT
    apply       - Transform a raw interleaved RGB file through a LUT
    identity    - Write an identity .cube file
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn

from opsin import __version__
from opsin.config import DEFAULT_SETTINGS_FILE, Settings, list_luts, load_settings
from opsin.core.types import InterpolationMode
from opsin.errors import OpsinError

app = typer.Typer(
    name="opsin",
    help="Apply 3D color LUTs through a precomputed 24-bit table.",
    no_args_is_help=True,
)
console = Console()

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

_settings = Settings()


def version_callback(value: bool):
    if value:
        console.print(f"Opsin v{__version__}")
        raise typer.Exit()


def _fail(e: Exception):
    console.print(f"\n[red]Error:[/red] {e}")
    raise typer.Exit(code=1)


def _resolve_mode(mode: Optional[str]) -> InterpolationMode:
    value = mode if mode is not None else _settings.mode
    try:
        return InterpolationMode(value.lower())
    except ValueError:
        raise typer.BadParameter("Mode must be one of: nearest, trilinear.")


def _resolve_lut(lut: Optional[Path]) -> Path:
    if lut is not None:
        return lut
    selected = _settings.selected_lut_path
    if selected is None:
        raise typer.BadParameter("No LUT given and no lut.selected in settings.")
    return selected


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit.",
        callback=version_callback, is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config: Path = typer.Option(
        DEFAULT_SETTINGS_FILE, "--config", "-c", help="YAML settings file.",
    ),
):
    global _settings
    if verbose:
        logging.getLogger("opsin").setLevel(logging.DEBUG)
    try:
        _settings = load_settings(config)
    except OpsinError as e:
        _fail(e)


@app.command("list")
def list_command(
    lut_dir: Optional[Path] = typer.Option(None, "--lut-dir", help="LUT directory."),
):
    """List .cube files in the LUT directory."""
    directory = lut_dir if lut_dir is not None else _settings.lut_dir
    names = list_luts(directory)
    if not names:
        console.print(f"[yellow]No .cube files in {directory}[/yellow]")
        return
    for name in names:
        marker = "*" if name == _settings.selected_lut else " "
        console.print(f"{marker} {name}")


@app.command()
def info(
    lut: Optional[Path] = typer.Argument(None, help="LUT file (.cube)."),
):
    """Parse a LUT and show its statistics."""
    from opsin.core.lut import grid_stats
    from opsin.io.cube import read_cube

    lut = _resolve_lut(lut)
    try:
        grid = read_cube(lut)
    except (OpsinError, OSError) as e:
        _fail(e)

    stats = grid_stats(grid)
    table = Table(title=f"{lut.name}", show_header=True, header_style="bold")
    table.add_column("Property", style="cyan")
    table.add_column("Value", justify="right")

    def fmt3(values):
        return " ".join(f"{v:.4f}" for v in values)

    table.add_row("Title", grid.title or "-")
    table.add_row("Size", f"{grid.size}^3 = {stats['entries']:,} entries")
    table.add_row("Domain min", fmt3(grid.domain_min))
    table.add_row("Domain max", fmt3(grid.domain_max))
    table.add_row("Min", fmt3(stats["min_per_channel"]))
    table.add_row("Max", fmt3(stats["max_per_channel"]))
    table.add_row("Mean", fmt3(stats["mean_per_channel"]))
    table.add_row("Out-of-range", f"{stats['oog_percentage']:.2f}%")
    table.add_row("Neutral violations", str(stats["neutral_mono_violations"]))
    table.add_row("Digest", grid.digest()[:16])
    console.print(table)


@app.command()
def sample(
    lut: Path = typer.Argument(..., help="LUT file (.cube)."),
    r: int = typer.Argument(..., min=0, max=255, help="Red (0-255)."),
    g: int = typer.Argument(..., min=0, max=255, help="Green (0-255)."),
    b: int = typer.Argument(..., min=0, max=255, help="Blue (0-255)."),
    mode: Optional[str] = typer.Option(None, "-m", "--mode", help="nearest or trilinear."),
):
    """Transform one RGB color directly through the sampling engine."""
    from opsin.core.sampling import sample as sample_color
    from opsin.io.cube import read_cube

    resolved = _resolve_mode(mode)
    try:
        grid = read_cube(lut)
    except (OpsinError, OSError) as e:
        _fail(e)

    out = sample_color(grid, resolved, r, g, b)
    console.print(f"({r}, {g}, {b}) -> ({out[0]}, {out[1]}, {out[2]})")


def _prepare(lut, mode, cache_dir, output, workers):
    from opsin.pipeline.runner import prepare_table

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Preparing table...", total=100)

        def on_progress(stage: str, fraction: float, message: str):
            stage_weights = {"parse": (0, 5), "generate": (5, 90), "validate": (95, 5)}
            base, weight = stage_weights.get(stage, (0, 0))
            progress.update(task, completed=base + weight * fraction,
                            description=f"{stage}: {message}" if message else stage)

        try:
            prepared = prepare_table(
                lut, mode,
                cache_dir=cache_dir if cache_dir is not None else _settings.cache_dir,
                cache_path=output,
                workers=workers if workers is not None else _settings.workers,
                progress_callback=on_progress,
            )
            progress.update(task, completed=100, description="Complete")
        except (OpsinError, OSError) as e:
            _fail(e)
    return prepared


@app.command()
def precompute(
    lut: Optional[Path] = typer.Argument(None, help="LUT file (.cube)."),
    mode: Optional[str] = typer.Option(None, "-m", "--mode", help="nearest or trilinear."),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory."),
    output: Optional[Path] = typer.Option(None, "-o", "--output", help="Explicit cache file."),
    workers: Optional[int] = typer.Option(None, "-j", "--workers", min=1, help="Worker threads."),
):
    """Build (or load) the precomputed table for a LUT."""
    lut = _resolve_lut(lut)
    resolved = _resolve_mode(mode)

    console.print(f"\n[bold]Opsin Table Precompute[/bold]")
    console.print(f"  LUT:  {lut}")
    console.print(f"  Mode: {resolved.value}")
    console.print()

    prepared = _prepare(lut, resolved, cache_dir, output, workers)

    console.print(f"\n[green]Table:[/green] {prepared.cache_path}")
    total_time = prepared.diagnostics.get("total_time", 0)
    console.print(f"[dim]Total time: {total_time:.2f}s[/dim]\n")


@app.command("apply")
def apply_command(
    lut: Path = typer.Argument(..., help="LUT file (.cube)."),
    input: Path = typer.Argument(..., help="Raw interleaved 8-bit RGB input file."),
    output: Path = typer.Argument(..., help="Raw RGB output file."),
    mode: Optional[str] = typer.Option(None, "-m", "--mode", help="nearest or trilinear."),
    cache_dir: Optional[Path] = typer.Option(None, "--cache-dir", help="Cache directory."),
    workers: Optional[int] = typer.Option(None, "-j", "--workers", min=1, help="Worker threads."),
):
    """Transform a raw RGB buffer file through a LUT's precomputed table."""
    from opsin.pipeline.runner import transform_buffer

    resolved = _resolve_mode(mode)
    try:
        data = input.read_bytes()
    except OSError as e:
        _fail(e)

    prepared = _prepare(lut, resolved, cache_dir, None, workers)
    try:
        out = transform_buffer(prepared, data, workers=workers)
        output.write_bytes(out)
    except (ValueError, OSError) as e:
        _fail(e)

    console.print(f"[green]Saved:[/green] {output} ({len(out) // 3:,} pixels)")


@app.command()
def identity(
    output: Path = typer.Argument(..., help="Output .cube path."),
    size: int = typer.Option(33, "-s", "--size", min=2, help="Grid size per axis."),
    title: str = typer.Option("Opsin Identity", "--title", help="LUT title."),
):
    """Write an identity .cube file."""
    from opsin.core.lut import identity_grid
    from opsin.io.cube import write_cube

    try:
        write_cube(output, identity_grid(size, title=title))
    except (OpsinError, OSError) as e:
        _fail(e)
    console.print(f"[green]Saved:[/green] {output} ({size}^3)")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
