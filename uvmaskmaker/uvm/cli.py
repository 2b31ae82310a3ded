"""Command line interface for the ``uvm`` tool."""

from __future__ import annotations

import json
import logging
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, List, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import get_version
from .analysis import UvAnalysis, analysis_to_report, analyze
from .compositor import ChannelFlags, ExportOptions, label_map_to_colors
from .core import UVMaskError
from .export import bake_vertex_colors, clamp_texture_size, export_mask
from .image_utils import read_base_image, write_color_buffer
from .mesh_utils import MeshData, load_mesh
from .uv_raster import build_label_map, resolve_selection

__all__ = ["main"]

_LOGGER = logging.getLogger(__name__)

_LOADER_CHOICE = click.Choice(["auto", "trimesh", "obj"], case_sensitive=False)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s:%(name)s:%(message)s")
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def _probe_module(module_name: str) -> Tuple[bool, str | None]:
    try:
        module = import_module(module_name)
    except Exception as exc:  # pragma: no cover - import failure depends on environment
        return False, str(exc)

    version = getattr(module, "__version__", None)
    detail = f"v{version}" if version else None
    return True, detail


def _console(ctx: click.Context) -> Console:
    ctx_obj: Dict[str, Any] = ctx.obj if isinstance(ctx.obj, dict) else {}
    console = ctx_obj.get("console")
    if not isinstance(console, Console):
        console = Console()
    return console


def _load_and_analyze(mesh_path: Path, loader: str, uv_channel: int) -> Tuple[MeshData, UvAnalysis]:
    try:
        mesh = load_mesh(mesh_path, loader=loader)
        analysis = analyze(mesh, uv_channel)
    except UVMaskError as exc:
        raise click.ClickException(str(exc)) from exc
    return mesh, analysis


def _resolve_islands(analysis: UvAnalysis, islands: Tuple[int, ...], all_islands: bool) -> List[int]:
    if all_islands:
        return list(range(analysis.island_count))
    if not islands:
        raise click.UsageError("Select islands with --island or pass --all-islands")
    return list(islands)


def _selection_options(func: Any) -> Any:
    func = click.option(
        "--all-islands", is_flag=True, help="Select every island of the UV channel"
    )(func)
    func = click.option(
        "--island",
        "islands",
        type=int,
        multiple=True,
        help="Island index to select (repeatable)",
    )(func)
    return func


def _channel_options(func: Any) -> Any:
    for name, default in (("a", False), ("b", False), ("g", False), ("r", True)):
        func = click.option(
            f"--write-{name}/--no-write-{name}",
            f"write_{name}",
            default=default,
            show_default=True,
            help=f"Write the {name.upper()} channel in channel-write mode",
        )(func)
    return func


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Entrypoint for the ``uvm`` command."""

    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["console"] = Console()
    ctx.obj["verbose"] = bool(verbose)


@main.command()
def version() -> None:
    """Show package version and dependency probes."""

    click.echo(f"uvmaskmaker {get_version()}")

    for module_name in ("cv2", "trimesh", "PIL"):
        available, detail = _probe_module(module_name)
        status = "yes" if available else "no"
        if detail:
            status = f"{status} ({detail})"
        click.echo(f"{module_name}: {status}")


@main.command(name="inspect")
@click.argument("mesh_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--uv-channel", type=int, default=0, show_default=True, help="UV channel (0-7)")
@click.option("--loader", type=_LOADER_CHOICE, default="auto", show_default=True)
@click.option(
    "--inspect-json",
    type=click.Path(path_type=Path),
    help="Write the island report to this JSON file.",
)
@click.option(
    "--label-map",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Write an island preview image to this path.",
)
@click.option("--size", type=int, default=512, show_default=True, help="Preview image size")
@click.pass_context
def inspect_command(
    ctx: click.Context,
    mesh_path: Path,
    uv_channel: int,
    loader: str,
    inspect_json: Path | None,
    label_map: Path | None,
    size: int,
) -> None:
    """Report the UV islands and seams of a mesh."""

    _mesh, analysis = _load_and_analyze(mesh_path, loader, uv_channel)
    report = analysis_to_report(analysis)
    report["mesh"] = str(mesh_path)

    console = _console(ctx)
    summary = Table(title=str(mesh_path))
    summary.add_column("UV Channel", justify="right")
    summary.add_column("Triangles", justify="right")
    summary.add_column("Islands", justify="right")
    summary.add_column("Border Edges", justify="right")
    summary.add_row(
        str(report["uv_channel"]),
        str(report["triangle_count"]),
        str(report["island_count"]),
        str(report["border_edge_count"]),
    )
    console.print(summary)

    if ctx.obj.get("verbose") and report["islands"]:
        island_table = Table(title="Islands")
        island_table.add_column("Island", justify="right")
        island_table.add_column("Triangles", justify="right")
        island_table.add_column("UV Bounds")
        for island in report["islands"]:
            bounds = ", ".join(f"{value:.3f}" for value in island["bbox_uv"])
            island_table.add_row(str(island["id"]), str(island["triangle_count"]), bounds)
        console.print(island_table)

    if label_map is not None:
        preview_size = clamp_texture_size(size)
        labels = build_label_map(analysis, preview_size, preview_size)
        try:
            write_color_buffer(label_map, label_map_to_colors(labels))
        except UVMaskError as exc:
            raise click.ClickException(str(exc)) from exc
        console.print(f"[green]Wrote island preview to {label_map}[/green]")

    if inspect_json is not None:
        inspect_json.parent.mkdir(parents=True, exist_ok=True)
        with inspect_json.open("w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2)
            handle.write("\n")
        console.print(f"[green]Wrote inspection report to {inspect_json}[/green]")


@main.command(name="export")
@click.argument("mesh_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.argument("output_path", type=click.Path(path_type=Path, dir_okay=False))
@_selection_options
@click.option("--uv-channel", type=int, default=0, show_default=True, help="UV channel (0-7)")
@click.option("--loader", type=_LOADER_CHOICE, default="auto", show_default=True)
@click.option("--size", type=int, default=512, show_default=True, help="Texture size (8-8192)")
@click.option("--margin", type=int, default=2, show_default=True, help="Padding in pixels")
@click.option("--invert", is_flag=True, help="Invert the mask before padding")
@click.option("--save-inverted-too", is_flag=True, help="Also write <name>_inv.png")
@click.option("--channel-write", is_flag=True, help="Write the mask into selected channels")
@_channel_options
@click.option(
    "--base-image",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Image to composite channel writes onto",
)
@click.pass_context
def export_command(
    ctx: click.Context,
    mesh_path: Path,
    output_path: Path,
    islands: Tuple[int, ...],
    all_islands: bool,
    uv_channel: int,
    loader: str,
    size: int,
    margin: int,
    invert: bool,
    save_inverted_too: bool,
    channel_write: bool,
    write_r: bool,
    write_g: bool,
    write_b: bool,
    write_a: bool,
    base_image: Path | None,
) -> None:
    """Rasterise selected islands into a PNG mask."""

    _mesh, analysis = _load_and_analyze(mesh_path, loader, uv_channel)
    selection = _resolve_islands(analysis, islands, all_islands)

    try:
        base = read_base_image(base_image) if base_image is not None else None
        options = ExportOptions(
            texture_size=size,
            pixel_margin=margin,
            invert=invert,
            channel_write=channel_write,
            channels=ChannelFlags(r=write_r, g=write_g, b=write_b, a=write_a),
            base_image=base,
            save_inverted_too=save_inverted_too,
        )
        written = export_mask(analysis, selection, options, output_path)
    except UVMaskError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(
        json.dumps(
            {
                "mesh": str(mesh_path),
                "uv_channel": analysis.uv_channel,
                "islands": resolve_selection(analysis, selection),
                "size": clamp_texture_size(size),
                "outputs": [str(path) for path in written],
            },
            indent=2,
        )
    )


@main.command(name="bake-vc")
@click.argument("mesh_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@_selection_options
@click.option(
    "--output",
    "output_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Destination mesh (defaults to <mesh dir>/VertexColorMasks)",
)
@click.option("--uv-channel", type=int, default=0, show_default=True, help="UV channel (0-7)")
@click.option("--loader", type=_LOADER_CHOICE, default="auto", show_default=True)
@click.option(
    "--channel-write/--simple",
    default=True,
    show_default=True,
    help="Channel-write bake or plain black/white colours",
)
@_channel_options
@click.option(
    "--base-mesh",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="Mesh whose vertex colours serve as the base",
)
@click.option("--overwrite", is_flag=True, help="Replace an existing output file")
@click.pass_context
def bake_vc_command(
    ctx: click.Context,
    mesh_path: Path,
    islands: Tuple[int, ...],
    all_islands: bool,
    output_path: Path | None,
    uv_channel: int,
    loader: str,
    channel_write: bool,
    write_r: bool,
    write_g: bool,
    write_b: bool,
    write_a: bool,
    base_mesh: Path | None,
    overwrite: bool,
) -> None:
    """Bake selected islands into per-vertex colours."""

    mesh, analysis = _load_and_analyze(mesh_path, loader, uv_channel)
    selection = _resolve_islands(analysis, islands, all_islands)

    try:
        base_colors = None
        if base_mesh is not None:
            base_colors = load_mesh(base_mesh, loader="trimesh").colors
            if base_colors is None:
                _LOGGER.warning("Base mesh %s carries no vertex colours", base_mesh)

        written = bake_vertex_colors(
            mesh,
            analysis,
            selection,
            mesh_path=mesh_path,
            output_path=output_path,
            channel_write=channel_write,
            channels=ChannelFlags(r=write_r, g=write_g, b=write_b, a=write_a),
            base_colors=base_colors,
            overwrite=overwrite,
        )
    except UVMaskError as exc:
        raise click.ClickException(str(exc)) from exc

    _console(ctx).print(f"[green]Saved mesh with vertex colours to {written}[/green]")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
