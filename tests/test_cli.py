import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import trimesh

from uvmaskmaker.uvm.analysis import analyze
from uvmaskmaker.uvm.export import bake_vertex_colors, default_bake_path

from .helpers import (
    read_png_rgba,
    two_island_mesh,
    write_seam_asset,
    write_solid_png,
    write_split_png,
    write_two_island_asset,
    write_two_uv_ply_asset,
)


def _run_cli(args: list[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
    cmd = [sys.executable, "-m", "uvmaskmaker.uvm.cli", *args]
    return subprocess.run(cmd, check=check, capture_output=True, text=True)


def test_inspect_cli_reports_islands(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    json_path = tmp_path / "report.json"

    result = _run_cli(["inspect", str(obj_path), "--inspect-json", str(json_path)])
    assert result.returncode == 0

    report = json.loads(json_path.read_text(encoding="utf-8"))
    assert report["mesh"] == str(obj_path)
    assert report["uv_channel"] == 0
    assert report["island_count"] == 2
    assert report["triangle_count"] == 4
    assert report["border_edge_count"] == 8
    assert [island["triangle_count"] for island in report["islands"]] == [2, 2]


def test_inspect_cli_detects_uv_seam(tmp_path: Path) -> None:
    obj_path = write_seam_asset(tmp_path)
    json_path = tmp_path / "seam.json"
    preview = tmp_path / "labels.png"

    _run_cli(
        [
            "--verbose",
            "inspect",
            str(obj_path),
            "--inspect-json",
            str(json_path),
            "--label-map",
            str(preview),
            "--size",
            "32",
        ]
    )

    report = json.loads(json_path.read_text(encoding="utf-8"))
    assert report["island_count"] == 2
    assert report["border_edge_count"] == 5

    labels = read_png_rgba(preview)
    assert labels.shape == (32, 32, 4)
    assert labels[..., 3].any()


def test_export_cli_writes_mask(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    output = tmp_path / "masks" / "island0.png"

    result = _run_cli(
        [
            "export",
            str(obj_path),
            str(output),
            "--island",
            "0",
            "--size",
            "16",
            "--margin",
            "0",
            "--save-inverted-too",
        ]
    )

    summary = json.loads(result.stdout)
    inverted = tmp_path / "masks" / "island0_inv.png"
    assert summary["islands"] == [0]
    assert summary["size"] == 16
    assert summary["outputs"] == [str(output), str(inverted)]

    pixels = read_png_rgba(output)
    assert pixels.shape == (16, 16, 4)
    assert tuple(pixels[8, 3]) == (0, 0, 0, 255)
    assert tuple(pixels[8, 12]) == (255, 255, 255, 255)
    assert np.all(pixels[..., 3] == 255)

    flipped = read_png_rgba(inverted)
    assert np.array_equal(flipped[..., :3], 255 - pixels[..., :3])


def test_export_cli_channel_write_over_base(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    base_path = tmp_path / "base.png"
    write_solid_png(base_path, 16)
    output = tmp_path / "channel.png"

    _run_cli(
        [
            "export",
            str(obj_path),
            str(output),
            "--island",
            "0",
            "--size",
            "16",
            "--margin",
            "0",
            "--channel-write",
            "--write-r",
            "--base-image",
            str(base_path),
        ]
    )

    pixels = read_png_rgba(output)
    assert tuple(pixels[8, 3]) == (0, 128, 128, 255)
    assert tuple(pixels[8, 12]) == (128, 128, 128, 255)


def test_bake_vc_cli_writes_vertex_colors(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    output = tmp_path / "baked.ply"

    _run_cli(["bake-vc", str(obj_path), "--island", "1", "--output", str(output)])

    assert output.exists()
    baked = trimesh.load(str(output), process=False)
    colors = np.asarray(baked.visual.vertex_colors)
    assert colors.shape == (8, 4)
    assert np.all(colors[4:, 0] == 0)
    assert np.all(colors[:4, 0] == 255)
    assert np.all(colors[:, 1:3] == 255)


def test_missing_uv_channel_fails(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)

    result = _run_cli(["inspect", str(obj_path), "--uv-channel", "2"], check=False)

    assert result.returncode != 0
    assert "no UV2" in result.stderr


def test_export_requires_a_selection(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)

    result = _run_cli(["export", str(obj_path), str(tmp_path / "out.png")], check=False)

    assert result.returncode == 2
    assert "--island" in result.stderr
    assert not (tmp_path / "out.png").exists()


def test_bake_output_defaults_and_never_overwrites(tmp_path: Path) -> None:
    mesh = two_island_mesh()
    analysis = analyze(mesh, 0)
    mesh_path = tmp_path / "two_islands.obj"

    expected = tmp_path.resolve() / "VertexColorMasks" / "TwoIslands_WithVertexColors.ply"
    assert default_bake_path(mesh, mesh_path) == expected

    first = bake_vertex_colors(mesh, analysis, [0], mesh_path=mesh_path)
    second = bake_vertex_colors(mesh, analysis, [0], mesh_path=mesh_path)
    third = bake_vertex_colors(mesh, analysis, [0], mesh_path=mesh_path, overwrite=True)

    assert first == expected
    assert second == expected.with_name("TwoIslands_WithVertexColors 1.ply")
    assert third == expected
    assert first.exists() and second.exists()


def test_inspect_cli_reads_second_uv_set(tmp_path: Path) -> None:
    ply_path = write_two_uv_ply_asset(tmp_path)
    json_path = tmp_path / "uv1.json"

    _run_cli(["inspect", str(ply_path), "--uv-channel", "1", "--inspect-json", str(json_path)])

    report = json.loads(json_path.read_text(encoding="utf-8"))
    assert report["uv_channel"] == 1
    assert report["island_count"] == 1
    assert report["islands"][0]["bbox_uv"] == [0.0, 0.0, 0.5, 0.5]

    result = _run_cli(["inspect", str(ply_path), "--uv-channel", "2"], check=False)
    assert result.returncode != 0


def test_export_summary_lists_only_rasterised_islands(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    output = tmp_path / "mask.png"

    result = _run_cli(
        [
            "export",
            str(obj_path),
            str(output),
            "--island",
            "7",
            "--island",
            "0",
            "--island",
            "0",
            "--size",
            "16",
        ]
    )

    summary = json.loads(result.stdout)
    assert summary["islands"] == [0]
    assert summary["outputs"] == [str(output)]


def test_channel_write_keeps_base_rows_in_place(tmp_path: Path) -> None:
    obj_path = write_two_island_asset(tmp_path)
    base_path = tmp_path / "split.png"
    write_split_png(base_path, 16, (10, 20, 30), (200, 150, 100))
    output = tmp_path / "channel.png"

    _run_cli(
        [
            "export",
            str(obj_path),
            str(output),
            "--island",
            "0",
            "--size",
            "16",
            "--margin",
            "0",
            "--channel-write",
            "--write-r",
            "--base-image",
            str(base_path),
        ]
    )

    pixels = read_png_rgba(output)
    # Unselected pixels keep the base colour of their own row.
    assert tuple(pixels[2, 12]) == (30, 20, 10, 255)
    assert tuple(pixels[13, 12]) == (100, 150, 200, 255)
    # Selected pixels only have red replaced.
    assert tuple(pixels[3, 3]) == (0, 20, 10, 255)
    assert tuple(pixels[13, 3]) == (0, 150, 200, 255)
