from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

from volume_clipboard.contracts import OriginDocument, VolumeRecord
from volume_clipboard.snapshot import encode_snapshot

REPO_ROOT = Path(__file__).resolve().parent.parent
SCRIPT = REPO_ROOT / "scripts" / "volume_snapshot.py"


@pytest.fixture
def gate_snapshot(tmp_path: Path, box_polygons) -> str:
    record = VolumeRecord(
        class_id="/Script/Engine.LevelStreamingVolume",
        internal_name="Gate",
        origin_document=OriginDocument("Main", "/Game/Maps/Main"),
        properties={"StreamingLevelNames": '("/Game/Maps/Sub")'},
        raw_polygons=box_polygons,
    )
    path = tmp_path / "snapshot.json"
    path.write_text(encode_snapshot([record]), encoding="utf-8")
    return str(path)


def _run(*args: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, str(SCRIPT), *args]
    return subprocess.run(cmd, capture_output=True, text=True)


def test_inspect_lists_records(gate_snapshot: str):
    proc = _run("inspect", gate_snapshot)
    assert proc.returncode == 0, proc.stderr
    assert "Records: 1" in proc.stdout
    assert "LevelStreamingVolume Gate" in proc.stdout
    assert "references /Game/Maps/Sub" in proc.stdout


def test_replay_loads_and_relinks(gate_snapshot: str):
    proc = _run(
        "replay",
        gate_snapshot,
        "--library",
        "/Game/Maps/Sub",
        "--load-missing",
        "always",
    )
    assert proc.returncode == 0, proc.stderr
    assert "spawned: 1" in proc.stdout
    assert "loaded_documents: 1" in proc.stdout
    assert "relinked: 1" in proc.stdout
    assert "relinked Gate -> /Game/Maps/Sub" in proc.stdout
    assert "current: /Game/Maps/Scratch" in proc.stdout


def test_replay_without_loading_skips_relink(gate_snapshot: str):
    proc = _run("replay", gate_snapshot, "--library", "/Game/Maps/Sub")
    assert proc.returncode == 0, proc.stderr
    assert "loaded_documents: 0" in proc.stdout
    assert "relinked: 0" in proc.stdout


def test_replay_exports_meshes(gate_snapshot: str, tmp_path: Path):
    out_dir = tmp_path / "meshes"
    proc = _run("replay", gate_snapshot, "--export-dir", str(out_dir))
    assert proc.returncode == 0, proc.stderr
    assert (out_dir / "Gate.stl").exists()


def test_invalid_snapshot_fails(tmp_path: Path):
    path = tmp_path / "broken.json"
    path.write_text('{"Class": "nope"}', encoding="utf-8")
    proc = _run("inspect", str(path))
    assert proc.returncode == 1
    assert "Invalid snapshot" in proc.stderr


def test_inspect_reports_record_problems(tmp_path: Path):
    path = tmp_path / "odd.json"
    path.write_text(
        '[{"Class": "/Script/Engine.TriggerVolume", "InternalName": "T", "LocX": "inf",'
        ' "RawPolys": [{"Verts": [{"X": 0, "Y": 0, "Z": 0}, {"X": 1, "Y": 0, "Z": 0}]}]}]',
        encoding="utf-8",
    )
    proc = _run("inspect", str(path))
    assert proc.returncode == 0, proc.stderr
    assert "warning: Transform has non-finite components" in proc.stdout
    assert "warning: polygon 0: PolygonRecord needs at least 3 vertices" in proc.stdout


def test_inspect_clean_record_has_no_warnings(gate_snapshot: str):
    proc = _run("inspect", gate_snapshot)
    assert proc.returncode == 0, proc.stderr
    assert "warning:" not in proc.stdout
