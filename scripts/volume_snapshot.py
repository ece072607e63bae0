#!/usr/bin/env python3
"""Inspect a volume snapshot file or replay it into a scratch scene."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from volume_clipboard import (
    FileClipboard,
    InMemoryEditorHost,
    MissingDocumentPolicy,
    PasteConfig,
    PasteOrchestrator,
    PromptAnswer,
    SnapshotFormatError,
    decode_snapshot,
)
from volume_clipboard.resolver import referenced_paths
from volume_clipboard.scene import Document

logger = logging.getLogger("volume_snapshot")

_POLICIES = {
    "always": MissingDocumentPolicy.ALWAYS_LOAD,
    "never": MissingDocumentPolicy.NEVER_LOAD,
    "ask": MissingDocumentPolicy.ASK,
}
_ANSWERS = {
    "y": PromptAnswer.YES,
    "n": PromptAnswer.NO,
    "a": PromptAnswer.YES_TO_ALL,
    "x": PromptAnswer.NO_TO_ALL,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect or replay a volume clipboard snapshot"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    inspect = sub.add_parser("inspect", help="List the records of a snapshot")
    inspect.add_argument("snapshot", help="Path to snapshot text file")

    replay = sub.add_parser("replay", help="Paste a snapshot into a scratch scene")
    replay.add_argument("snapshot", help="Path to snapshot text file")
    replay.add_argument(
        "--primary", default="/Game/Maps/Scratch", help="Package path of the primary document"
    )
    replay.add_argument(
        "--document",
        action="append",
        default=[],
        help="Extra loaded sub-document package path (repeatable)",
    )
    replay.add_argument(
        "--library",
        action="append",
        default=[],
        help="Loadable (not yet loaded) sub-document package path (repeatable)",
    )
    replay.add_argument(
        "--no-origin", action="store_true", help="Paste into the current document only"
    )
    replay.add_argument(
        "--keep-original",
        action="store_true",
        help="Do not delete objects that already use a record's name",
    )
    replay.add_argument(
        "--load-missing",
        choices=sorted(_POLICIES),
        default="never",
        help="What to do with referenced sub-documents that are not loaded",
    )
    replay.add_argument(
        "--export-dir",
        default=None,
        help="Write each rebuilt brush as <name>.stl into this directory",
    )
    return parser


def _prompt(path: str) -> PromptAnswer:
    while True:
        reply = input(f"Load missing sub-document {path}? [y]es/[n]o/[a]ll/none[x]: ")
        answer = _ANSWERS.get(reply.strip().lower()[:1])
        if answer is not None:
            return answer


def _read_records(path: str):
    text = FileClipboard(path).read()
    return decode_snapshot(text)


def run_inspect(args: argparse.Namespace) -> int:
    records = _read_records(args.snapshot)
    print(f"Records: {len(records)}")
    for index, record in enumerate(records):
        polys = "-" if record.raw_polygons is None else str(len(record.raw_polygons))
        origin = record.origin_document.package_path if record.origin_document else "-"
        print(
            f"[{index}] {record.class_id.rsplit('.', 1)[-1]} {record.internal_name or '-'} "
            f"origin={origin} polys={polys} props={len(record.properties)} "
            f"components={len(record.components)}"
        )
        for path in referenced_paths(record):
            print(f"    references {path}")
        for problem in _record_problems(record):
            print(f"    warning: {problem}")
    return 0


def _record_problems(record) -> list[str]:
    problems = []
    try:
        record.transform.validate()
    except ValueError as exc:
        problems.append(str(exc))
    for index, polygon in enumerate(record.raw_polygons or []):
        try:
            polygon.validate()
        except ValueError as exc:
            problems.append(f"polygon {index}: {exc}")
    return problems


def run_replay(args: argparse.Namespace) -> int:
    library = [Document(path) for path in args.library]
    host = InMemoryEditorHost(Document(args.primary), library=library)
    for path in args.document:
        host.add_streaming_level(path, loaded=True)

    config = PasteConfig(
        paste_to_origin_document=not args.no_origin,
        delete_original=not args.keep_original,
        missing_document_policy=_POLICIES[args.load_missing],
    )
    orchestrator = PasteOrchestrator(host, config, prompt=_prompt)
    result = orchestrator.paste_from_clipboard(FileClipboard(args.snapshot))

    for key, value in result.summary().items():
        print(f"{key}: {value}")
    for volume in result.spawned:
        model = volume.brush
        polys = len(model.polys) if model is not None and model.polys is not None else 0
        print(f"  {volume.outer.short_name}:{volume.name} polys={polys}")
    for name, package in result.relinked:
        print(f"  relinked {name} -> {package}")
    print(f"current: {host.current_document.package_path}")

    if args.export_dir:
        out_dir = Path(args.export_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        for volume in result.spawned:
            if volume.brush is None:
                continue
            mesh = volume.brush.to_trimesh()
            if len(mesh.faces) == 0:
                continue
            mesh.export(str(out_dir / f"{volume.name}.stl"))
            logger.info("Exported %s", volume.name)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "inspect":
            return run_inspect(args)
        return run_replay(args)
    except SnapshotFormatError as exc:
        print(f"Invalid snapshot: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
