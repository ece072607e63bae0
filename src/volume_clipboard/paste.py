"""
Paste orchestration: snapshot records back into live volumes.

A batch runs in three strictly ordered phases, each in its own undo scope:

1. Load Sub-Documents: scan every record for referenced sub-documents and
   load the missing ones (memoized prompt).
2. Paste Volumes: per record, pick the target document, optionally delete
   the original, spawn, rebuild geometry, restore properties, and apply
   the transform last.
3. Relink Streaming Volumes: add each pasted streaming gate to the gate
   lists of the sub-documents it names.

Loading never shares a scope with spawning, and nothing is spawned until
every referenced sub-document has been resolved.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from volume_clipboard.contracts import (
    ClipboardError,
    PasteConfig,
    PasteResult,
    VolumeRecord,
)
from volume_clipboard.geometry import GeometryCodec
from volume_clipboard.properties import PropertyCodec
from volume_clipboard.resolver import (
    PromptFn,
    ReferenceResolver,
    gate_paths,
    is_streaming_gate,
    referenced_paths,
)
from volume_clipboard.snapshot import decode_entries

logger = logging.getLogger(__name__)

LOAD_SCOPE = "Load Sub-Documents"
PASTE_SCOPE = "Paste Volumes"
RELINK_SCOPE = "Relink Streaming Volumes"
TRASH_INFIX = "_TRASH_"


def trash_name(name: str) -> str:
    """Collision-free disposable name for an object about to be destroyed."""
    return f"{name}{TRASH_INFIX}{uuid.uuid4().hex.upper()}"


class PasteOrchestrator:
    """Recreate volumes from snapshot records inside an editor host."""

    def __init__(self, host, config: Optional[PasteConfig] = None, prompt: Optional[PromptFn] = None):
        self.host = host
        self.config = config or PasteConfig()
        self.prompt = prompt
        self.properties = PropertyCodec()
        self.geometry = GeometryCodec(self.config.bsp_options)
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    # -- entry points ------------------------------------------------------

    def paste_from_clipboard(self, clipboard) -> PasteResult:
        """Paste whatever the clipboard holds; empty content is a no-op.

        Raises:
            SnapshotFormatError: if the content is not a JSON array.
        """
        text = clipboard.read()
        if not text or not text.strip():
            logger.info("Clipboard is empty, nothing to paste")
            return PasteResult()
        return self.paste_text(text)

    def paste_text(self, text: str) -> PasteResult:
        entries = decode_entries(text)
        return self._run(entries)

    def paste_records(self, records: Iterable[Optional[VolumeRecord]]) -> PasteResult:
        return self._run(list(records))

    # -- batch -------------------------------------------------------------

    def _run(self, entries: List[Optional[VolumeRecord]]) -> PasteResult:
        if self._busy:
            raise ClipboardError("A paste is already in progress")
        self._busy = True
        try:
            return self._paste_batch(entries)
        finally:
            self._busy = False

    def _paste_batch(self, entries: List[Optional[VolumeRecord]]) -> PasteResult:
        result = PasteResult()
        if not entries:
            logger.info("Snapshot holds no volumes")
            return result

        resolver = ReferenceResolver(
            self.host, self.config.missing_document_policy, prompt=self.prompt
        )
        start_document = self.host.current_document

        # Phase 1
        required = resolver.scan(entries)
        if required:
            with self.host.undo_scope(LOAD_SCOPE):
                report = resolver.load_missing(required)
            result.loaded_documents = list(report.loaded)
            result.declined_documents = list(report.declined)
        result.prompts = resolver.memo.prompts

        # Phase 2
        gates: List[Tuple[object, List[str]]] = []
        with self.host.undo_scope(PASTE_SCOPE):
            self.host.clear_selection()
            try:
                for index, record in enumerate(entries):
                    if record is None:
                        result.skipped.append((index, "not a volume record"))
                        continue
                    volume = self._paste_one(index, record, start_document, result)
                    if volume is None:
                        continue
                    result.spawned.append(volume)
                    if is_streaming_gate(volume):
                        gates.append((volume, self._gate_targets(volume, record)))
            finally:
                self.host.set_current_document(start_document)

        # Phase 3
        if gates:
            with self.host.undo_scope(RELINK_SCOPE):
                for volume, paths in gates:
                    if not volume.is_valid:
                        continue
                    for package in resolver.relink(volume, paths):
                        result.relinked.append((volume.name, package))

        self.host.rebuild_altered_geometry()
        self.host.redraw_viewports()
        logger.info(
            "Pasted %d volumes (%d skipped, %d relinks)",
            len(result.spawned),
            len(result.skipped),
            len(result.relinked),
        )
        return result

    @staticmethod
    def _gate_targets(volume, record: VolumeRecord) -> List[str]:
        paths = gate_paths(volume)
        for path in referenced_paths(record):
            if path not in paths:
                paths.append(path)
        return paths

    # -- per record --------------------------------------------------------

    def _target_document(self, record: VolumeRecord, fallback):
        """Origin document by full path, then short name, else *fallback*."""
        origin = record.origin_document
        if not self.config.paste_to_origin_document or origin is None:
            return fallback

        documents = self.host.documents()
        if origin.package_path:
            for document in documents:
                if document.package_path == origin.package_path:
                    return document
        for document in documents:
            if document.short_name == origin.short_name:
                return document
        logger.debug(
            "Origin document %s not loaded, pasting into %s",
            origin.package_path or origin.short_name,
            fallback.short_name,
        )
        return fallback

    def _paste_one(self, index: int, record: VolumeRecord, start_document, result: PasteResult):
        cls = self.host.resolve_class(record.class_id)
        if cls is None:
            logger.warning("Record %d: unknown class %s, skipping", index, record.class_id)
            result.skipped.append((index, f"unknown class {record.class_id}"))
            return None
        if not self.host.is_volume_class(cls):
            logger.info("Record %d: %s is not a volume class, skipping", index, record.class_id)
            result.skipped.append((index, f"not a volume class {record.class_id}"))
            return None

        document = self._target_document(record, start_document)
        self.host.set_current_document(document)

        name = record.internal_name or None
        if name and self.config.delete_original:
            existing = self.host.find_object(document, name)
            if existing is not None:
                self.host.rename_object(existing, trash_name(name))
                self.host.destroy_object(existing)
                result.destroyed.append(name)
                logger.debug("Destroyed original %s in %s", name, document.short_name)

        spawn_name = name if name and document.find(name) is None else None
        volume = self.host.spawn(cls, document, spawn_name)
        if name and self.config.delete_original:
            volume.set_value("ActorLabel", name)

        self._apply_enum(volume, "SpawnCollisionHandlingMethod", record.spawn_policy)
        self._apply_enum(volume, "BrushType", record.brush_kind)
        root = volume.root_component
        if root is not None:
            self._apply_enum(root, "Mobility", record.mobility)

        self.geometry.decode(volume, record.raw_polygons or [])

        self.properties.decode(volume, record.properties)
        for component_record in record.components:
            for component in volume.get_components(component_record.class_name):
                self.properties.decode(component, component_record.properties)

        volume.set_actor_transform(record.transform)

        if self.config.select_pasted:
            self.host.select(volume)
        logger.debug("Record %d: spawned %s in %s", index, volume.name, document.short_name)
        return volume

    @staticmethod
    def _apply_enum(obj, field_name: str, raw: Optional[int]) -> None:
        """Set an enum field from its integer value; None leaves the default."""
        if raw is None:
            return
        spec = obj.find_field(field_name)
        if spec is None:
            logger.debug("%s has no field %s", type(obj).__name__, field_name)
            return
        value = raw
        enum_type: Optional[type] = spec.enum_type
        if enum_type is not None and issubclass(enum_type, Enum):
            try:
                value = enum_type(raw)
            except ValueError:
                logger.warning(
                    "%s: %d is not a valid %s, keeping default",
                    field_name,
                    raw,
                    enum_type.__name__,
                )
                return
        obj.set_value(field_name, value)
