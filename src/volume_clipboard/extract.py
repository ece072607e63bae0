"""Build snapshot records from live volumes (the copy side)."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from volume_clipboard.contracts import (
    ComponentRecord,
    ExtractConfig,
    OriginDocument,
    StreamLink,
    Transform,
    VolumeRecord,
)
from volume_clipboard.geometry import GeometryCodec
from volume_clipboard.properties import PropertyCodec
from volume_clipboard.resolver import is_streaming_gate
from volume_clipboard.snapshot import encode_snapshot

logger = logging.getLogger(__name__)


def _enum_int(value) -> Optional[int]:
    if value is None:
        return None
    return int(value)


def _stream_links(host, volume) -> List[StreamLink]:
    links: List[StreamLink] = []
    for level in host.streaming_levels():
        slot = level.gate_index(volume)
        if slot is not None:
            links.append(StreamLink(level.package_path, slot))
    return links


def extract_volume(host, volume, config: Optional[ExtractConfig] = None) -> VolumeRecord:
    """Snapshot one live volume."""
    if config is None:
        config = ExtractConfig()
    properties = PropertyCodec()

    document = volume.outer
    origin = None
    if document is not None and hasattr(document, "package_path"):
        origin = OriginDocument(document.short_name, document.package_path)

    current = volume.actor_transform
    transform = Transform(
        location=tuple(current.location),
        orientation=tuple(current.orientation),
        scale=tuple(current.scale),
    )

    root = volume.root_component
    components: List[ComponentRecord] = []
    if config.include_components:
        for component in volume.components:
            if component.class_name() in config.skip_component_classes:
                continue
            components.append(ComponentRecord(component.class_name(), properties.encode(component)))

    return VolumeRecord(
        class_id=type(volume).class_path,
        internal_name=volume.name,
        origin_document=origin,
        transform=transform,
        spawn_policy=_enum_int(volume.get_value("SpawnCollisionHandlingMethod")),
        mobility=_enum_int(root.get_value("Mobility")) if root is not None else None,
        brush_kind=_enum_int(volume.get_value("BrushType")),
        properties=properties.encode(volume),
        components=components,
        raw_polygons=GeometryCodec().encode(volume),
        stream_links=_stream_links(host, volume) if is_streaming_gate(volume) else None,
        builder_type=config.builder_type,
    )


def extract_volumes(host, objects: Iterable, config: Optional[ExtractConfig] = None) -> List[VolumeRecord]:
    records: List[VolumeRecord] = []
    for obj in objects:
        if not host.is_volume_class(type(obj)):
            logger.debug("Skipping %s, not a volume", obj)
            continue
        records.append(extract_volume(host, obj, config))
    return records


def extract_selected(host, config: Optional[ExtractConfig] = None) -> List[VolumeRecord]:
    return extract_volumes(host, host.selected_objects(), config)


def copy_selected_volumes(host, clipboard, config: Optional[ExtractConfig] = None) -> int:
    """Write the selected volumes to *clipboard*; returns the record count."""
    records = extract_selected(host, config)
    clipboard.write(encode_snapshot(records))
    logger.info("Copied %d volumes to clipboard", len(records))
    return len(records)
