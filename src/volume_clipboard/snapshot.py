"""
Snapshot text format: a JSON array of volume records.

Transform components are written as ``%.17g`` decimal strings so doubles
survive the text round-trip bit-exactly; every other number is a native JSON
number. Decoding is tolerant of missing optional keys and only fails for a
payload that is empty, not JSON, or not an array.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from volume_clipboard.contracts import (
    IDENTITY_QUAT,
    ComponentRecord,
    OriginDocument,
    PolygonRecord,
    SnapshotFormatError,
    StreamLink,
    Transform,
    VolumeRecord,
)

logger = logging.getLogger(__name__)

LOCATION_KEYS = ("LocX", "LocY", "LocZ")
QUAT_KEYS = ("QuatX", "QuatY", "QuatZ", "QuatW")
SCALE_KEYS = ("SclX", "SclY", "SclZ")


def format_double(value: float) -> str:
    return "%.17g" % float(value)


def _parse_double(obj: Mapping[str, Any], key: str, default: float) -> float:
    raw = obj.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        logger.warning("%s is a boolean, using %s", key, default)
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("%s=%r is not a number, using %s", key, raw, default)
        return default


def _parse_int(obj: Mapping[str, Any], key: str) -> Optional[int]:
    raw = obj.get(key)
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        logger.warning("%s=%r is not an integer, ignoring", key, raw)
        return None
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        logger.warning("%s=%r is not an integer, ignoring", key, raw)
        return None


def _text_map(raw: Any, owner: str) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    result: Dict[str, str] = {}
    for key, value in raw.items():
        if isinstance(value, (dict, list)):
            logger.warning("%s property %s is not a text value, skipping", owner, key)
            continue
        result[str(key)] = value if isinstance(value, str) else str(value)
    return result


# ---------------------------------------------------------------------------
# Record encode / decode
# ---------------------------------------------------------------------------

def encode_polygon(polygon: PolygonRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if polygon.flags is not None:
        data["Flags"] = int(polygon.flags)
    data["Verts"] = [
        {"X": float(v[0]), "Y": float(v[1]), "Z": float(v[2])} for v in polygon.vertices
    ]
    return data


def decode_polygon(raw: Any) -> Optional[PolygonRecord]:
    if not isinstance(raw, dict):
        return None
    flags = _parse_int(raw, "Flags")
    vertices = []
    for vert in raw.get("Verts") or []:
        if not isinstance(vert, dict):
            continue
        vertices.append(
            (
                _parse_double(vert, "X", 0.0),
                _parse_double(vert, "Y", 0.0),
                _parse_double(vert, "Z", 0.0),
            )
        )
    return PolygonRecord(vertices=vertices, flags=flags)


def encode_record(record: VolumeRecord) -> Dict[str, Any]:
    """Render *record* as a JSON-ready dict with the snapshot key names."""
    data: Dict[str, Any] = {
        "Class": record.class_id,
        "InternalName": record.internal_name,
    }
    if record.origin_document is not None:
        data["OriginLevel"] = record.origin_document.short_name
        data["OriginLevelPackage"] = record.origin_document.package_path
    if record.stream_links is not None:
        data["StreamLinks"] = [
            {"Package": link.sub_document_path, "Slot": int(link.slot_index)}
            for link in record.stream_links
        ]

    transform = record.transform
    for key, value in zip(LOCATION_KEYS, transform.location):
        data[key] = format_double(value)
    for key, value in zip(QUAT_KEYS, transform.orientation):
        data[key] = format_double(value)
    for key, value in zip(SCALE_KEYS, transform.scale):
        data[key] = format_double(value)

    if record.spawn_policy is not None:
        data["SpawnMethod"] = int(record.spawn_policy)
    if record.mobility is not None:
        data["Mobility"] = int(record.mobility)
    if record.brush_kind is not None:
        data["BrushType"] = int(record.brush_kind)

    data["Properties"] = dict(record.properties)
    data["Components"] = [
        {"ClassName": component.class_name, "Props": dict(component.properties)}
        for component in record.components
    ]
    if record.raw_polygons is not None:
        data["RawPolys"] = [encode_polygon(p) for p in record.raw_polygons]
    data["BuilderType"] = record.builder_type
    return data


def decode_record(obj: Any) -> Optional[VolumeRecord]:
    """Build a VolumeRecord from one array entry; None if it is not a record."""
    if not isinstance(obj, dict):
        return None
    class_id = obj.get("Class")
    if not isinstance(class_id, str) or not class_id:
        return None

    origin = None
    if isinstance(obj.get("OriginLevel"), str):
        package = obj.get("OriginLevelPackage")
        origin = OriginDocument(
            short_name=obj["OriginLevel"],
            package_path=package if isinstance(package, str) else "",
        )

    stream_links = None
    if isinstance(obj.get("StreamLinks"), list):
        stream_links = []
        for link in obj["StreamLinks"]:
            if isinstance(link, dict) and isinstance(link.get("Package"), str):
                slot = _parse_int(link, "Slot")
                stream_links.append(StreamLink(link["Package"], slot if slot is not None else 0))

    location = tuple(_parse_double(obj, key, 0.0) for key in LOCATION_KEYS)
    if "QuatW" in obj:
        orientation = tuple(_parse_double(obj, key, 0.0) for key in QUAT_KEYS)
    else:
        orientation = IDENTITY_QUAT
    scale = tuple(_parse_double(obj, key, 1.0) for key in SCALE_KEYS)

    components = []
    for entry in obj.get("Components") or []:
        if isinstance(entry, dict) and isinstance(entry.get("ClassName"), str):
            components.append(
                ComponentRecord(entry["ClassName"], _text_map(entry.get("Props"), entry["ClassName"]))
            )

    raw_polygons = None
    if isinstance(obj.get("RawPolys"), list):
        raw_polygons = [p for p in (decode_polygon(raw) for raw in obj["RawPolys"]) if p is not None]

    builder = obj.get("BuilderType")
    name = obj.get("InternalName")
    return VolumeRecord(
        class_id=class_id,
        internal_name=name if isinstance(name, str) else "",
        origin_document=origin,
        transform=Transform(location=location, orientation=orientation, scale=scale),
        spawn_policy=_parse_int(obj, "SpawnMethod"),
        mobility=_parse_int(obj, "Mobility"),
        brush_kind=_parse_int(obj, "BrushType"),
        properties=_text_map(obj.get("Properties"), class_id),
        components=components,
        raw_polygons=raw_polygons,
        stream_links=stream_links,
        builder_type=builder if isinstance(builder, str) else "CustomPolys",
    )


# ---------------------------------------------------------------------------
# Snapshot encode / decode
# ---------------------------------------------------------------------------

def encode_snapshot(records: Sequence[VolumeRecord]) -> str:
    return json.dumps([encode_record(r) for r in records], indent=2)


def decode_entries(text: Optional[str]) -> List[Optional[VolumeRecord]]:
    """Parse snapshot text, keeping one slot per array entry.

    Entries that are not volume records decode to None so callers can
    report them by index.

    Raises:
        SnapshotFormatError: if *text* is empty, not JSON, or not an array.
    """
    if text is None or not text.strip():
        raise SnapshotFormatError("Snapshot text is empty")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotFormatError(f"Snapshot is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise SnapshotFormatError(
            f"Snapshot root must be an array, got {type(payload).__name__}"
        )

    entries = [decode_record(obj) for obj in payload]
    dropped = sum(1 for e in entries if e is None)
    if dropped:
        logger.warning("Ignored %d snapshot entries that are not volume records", dropped)
    return entries


def decode_snapshot(text: Optional[str]) -> List[VolumeRecord]:
    return [record for record in decode_entries(text) if record is not None]
