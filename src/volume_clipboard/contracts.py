"""Contracts for volume copy/paste snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, Dict, List, Optional, Sequence, Tuple

Vec3 = Tuple[float, float, float]
Quat = Tuple[float, float, float, float]

IDENTITY_QUAT: Quat = (0.0, 0.0, 0.0, 1.0)
UNIT_SCALE: Vec3 = (1.0, 1.0, 1.0)


class ClipboardError(Exception):
    """Base exception for volume clipboard errors."""
    pass


class SnapshotFormatError(ClipboardError, ValueError):
    """Clipboard payload is empty or not a JSON array of volume records."""
    pass


class FieldImportError(ClipboardError, ValueError):
    """A single property text could not be imported into its field."""
    pass


class ScopeError(ClipboardError, RuntimeError):
    """An undo scope was opened while another one was still open."""
    pass


class PolyFlags(IntFlag):
    """Polygon flag bits carried through ``RawPolys[].Flags``."""
    NONE = 0
    INVISIBLE = 0x00000001
    NOT_SOLID = 0x00000008
    SEMISOLID = 0x00000020
    TWO_SIDED = 0x00000100
    PORTAL = 0x04000000
    ED_PROCESSED = 0x40000000
    ED_CUT = 0x80000000


class BspMode(Enum):
    """Splitter search breadth for spatial partition rebuilds."""
    OPTIMAL = "optimal"
    GOOD = "good"
    LAME = "lame"


@dataclass(frozen=True)
class BspBuildOptions:
    """Fixed constants for rebuilding a pasted brush's partition tree.

    The same values are used for every rebuild so that pasting the same
    snapshot twice produces identical trees.
    """

    mode: BspMode = BspMode.OPTIMAL
    max_iterations: int = 15
    balance: int = 70
    portal_bias: int = 1
    extra_passes: int = 0


class MissingDocumentPolicy(Enum):
    """What to do with a referenced sub-document that is not loaded."""
    ALWAYS_LOAD = "always_load"
    NEVER_LOAD = "never_load"
    ASK = "ask"


class PromptAnswer(Enum):
    """Answers to the missing sub-document prompt."""
    YES = "yes"
    NO = "no"
    YES_TO_ALL = "yes_to_all"
    NO_TO_ALL = "no_to_all"


@dataclass(frozen=True)
class PasteConfig:
    """Paste behaviour toggles owned by the calling UI layer."""

    paste_to_origin_document: bool = True
    delete_original: bool = True
    missing_document_policy: MissingDocumentPolicy = MissingDocumentPolicy.ASK
    bsp_options: BspBuildOptions = field(default_factory=BspBuildOptions)
    select_pasted: bool = True


@dataclass(frozen=True)
class ExtractConfig:
    """Options for building records from live volumes."""

    include_components: bool = True
    skip_component_classes: Tuple[str, ...] = ("BrushComponent",)
    builder_type: str = "CustomPolys"


@dataclass
class OriginDocument:
    short_name: str
    package_path: str = ""


@dataclass
class StreamLink:
    sub_document_path: str
    slot_index: int


@dataclass
class Transform:
    location: Vec3 = (0.0, 0.0, 0.0)
    orientation: Quat = IDENTITY_QUAT
    scale: Vec3 = UNIT_SCALE

    def validate(self) -> None:
        values = list(self.location) + list(self.orientation) + list(self.scale)
        if len(self.location) != 3 or len(self.scale) != 3:
            raise ValueError("Transform location and scale need 3 components")
        if len(self.orientation) != 4:
            raise ValueError("Transform orientation needs 4 components")
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"Transform has non-finite components: {values}")


@dataclass
class PolygonRecord:
    """One serialized polygon: flag bits and its vertex loop."""

    vertices: List[Vec3] = field(default_factory=list)
    flags: Optional[int] = None

    @property
    def is_valid(self) -> bool:
        return len(self.vertices) >= 3

    def validate(self) -> None:
        if not self.is_valid:
            raise ValueError(
                f"PolygonRecord needs at least 3 vertices, got {len(self.vertices)}"
            )


@dataclass
class ComponentRecord:
    class_name: str
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeRecord:
    """Serialized form of one volume."""

    class_id: str
    internal_name: str = ""
    origin_document: Optional[OriginDocument] = None
    transform: Transform = field(default_factory=Transform)
    spawn_policy: Optional[int] = None
    mobility: Optional[int] = None
    brush_kind: Optional[int] = None
    properties: Dict[str, str] = field(default_factory=dict)
    components: List[ComponentRecord] = field(default_factory=list)
    raw_polygons: Optional[List[PolygonRecord]] = None
    stream_links: Optional[List[StreamLink]] = None
    builder_type: str = "CustomPolys"


@dataclass
class PasteResult:
    """Outcome of one paste batch."""

    spawned: List[Any] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)
    destroyed: List[str] = field(default_factory=list)
    loaded_documents: List[str] = field(default_factory=list)
    declined_documents: List[str] = field(default_factory=list)
    relinked: List[Tuple[str, str]] = field(default_factory=list)
    prompts: int = 0

    def summary(self) -> Dict[str, int]:
        return {
            "spawned": len(self.spawned),
            "skipped": len(self.skipped),
            "destroyed": len(self.destroyed),
            "loaded_documents": len(self.loaded_documents),
            "declined_documents": len(self.declined_documents),
            "relinked": len(self.relinked),
            "prompts": int(self.prompts),
        }


def package_short_name(path: str) -> str:
    """Return the last segment of a package path (``/Game/Maps/Sub`` -> ``Sub``)."""
    trimmed = path.strip().rstrip("/")
    return trimmed.rsplit("/", 1)[-1]


def to_vec3(values: Sequence[float]) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))
