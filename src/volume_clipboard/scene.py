"""
Scene object model: documents, streaming levels, actors, components, volumes.

This is the object graph the in-memory editor host operates on. Classes
declare their reflected fields as ``FieldSpec`` tables so the property codec
can copy them without knowing the concrete types.
"""

from __future__ import annotations

import math
from enum import IntEnum
from typing import ClassVar, Dict, Iterator, List, Optional, Tuple, Type

from volume_clipboard.contracts import Transform, package_short_name
from volume_clipboard.reflection import (
    FieldKind,
    FieldSpec,
    ObjectRef,
    Reflected,
    register_class,
)


class BrushType(IntEnum):
    DEFAULT = 0
    ADD = 1
    SUBTRACT = 2


class SpawnCollisionMethod(IntEnum):
    UNDEFINED = 0
    ALWAYS_SPAWN = 1
    ADJUST_IF_POSSIBLE_BUT_ALWAYS_SPAWN = 2
    ADJUST_IF_POSSIBLE_BUT_DONT_SPAWN_IF_COLLIDING = 3
    DONT_SPAWN_IF_COLLIDING = 4


class ComponentMobility(IntEnum):
    STATIC = 0
    STATIONARY = 1
    MOVABLE = 2


class StreamingUsage(IntEnum):
    LOADING_AND_VISIBILITY = 0
    VISIBILITY_BLOCKING_ON_LOAD = 1
    BLOCKING_ON_LOAD = 2
    LOADING_NOT_VISIBLE = 3


# ---------------------------------------------------------------------------
# Struct helpers
# ---------------------------------------------------------------------------

def _floats(*names: str, default: float = 0.0) -> Tuple[FieldSpec, ...]:
    return tuple(FieldSpec(n, FieldKind.NUMERIC, default) for n in names)


def vector_spec(name: str, default: float = 0.0) -> FieldSpec:
    return FieldSpec(name, FieldKind.STRUCT, members=_floats("X", "Y", "Z", default=default))


def rotator_spec(name: str) -> FieldSpec:
    return FieldSpec(name, FieldKind.STRUCT, members=_floats("Pitch", "Yaw", "Roll"))


def color_spec(name: str) -> FieldSpec:
    members = tuple(
        FieldSpec(n, FieldKind.NUMERIC, d, number_type=int)
        for n, d in (("B", 0), ("G", 0), ("R", 0), ("A", 255))
    )
    return FieldSpec(name, FieldKind.STRUCT, members=members)


def guid_spec(name: str) -> FieldSpec:
    members = tuple(FieldSpec(n, FieldKind.NUMERIC, 0, number_type=int) for n in "ABCD")
    return FieldSpec(name, FieldKind.STRUCT, members=members)


def quat_to_rotator(quat) -> Dict[str, float]:
    """Quaternion (x, y, z, w) to pitch/yaw/roll degrees."""
    x, y, z, w = (float(c) for c in quat)
    sin_pitch = max(-1.0, min(1.0, 2.0 * (w * y - z * x)))
    return {
        "Pitch": math.degrees(math.asin(sin_pitch)),
        "Yaw": math.degrees(math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))),
        "Roll": math.degrees(math.atan2(2.0 * (w * x + y * z), 1.0 - 2.0 * (x * x + y * y))),
    }


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class SceneObject(Reflected):
    """A named reflected object living inside a document or another object."""

    def __init__(self, name: str = "", outer=None):
        super().__init__()
        self.name = name
        self.outer = outer

    @property
    def path_name(self) -> str:
        if isinstance(self.outer, Document):
            return self.outer.object_path(self.name)
        if self.outer is not None:
            return f"{self.outer.path_name}.{self.name}"
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class Document:
    """A level: a package holding named actors."""

    def __init__(self, package_path: str):
        self.package_path = package_path
        self.objects: Dict[str, SceneObject] = {}

    @property
    def short_name(self) -> str:
        return package_short_name(self.package_path)

    def object_path(self, name: str) -> str:
        return f"{self.package_path}.{self.short_name}:PersistentLevel.{name}"

    def matches(self, path: str) -> bool:
        """True on full package path or short name equality."""
        return path == self.package_path or path == self.short_name

    def find(self, name: str) -> Optional[SceneObject]:
        return self.objects.get(name)

    def add(self, obj: SceneObject) -> None:
        if obj.name in self.objects:
            raise ValueError(f"{self.short_name} already has an object named {obj.name!r}")
        obj.outer = self
        self.objects[obj.name] = obj

    def remove(self, obj: SceneObject) -> None:
        if self.objects.get(obj.name) is obj:
            del self.objects[obj.name]

    def rename(self, obj: SceneObject, new_name: str) -> None:
        if new_name in self.objects:
            raise ValueError(f"{self.short_name} already has an object named {new_name!r}")
        self.remove(obj)
        obj.name = new_name
        self.objects[new_name] = obj

    def unique_name(self, base: str) -> str:
        """First free ``base_N`` name in this document."""
        index = 0
        while f"{base}_{index}" in self.objects:
            index += 1
        return f"{base}_{index}"

    def actors(self) -> Iterator["Actor"]:
        for obj in self.objects.values():
            if isinstance(obj, Actor):
                yield obj

    def __repr__(self) -> str:
        return f"Document({self.package_path!r})"


class StreamingLevel:
    """A sub-document slot of the world, loaded or not."""

    def __init__(self, package_path: str, document: Optional[Document] = None):
        self.package_path = package_path
        self.document = document
        self.editor_streaming_volumes: List["Volume"] = []

    @property
    def short_name(self) -> str:
        return package_short_name(self.package_path)

    @property
    def is_loaded(self) -> bool:
        return self.document is not None

    def matches(self, path: str) -> bool:
        return path == self.package_path or path == self.short_name

    def add_gate(self, volume: "Volume") -> bool:
        """Add *volume* to the gate list; False if it was already there."""
        if any(existing is volume for existing in self.editor_streaming_volumes):
            return False
        self.editor_streaming_volumes.append(volume)
        return True

    def remove_gate(self, volume: "Volume") -> bool:
        """Drop *volume* from the gate list; False if it was not there."""
        kept = [existing for existing in self.editor_streaming_volumes if existing is not volume]
        removed = len(kept) != len(self.editor_streaming_volumes)
        self.editor_streaming_volumes = kept
        return removed

    def gate_index(self, volume: "Volume") -> Optional[int]:
        for index, existing in enumerate(self.editor_streaming_volumes):
            if existing is volume:
                return index
        return None


class World:
    """Persistent document plus its streaming levels."""

    def __init__(self, persistent: Document):
        self.persistent = persistent
        self.streaming_levels: List[StreamingLevel] = []
        self.current_document = persistent

    @property
    def documents(self) -> List[Document]:
        loaded = [level.document for level in self.streaming_levels if level.document is not None]
        return [self.persistent] + loaded

    def find_streaming_level(self, path: str) -> Optional[StreamingLevel]:
        for level in self.streaming_levels:
            if level.matches(path):
                return level
        return None


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

@register_class
class ActorComponent(SceneObject):
    class_path = "/Script/Engine.ActorComponent"
    fields = (
        FieldSpec("ComponentTags", FieldKind.ARRAY, inner=FieldSpec("Tag", FieldKind.NAME)),
        FieldSpec("bAutoActivate", FieldKind.BOOL, False),
        FieldSpec("bIsEditorOnly", FieldKind.BOOL, False),
        FieldSpec("UCSSerializationIndex", FieldKind.NUMERIC, -1, transient=True, number_type=int),
    )


@register_class
class SceneComponent(ActorComponent):
    class_path = "/Script/Engine.SceneComponent"
    fields = (
        vector_spec("RelativeLocation"),
        rotator_spec("RelativeRotation"),
        vector_spec("RelativeScale3D", default=1.0),
        FieldSpec("Mobility", FieldKind.ENUM, ComponentMobility.STATIC, enum_type=ComponentMobility),
        FieldSpec("bVisible", FieldKind.BOOL, True),
        FieldSpec("bAbsoluteScale", FieldKind.BOOL, False),
    )

    def __init__(self, name: str = "", outer=None):
        super().__init__(name, outer)
        self.transform = Transform()

    def set_relative_transform(self, transform: Transform) -> None:
        self.transform = transform
        self.set_value("RelativeLocation", dict(zip("XYZ", transform.location)))
        self.set_value("RelativeRotation", quat_to_rotator(transform.orientation))
        self.set_value("RelativeScale3D", dict(zip("XYZ", transform.scale)))


@register_class
class PrimitiveComponent(SceneComponent):
    class_path = "/Script/Engine.PrimitiveComponent"
    fields = (
        FieldSpec("CollisionProfileName", FieldKind.NAME, "BlockAll"),
        FieldSpec("bGenerateOverlapEvents", FieldKind.BOOL, True),
        FieldSpec("CastShadow", FieldKind.BOOL, False),
        FieldSpec("bHiddenInGame", FieldKind.BOOL, False),
        FieldSpec("OnComponentBeginOverlap", FieldKind.DELEGATE),
    )


@register_class
class BrushComponent(PrimitiveComponent):
    class_path = "/Script/Engine.BrushComponent"
    fields = (FieldSpec("Brush", FieldKind.OBJECT),)

    def __init__(self, name: str = "", outer=None):
        super().__init__(name, outer)
        self.brush = None


@register_class
class BillboardComponent(PrimitiveComponent):
    class_path = "/Script/Engine.BillboardComponent"
    fields = (
        FieldSpec("Sprite", FieldKind.OBJECT, ObjectRef("/Engine/EditorResources/S_Trigger.S_Trigger")),
        FieldSpec("ScreenSize", FieldKind.NUMERIC, 0.0025),
        FieldSpec("bIsScreenSizeScaled", FieldKind.BOOL, False),
    )


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------

@register_class
class Actor(SceneObject):
    class_path = "/Script/Engine.Actor"
    component_classes: ClassVar[Tuple[Tuple[str, Type[ActorComponent]], ...]] = (
        ("DefaultSceneRoot", SceneComponent),
    )
    fields = (
        FieldSpec("ActorLabel", FieldKind.STRING, ""),
        FieldSpec("Tags", FieldKind.ARRAY, inner=FieldSpec("Tag", FieldKind.NAME)),
        FieldSpec("Layers", FieldKind.ARRAY, inner=FieldSpec("Layer", FieldKind.NAME)),
        FieldSpec("Owner", FieldKind.OBJECT),
        FieldSpec("Instigator", FieldKind.OBJECT),
        FieldSpec("bHidden", FieldKind.BOOL, False),
        guid_spec("ActorGuid"),
        FieldSpec(
            "SpawnCollisionHandlingMethod",
            FieldKind.ENUM,
            SpawnCollisionMethod.ALWAYS_SPAWN,
            enum_type=SpawnCollisionMethod,
        ),
        FieldSpec("InputPriority", FieldKind.NUMERIC, 0, number_type=int),
        vector_spec("PivotOffset"),
        FieldSpec("bCanBeDamaged", FieldKind.BOOL, True),
        FieldSpec("InitialLifeSpan", FieldKind.NUMERIC, 0.0),
        FieldSpec("CustomTimeDilation", FieldKind.NUMERIC, 1.0),
        FieldSpec("CreationTime", FieldKind.NUMERIC, 0.0, transient=True),
        FieldSpec("OnActorBeginOverlap", FieldKind.DELEGATE),
        FieldSpec("RootComponent", FieldKind.OBJECT),
    )

    def __init__(self, name: str = "", outer=None):
        super().__init__(name, outer)
        self.destroyed = False
        self.components: List[ActorComponent] = [
            cls(component_name, self) for component_name, cls in self.component_classes
        ]
        root = self.root_component
        if root is not None:
            self.set_value("RootComponent", ObjectRef(root.name))

    @property
    def is_valid(self) -> bool:
        return not self.destroyed

    @property
    def label(self) -> str:
        return self.get_value("ActorLabel") or self.name

    @property
    def root_component(self) -> Optional[SceneComponent]:
        for component in self.components:
            if isinstance(component, SceneComponent):
                return component
        return None

    def get_components(self, class_name: Optional[str] = None) -> List[ActorComponent]:
        if class_name is None:
            return list(self.components)
        return [c for c in self.components if c.class_name() == class_name]

    @property
    def actor_transform(self) -> Transform:
        root = self.root_component
        return root.transform if root is not None else Transform()

    def set_actor_transform(self, transform: Transform) -> None:
        root = self.root_component
        if root is not None:
            root.set_relative_transform(transform)


@register_class
class Note(Actor):
    class_path = "/Script/Engine.Note"
    fields = (FieldSpec("Text", FieldKind.STRING, ""),)


@register_class
class Brush(Actor):
    class_path = "/Script/Engine.Brush"
    component_classes = (("BrushComponent0", BrushComponent),)
    fields = (
        FieldSpec("BrushType", FieldKind.ENUM, BrushType.ADD, enum_type=BrushType),
        FieldSpec("Brush", FieldKind.OBJECT),
        FieldSpec("BrushBuilder", FieldKind.OBJECT),
        FieldSpec("SavedSelections", FieldKind.ARRAY, inner=FieldSpec("Selection", FieldKind.STRING)),
        color_spec("BrushColor"),
        FieldSpec("bColored", FieldKind.BOOL, False),
        FieldSpec("PolyFlags", FieldKind.NUMERIC, 0, number_type=int),
    )

    @property
    def brush_component(self) -> Optional[BrushComponent]:
        for component in self.components:
            if isinstance(component, BrushComponent):
                return component
        return None

    @property
    def brush(self):
        component = self.brush_component
        return component.brush if component is not None else None

    @brush.setter
    def brush(self, model) -> None:
        component = self.brush_component
        if component is None:
            raise ValueError(f"{self.name} has no brush component")
        component.brush = model
        ref = ObjectRef(f"{self.path_name}.Brush") if model is not None else None
        self.set_value("Brush", ref)
        component.set_value("Brush", ref)


@register_class
class Volume(Brush):
    class_path = "/Script/Engine.Volume"
    fields = ()

    def __init__(self, name: str = "", outer=None):
        super().__init__(name, outer)
        self.set_value("BrushType", BrushType.DEFAULT)


@register_class
class TriggerVolume(Volume):
    class_path = "/Script/Engine.TriggerVolume"

    def __init__(self, name: str = "", outer=None):
        super().__init__(name, outer)
        self.brush_component.set_value("CollisionProfileName", "Trigger")


@register_class
class BlockingVolume(Volume):
    class_path = "/Script/Engine.BlockingVolume"


@register_class
class PostProcessVolume(Volume):
    class_path = "/Script/Engine.PostProcessVolume"
    fields = (
        FieldSpec("Priority", FieldKind.NUMERIC, 0.0),
        FieldSpec("BlendRadius", FieldKind.NUMERIC, 100.0),
        FieldSpec("BlendWeight", FieldKind.NUMERIC, 1.0),
        FieldSpec("bEnabled", FieldKind.BOOL, True),
        FieldSpec("bUnbound", FieldKind.BOOL, False),
        FieldSpec(
            "Settings",
            FieldKind.STRUCT,
            members=(
                FieldSpec("bOverride_BloomIntensity", FieldKind.BOOL, False),
                FieldSpec("BloomIntensity", FieldKind.NUMERIC, 0.675),
                FieldSpec("AutoExposureBias", FieldKind.NUMERIC, 1.0),
                FieldSpec("VignetteIntensity", FieldKind.NUMERIC, 0.4),
            ),
        ),
    )


@register_class
class AudioVolume(Volume):
    class_path = "/Script/Engine.AudioVolume"
    component_classes = (
        ("BrushComponent0", BrushComponent),
        ("Sprite", BillboardComponent),
    )
    fields = (
        FieldSpec("Priority", FieldKind.NUMERIC, 0.0),
        FieldSpec("bEnabled", FieldKind.BOOL, True),
        FieldSpec(
            "Settings",
            FieldKind.STRUCT,
            members=(
                FieldSpec("bApplyReverb", FieldKind.BOOL, True),
                FieldSpec("Volume", FieldKind.NUMERIC, 0.5),
                FieldSpec("FadeTime", FieldKind.NUMERIC, 0.5),
            ),
        ),
    )


@register_class
class PhysicsVolume(Volume):
    class_path = "/Script/Engine.PhysicsVolume"
    fields = (
        FieldSpec("TerminalVelocity", FieldKind.NUMERIC, 4000.0),
        FieldSpec("Priority", FieldKind.NUMERIC, 0, number_type=int),
        FieldSpec("FluidFriction", FieldKind.NUMERIC, 0.3),
        FieldSpec("bWaterVolume", FieldKind.BOOL, False),
        FieldSpec("bPhysicsOnContact", FieldKind.BOOL, False),
    )


@register_class
class LevelStreamingVolume(Volume):
    """Volume that gates loading of the sub-documents it names."""

    class_path = "/Script/Engine.LevelStreamingVolume"
    fields = (
        FieldSpec(
            "StreamingLevelNames",
            FieldKind.ARRAY,
            inner=FieldSpec("LevelName", FieldKind.NAME),
        ),
        FieldSpec("bEditorPreVisOnly", FieldKind.BOOL, False),
        FieldSpec("bDisabled", FieldKind.BOOL, False),
        FieldSpec(
            "StreamingUsage",
            FieldKind.ENUM,
            StreamingUsage.LOADING_AND_VISIBILITY,
            enum_type=StreamingUsage,
        ),
    )
