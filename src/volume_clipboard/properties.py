"""
Filtered property copy between reflected objects.

A field is copied only when it survives the deny filter (identity, transform,
geometry and linkage fields are rebuilt from dedicated record fields, never
overwritten blindly) and its kind has a lossless text form.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Mapping

from volume_clipboard.contracts import FieldImportError
from volume_clipboard.reflection import (
    COPYABLE_KINDS,
    EMPTY_SENTINELS,
    FieldSpec,
    Reflected,
    export_text,
    import_text,
)

logger = logging.getLogger(__name__)


class FieldClass(Enum):
    INCLUDED = "included"
    EXCLUDED = "excluded"


DENIED_SUBSTRINGS = ("Guid", "Cookie")
DENIED_PREFIXES = ("Hidden", "bHidden")
DENIED_NAMES = frozenset(
    {
        # identity
        "ActorLabel",
        "Owner",
        "Instigator",
        # derived transform
        "Location",
        "Rotation",
        "RelativeLocation",
        "RelativeRotation",
        "RelativeScale3D",
        "PivotOffset",
        "PrePivot",
        "PhysicsTransform",
        "ReplicatedMovement",
        "SpriteScale",
        # geometry and linkage
        "Brush",
        "BrushComponent",
        "RootComponent",
        "Model",
        "BrushBuilder",
        "SavedSelections",
        "Tags",
        "Layers",
        "InputPriority",
    }
)


def is_name_denied(name: str) -> bool:
    if any(token in name for token in DENIED_SUBSTRINGS):
        return True
    if name.startswith(DENIED_PREFIXES):
        return True
    return name in DENIED_NAMES


def classify(spec: FieldSpec) -> FieldClass:
    """Decide whether *spec* may be copied as text."""
    if spec.transient or spec.duplicate_transient:
        return FieldClass.EXCLUDED
    if is_name_denied(spec.name):
        return FieldClass.EXCLUDED
    if spec.kind not in COPYABLE_KINDS:
        return FieldClass.EXCLUDED
    return FieldClass.INCLUDED


def is_copyable(spec: FieldSpec) -> bool:
    return classify(spec) is FieldClass.INCLUDED


class PropertyCodec:
    """Encode/decode the copyable fields of a reflected object."""

    def encode(self, obj: Reflected) -> Dict[str, str]:
        encoded: Dict[str, str] = {}
        for spec in obj.all_fields():
            if not is_copyable(spec):
                continue
            text = export_text(spec, obj.get_value(spec.name))
            if text in EMPTY_SENTINELS:
                continue
            encoded[spec.name] = text
        return encoded

    def decode(self, obj: Reflected, properties: Mapping[str, str]) -> List[str]:
        """Apply *properties* to *obj*; returns the names actually applied.

        Unknown and filtered keys are skipped. A field whose text fails to
        import is logged and skipped; fields applied before it stay applied.
        """
        applied: List[str] = []
        for name, text in properties.items():
            spec = obj.find_field(name)
            if spec is None:
                logger.debug("%s has no field %s, skipping", type(obj).__name__, name)
                continue
            if not is_copyable(spec):
                logger.debug("Field %s is not copyable, skipping", name)
                continue
            try:
                value = import_text(spec, str(text))
            except FieldImportError as exc:
                logger.warning("Could not import %s.%s: %s", type(obj).__name__, name, exc)
                continue
            obj.set_value(name, value)
            applied.append(name)
        return applied


def encode_properties(obj: Reflected) -> Dict[str, str]:
    return PropertyCodec().encode(obj)


def decode_properties(obj: Reflected, properties: Mapping[str, str]) -> List[str]:
    return PropertyCodec().decode(obj, properties)
