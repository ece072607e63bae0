"""
Tagged-variant field model used to copy object state as text.

Every reflected class declares its fields as ``FieldSpec`` entries. Each spec
carries a ``FieldKind`` tag that selects the canonical text export/import
rules, so serialization never has to inspect Python types at runtime.

Text forms:
    NUMERIC      1, 2.5, -0.125         (repr, exact float round-trip)
    BOOL         True / False
    STRING       raw at top level, "quoted" inside structs and arrays
    NAME         like STRING, ``None`` for the none-name
    TEXT         NSLOCTEXT("ns", "key", "source") or INVTEXT("source")
    ENUM         member name
    STRUCT       (X=1.0,Y=2.0,Z=3.0)
    ARRAY        (a,b,c), empty is ()
    OBJECT       object path, ``None`` for null
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Type

from volume_clipboard.contracts import FieldImportError

logger = logging.getLogger(__name__)


class FieldKind(Enum):
    NUMERIC = "numeric"
    BOOL = "bool"
    STRING = "string"
    NAME = "name"
    TEXT = "text"
    ENUM = "enum"
    STRUCT = "struct"
    ARRAY = "array"
    OBJECT = "object"
    INTERFACE = "interface"
    MAP = "map"
    SET = "set"
    DELEGATE = "delegate"


COPYABLE_KINDS = frozenset(
    {
        FieldKind.NUMERIC,
        FieldKind.BOOL,
        FieldKind.STRING,
        FieldKind.NAME,
        FieldKind.TEXT,
        FieldKind.ENUM,
        FieldKind.STRUCT,
        FieldKind.ARRAY,
        FieldKind.OBJECT,
        FieldKind.INTERFACE,
    }
)

NONE_SENTINEL = "None"
EMPTY_LIST_SENTINEL = "()"
NULL_POINTER_SENTINEL = "nullptr"
EMPTY_SENTINELS = ("", NONE_SENTINEL, EMPTY_LIST_SENTINEL, NULL_POINTER_SENTINEL)


@dataclass(frozen=True)
class ObjectRef:
    """Reference to another object by path, resolved lazily by the host."""

    path: str


@dataclass(frozen=True)
class LocalizedText:
    source: str
    namespace: str = ""
    key: str = ""


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of one reflected field."""

    name: str
    kind: FieldKind
    default: Any = None
    transient: bool = False
    duplicate_transient: bool = False
    number_type: type = float
    enum_type: Optional[Type[Enum]] = None
    inner: Optional["FieldSpec"] = None
    members: Tuple["FieldSpec", ...] = ()

    def make_default(self) -> Any:
        if self.kind is FieldKind.STRUCT and self.default is None:
            return {m.name: m.make_default() for m in self.members}
        if self.kind in (FieldKind.ARRAY, FieldKind.MAP, FieldKind.SET) and self.default is None:
            return []
        return copy.deepcopy(self.default)

    def member(self, name: str) -> Optional["FieldSpec"]:
        for m in self.members:
            if m.name == name:
                return m
        return None


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_text(spec: FieldSpec, value: Any) -> str:
    """Render *value* through the canonical text export of *spec*'s kind."""
    return _export(spec, value, nested=False)


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _export(spec: FieldSpec, value: Any, nested: bool) -> str:
    kind = spec.kind

    if kind is FieldKind.NUMERIC:
        if value is None:
            value = 0
        if spec.number_type is int:
            return str(int(value))
        return repr(float(value))

    if kind is FieldKind.BOOL:
        return "True" if value else "False"

    if kind is FieldKind.STRING:
        text = "" if value is None else str(value)
        return _quote(text) if nested else text

    if kind is FieldKind.NAME:
        if value is None or value == "":
            return NONE_SENTINEL
        return _quote(str(value)) if nested else str(value)

    if kind is FieldKind.TEXT:
        if value is None:
            return ""
        if not isinstance(value, LocalizedText):
            value = LocalizedText(source=str(value))
        if value.key:
            return "NSLOCTEXT({}, {}, {})".format(
                _quote(value.namespace), _quote(value.key), _quote(value.source)
            )
        if not value.source and not nested:
            return ""
        return f"INVTEXT({_quote(value.source)})"

    if kind is FieldKind.ENUM:
        if value is None:
            return NONE_SENTINEL
        if isinstance(value, Enum):
            return value.name
        if spec.enum_type is not None:
            return spec.enum_type(value).name
        return str(value)

    if kind is FieldKind.STRUCT:
        current = value or {}
        parts = []
        for member in spec.members:
            member_value = current.get(member.name, member.make_default())
            parts.append(f"{member.name}={_export(member, member_value, nested=True)}")
        return "(" + ",".join(parts) + ")"

    if kind is FieldKind.ARRAY:
        if spec.inner is None:
            raise ValueError(f"Array field {spec.name} has no inner spec")
        items = [_export(spec.inner, item, nested=True) for item in (value or [])]
        return "(" + ",".join(items) + ")"

    if kind in (FieldKind.OBJECT, FieldKind.INTERFACE):
        if value is None:
            return NONE_SENTINEL
        if isinstance(value, ObjectRef):
            path = value.path
        elif hasattr(value, "path_name"):
            path = value.path_name
        else:
            path = str(value)
        return _quote(path) if nested else path

    raise ValueError(f"Field {spec.name} of kind {kind.value} has no text export")


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

class _Reader:
    """Cursor over exported text."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def expect(self, ch: str) -> None:
        self.skip_ws()
        if self.peek() != ch:
            raise FieldImportError(
                f"Expected {ch!r} at offset {self.pos} in {self.text!r}"
            )
        self.pos += 1

    def read_rest(self) -> str:
        rest = self.text[self.pos:]
        self.pos = len(self.text)
        return rest

    def read_quoted(self) -> str:
        self.expect('"')
        out: List[str] = []
        while True:
            if self.at_end():
                raise FieldImportError(f"Unterminated string in {self.text!r}")
            ch = self.text[self.pos]
            self.pos += 1
            if ch == "\\":
                if self.at_end():
                    raise FieldImportError(f"Dangling escape in {self.text!r}")
                out.append(self.text[self.pos])
                self.pos += 1
            elif ch == '"':
                return "".join(out)
            else:
                out.append(ch)

    def read_bare(self, stops: str = ",)") -> str:
        self.skip_ws()
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in stops:
            self.pos += 1
        return self.text[start:self.pos].strip()

    def read_token(self, nested: bool) -> Tuple[str, bool]:
        """Return (token, was_quoted)."""
        self.skip_ws()
        if self.peek() == '"':
            return self.read_quoted(), True
        if nested:
            return self.read_bare(), False
        return self.read_rest().strip(), False

    def skip_value(self) -> None:
        self.skip_ws()
        if self.peek() == '"':
            self.read_quoted()
            return
        if self.peek() != "(":
            self.read_bare()
            return
        depth = 0
        while not self.at_end():
            ch = self.peek()
            if ch == '"':
                self.read_quoted()
                continue
            self.pos += 1
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return
        raise FieldImportError(f"Unbalanced parentheses in {self.text!r}")


def import_text(spec: FieldSpec, text: str) -> Any:
    """Parse *text* produced by ``export_text`` back into a field value.

    Raises:
        FieldImportError: if the text does not match the field kind.
    """
    if spec.kind not in COPYABLE_KINDS:
        raise FieldImportError(f"Field {spec.name} of kind {spec.kind.value} has no text import")
    reader = _Reader(text)
    value = _import(spec, reader, nested=False)
    reader.skip_ws()
    if not reader.at_end():
        raise FieldImportError(
            f"Trailing text after {spec.name} value: {text[reader.pos:]!r}"
        )
    return value


_TRUE_WORDS = {"true", "1", "yes"}
_FALSE_WORDS = {"false", "0", "no"}


def _import(spec: FieldSpec, reader: _Reader, nested: bool) -> Any:
    kind = spec.kind

    if kind is FieldKind.NUMERIC:
        token, _ = reader.read_token(nested)
        try:
            if spec.number_type is int:
                return int(token)
            return float(token)
        except ValueError as exc:
            raise FieldImportError(f"{spec.name}: not a number: {token!r}") from exc

    if kind is FieldKind.BOOL:
        token, _ = reader.read_token(nested)
        lowered = token.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise FieldImportError(f"{spec.name}: not a boolean: {token!r}")

    if kind is FieldKind.STRING:
        if nested:
            token, _ = reader.read_token(nested=True)
            return token
        return reader.read_rest()

    if kind is FieldKind.NAME:
        token, quoted = reader.read_token(nested)
        if not quoted and token in ("", NONE_SENTINEL):
            return None
        return token

    if kind is FieldKind.TEXT:
        return _import_text_literal(spec, reader, nested)

    if kind is FieldKind.ENUM:
        token, _ = reader.read_token(nested)
        if spec.enum_type is None:
            return None if token == NONE_SENTINEL else token
        member_name = token.split("::")[-1]
        try:
            return spec.enum_type[member_name]
        except KeyError as exc:
            raise FieldImportError(
                f"{spec.name}: {token!r} is not a member of {spec.enum_type.__name__}"
            ) from exc

    if kind is FieldKind.STRUCT:
        result = spec.make_default()
        reader.expect("(")
        reader.skip_ws()
        if reader.peek() == ")":
            reader.pos += 1
            return result
        while True:
            key = reader.read_bare(stops="=,)")
            reader.expect("=")
            member = spec.member(key)
            if member is None:
                logger.debug("Struct %s has no member %s, skipping", spec.name, key)
                reader.skip_value()
            else:
                result[member.name] = _import(member, reader, nested=True)
            reader.skip_ws()
            ch = reader.peek()
            reader.pos += 1
            if ch == ")":
                return result
            if ch != ",":
                raise FieldImportError(f"{spec.name}: malformed struct text {reader.text!r}")

    if kind is FieldKind.ARRAY:
        if spec.inner is None:
            raise FieldImportError(f"Array field {spec.name} has no inner spec")
        items: List[Any] = []
        reader.expect("(")
        reader.skip_ws()
        if reader.peek() == ")":
            reader.pos += 1
            return items
        while True:
            items.append(_import(spec.inner, reader, nested=True))
            reader.skip_ws()
            ch = reader.peek()
            reader.pos += 1
            if ch == ")":
                return items
            if ch != ",":
                raise FieldImportError(f"{spec.name}: malformed array text {reader.text!r}")

    if kind in (FieldKind.OBJECT, FieldKind.INTERFACE):
        token, quoted = reader.read_token(nested)
        if not quoted and token in ("", NONE_SENTINEL, NULL_POINTER_SENTINEL):
            return None
        # Class'/Path/To.Object' wrapper
        if token.endswith("'") and "'" in token[:-1]:
            token = token[token.index("'") + 1:-1]
        return ObjectRef(token)

    raise FieldImportError(f"Field {spec.name} of kind {kind.value} has no text import")


_TEXT_MACROS = ("INVTEXT", "NSLOCTEXT", "LOCTEXT")


def _import_text_literal(spec: FieldSpec, reader: _Reader, nested: bool) -> Optional[LocalizedText]:
    reader.skip_ws()
    if reader.peek() == '"':
        return LocalizedText(source=reader.read_quoted())
    start = reader.pos
    head = reader.read_bare(stops="(,)")
    if reader.peek() != "(" or head not in _TEXT_MACROS:
        reader.pos = start
        if nested:
            return LocalizedText(source=reader.read_bare())
        rest = reader.read_rest().strip()
        return LocalizedText(source=rest) if rest else None

    reader.pos += 1
    args: List[str] = []
    reader.skip_ws()
    while reader.peek() != ")":
        args.append(reader.read_quoted())
        reader.skip_ws()
        if reader.peek() == ",":
            reader.pos += 1
            reader.skip_ws()
    reader.pos += 1

    if head == "INVTEXT" and len(args) == 1:
        return LocalizedText(source=args[0])
    if head == "NSLOCTEXT" and len(args) == 3:
        return LocalizedText(source=args[2], namespace=args[0], key=args[1])
    if head == "LOCTEXT" and len(args) == 2:
        return LocalizedText(source=args[1], key=args[0])
    raise FieldImportError(f"{spec.name}: unsupported text literal {head}({len(args)} args)")


# ---------------------------------------------------------------------------
# Reflected objects and class registry
# ---------------------------------------------------------------------------

_FIELD_CACHE: Dict[type, Tuple[FieldSpec, ...]] = {}


class Reflected:
    """Base for objects whose state is described by ``FieldSpec`` tables."""

    class_path: ClassVar[str] = "/Script/CoreUObject.Object"
    fields: ClassVar[Tuple[FieldSpec, ...]] = ()

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {
            spec.name: spec.make_default() for spec in self.all_fields()
        }

    @classmethod
    def all_fields(cls) -> Tuple[FieldSpec, ...]:
        """Fields of *cls* and its bases, base class first."""
        cached = _FIELD_CACHE.get(cls)
        if cached is not None:
            return cached
        ordered: Dict[str, FieldSpec] = {}
        for klass in reversed(cls.__mro__):
            for spec in klass.__dict__.get("fields", ()):
                ordered[spec.name] = spec
        result = tuple(ordered.values())
        _FIELD_CACHE[cls] = result
        return result

    @classmethod
    def find_field(cls, name: str) -> Optional[FieldSpec]:
        for spec in cls.all_fields():
            if spec.name == name:
                return spec
        return None

    @classmethod
    def class_name(cls) -> str:
        return cls.class_path.rsplit(".", 1)[-1]

    def get_value(self, name: str) -> Any:
        if name not in self._values:
            raise KeyError(f"{type(self).__name__} has no field {name!r}")
        return self._values[name]

    def set_value(self, name: str, value: Any) -> None:
        if name not in self._values:
            raise KeyError(f"{type(self).__name__} has no field {name!r}")
        self._values[name] = value


class ClassRegistry:
    """Maps class paths to reflected classes."""

    def __init__(self) -> None:
        self._classes: Dict[str, Type[Reflected]] = {}

    def register(self, cls: Type[Reflected]) -> Type[Reflected]:
        self._classes[cls.class_path] = cls
        return cls

    def resolve(self, path: str) -> Optional[Type[Reflected]]:
        return self._classes.get(path.strip())

    def __contains__(self, path: str) -> bool:
        return path in self._classes

    def __iter__(self) -> Iterator[str]:
        return iter(self._classes)


DEFAULT_REGISTRY = ClassRegistry()


def register_class(cls: Type[Reflected]) -> Type[Reflected]:
    """Class decorator registering *cls* in the default registry."""
    return DEFAULT_REGISTRY.register(cls)


def resolve_class(path: str, registry: Optional[ClassRegistry] = None) -> Optional[Type[Reflected]]:
    return (registry or DEFAULT_REGISTRY).resolve(path)
