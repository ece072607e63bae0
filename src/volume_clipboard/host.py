"""
Editor host interface consumed by the paste and extraction pipeline.

The host owns the scene: documents, selection, spawning and destruction,
sub-document loading, undo scopes and viewport refresh. ``EditorHost`` is
the abstract contract; ``InMemoryEditorHost`` implements it over the
``scene`` object model and journals every mutation so the phase ordering
of a paste can be inspected afterwards.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Type

from volume_clipboard.contracts import ScopeError, package_short_name
from volume_clipboard.reflection import ClassRegistry, DEFAULT_REGISTRY, Reflected
from volume_clipboard.scene import Actor, Document, StreamingLevel, Volume, World

logger = logging.getLogger(__name__)


class EditorHost(ABC):
    """Abstract editor host.

    Implementations must handle:
    - Document bookkeeping (primary, current, loaded sub-documents)
    - Object lifetime (spawn, rename, destroy) scoped per document
    - Streaming gate lists of sub-documents
    - Undo scopes, one per pipeline phase, never nested
    """

    registry: ClassRegistry = DEFAULT_REGISTRY

    @property
    @abstractmethod
    def primary_document(self) -> Document:
        """The persistent document that owns all sub-documents."""
        ...

    @property
    @abstractmethod
    def current_document(self) -> Document:
        """Document new objects are spawned into."""
        ...

    @abstractmethod
    def set_current_document(self, document: Document) -> None:
        ...

    @abstractmethod
    def documents(self) -> List[Document]:
        """All live documents, primary first."""
        ...

    @abstractmethod
    def streaming_levels(self) -> List[StreamingLevel]:
        ...

    @abstractmethod
    def selected_objects(self) -> List[Actor]:
        ...

    @abstractmethod
    def clear_selection(self) -> None:
        ...

    @abstractmethod
    def select(self, obj: Actor) -> None:
        ...

    @abstractmethod
    def find_object(self, document: Document, name: str) -> Optional[Actor]:
        ...

    @abstractmethod
    def rename_object(self, obj: Actor, new_name: str) -> None:
        ...

    @abstractmethod
    def destroy_object(self, obj: Actor) -> None:
        """Destroy *obj* and drop it from every streaming gate list."""
        ...

    @abstractmethod
    def spawn(self, cls: Type[Actor], document: Document, name: Optional[str] = None) -> Actor:
        """Spawn *cls* into *document*.

        Args:
            cls: Concrete actor class.
            document: Target document.
            name: Exact name to claim, or None for a document-assigned unique name.

        Raises:
            ValueError: If *name* is already taken in *document*.
        """
        ...

    @abstractmethod
    def load_sub_document(self, path: str) -> Optional[Document]:
        """Load the sub-document at *path*; None if it cannot be found.

        Loading may leave the loaded document as the current document.
        """
        ...

    @abstractmethod
    def add_streaming_gate(self, level: StreamingLevel, volume: Volume) -> bool:
        """Add *volume* to *level*'s gate list; False if already present."""
        ...

    @abstractmethod
    def undo_scope(self, label: str) -> ContextManager[None]:
        """Context manager grouping mutations into one undoable transaction.

        Raises:
            ScopeError: If another scope is already open.
        """
        ...

    @abstractmethod
    def rebuild_altered_geometry(self) -> None:
        ...

    @abstractmethod
    def redraw_viewports(self) -> None:
        ...

    def resolve_class(self, class_path: str) -> Optional[Type[Reflected]]:
        return self.registry.resolve(class_path)

    def is_volume_class(self, cls: Optional[type]) -> bool:
        return isinstance(cls, type) and issubclass(cls, Volume)


class InMemoryEditorHost(EditorHost):
    """Editor host over an in-memory ``World``.

    Sub-documents that can be loaded are registered up front in a library
    keyed by package path. Every mutation is appended to ``events`` as a
    ``(kind, *details)`` tuple.
    """

    def __init__(
        self,
        primary: Optional[Document] = None,
        library: Optional[Iterable[Document]] = None,
        registry: Optional[ClassRegistry] = None,
    ):
        self.world = World(primary or Document("/Game/Maps/Main"))
        self.library: Dict[str, Document] = {doc.package_path: doc for doc in (library or [])}
        if registry is not None:
            self.registry = registry
        self.events: List[Tuple[Any, ...]] = []
        self.rebuild_count = 0
        self.redraw_count = 0
        self._selection: List[Actor] = []
        self._open_scope: Optional[str] = None
        self._scope_ops: Set[str] = set()

    # -- documents ---------------------------------------------------------

    @property
    def primary_document(self) -> Document:
        return self.world.persistent

    @property
    def current_document(self) -> Document:
        return self.world.current_document

    def set_current_document(self, document: Document) -> None:
        if document is not self.world.current_document:
            self.events.append(("set_current", document.package_path))
        self.world.current_document = document

    def documents(self) -> List[Document]:
        return self.world.documents

    def streaming_levels(self) -> List[StreamingLevel]:
        return self.world.streaming_levels

    def add_library_document(self, document: Document) -> None:
        self.library[document.package_path] = document

    def add_streaming_level(self, package_path: str, loaded: bool = True) -> StreamingLevel:
        """Register a streaming level; loaded levels get an empty document."""
        level = self.world.find_streaming_level(package_path)
        if level is None:
            level = StreamingLevel(package_path)
            self.world.streaming_levels.append(level)
        if loaded and level.document is None:
            level.document = self.library.get(package_path) or Document(package_path)
        return level

    # -- selection ---------------------------------------------------------

    def selected_objects(self) -> List[Actor]:
        return [obj for obj in self._selection if obj.is_valid]

    def clear_selection(self) -> None:
        if self._selection:
            self.events.append(("select_none",))
        self._selection = []

    def select(self, obj: Actor) -> None:
        if not any(existing is obj for existing in self._selection):
            self._selection.append(obj)

    # -- objects -----------------------------------------------------------

    def find_object(self, document: Document, name: str) -> Optional[Actor]:
        obj = document.find(name)
        if isinstance(obj, Actor) and obj.is_valid:
            return obj
        return None

    def rename_object(self, obj: Actor, new_name: str) -> None:
        document = obj.outer
        old_name = obj.name
        document.rename(obj, new_name)
        self.events.append(("rename", old_name, new_name))

    def destroy_object(self, obj: Actor) -> None:
        document = obj.outer
        if isinstance(document, Document):
            document.remove(obj)
        obj.destroyed = True
        self._selection = [s for s in self._selection if s is not obj]
        for level in self.world.streaming_levels:
            if level.remove_gate(obj):
                logger.debug("Removed %s from %s gate list", obj.name, level.short_name)
        self.events.append(("destroy", obj.name))

    def spawn(self, cls: Type[Actor], document: Document, name: Optional[str] = None) -> Actor:
        self._touch_scope("spawn")
        if name is None:
            name = document.unique_name(cls.class_name())
        elif document.find(name) is not None:
            raise ValueError(f"{document.short_name} already has an object named {name!r}")
        obj = cls(name)
        document.add(obj)
        self.events.append(("spawn", name, document.package_path))
        return obj

    # -- sub-documents -----------------------------------------------------

    def load_sub_document(self, path: str) -> Optional[Document]:
        self._touch_scope("load")
        document = self.library.get(path)
        if document is None:
            short = package_short_name(path)
            for candidate in self.library.values():
                if candidate.short_name == short:
                    document = candidate
                    break
        if document is None:
            logger.warning("Sub-document %s not found", path)
            return None

        parent = self.world.current_document
        level = self.world.find_streaming_level(document.package_path)
        if level is None:
            level = StreamingLevel(document.package_path)
            self.world.streaming_levels.append(level)
        level.document = document
        self.events.append(("load", document.package_path, parent.package_path))
        self.world.current_document = document
        return document

    def add_streaming_gate(self, level: StreamingLevel, volume: Volume) -> bool:
        added = level.add_gate(volume)
        if added:
            self.events.append(("relink", volume.name, level.package_path))
        return added

    # -- transactions ------------------------------------------------------

    @contextmanager
    def _scope(self, label: str) -> Iterator[None]:
        if self._open_scope is not None:
            raise ScopeError(
                f"Cannot open undo scope {label!r} while {self._open_scope!r} is open"
            )
        self._open_scope = label
        self._scope_ops = set()
        self.events.append(("scope_begin", label))
        try:
            yield
        finally:
            self.events.append(("scope_end", label))
            self._open_scope = None
            self._scope_ops = set()

    def undo_scope(self, label: str) -> ContextManager[None]:
        return self._scope(label)

    def _touch_scope(self, op: str) -> None:
        if self._open_scope is None:
            return
        other = "spawn" if op == "load" else "load"
        if other in self._scope_ops:
            raise ScopeError(
                f"Sub-document load and spawn cannot share undo scope {self._open_scope!r}"
            )
        self._scope_ops.add(op)

    def rebuild_altered_geometry(self) -> None:
        self.rebuild_count += 1
        self.events.append(("rebuild",))

    def redraw_viewports(self) -> None:
        self.redraw_count += 1
        self.events.append(("redraw",))

    # -- journal helpers ---------------------------------------------------

    def event_kinds(self) -> List[str]:
        return [event[0] for event in self.events]

    def events_of(self, kind: str) -> List[Tuple[Any, ...]]:
        return [event for event in self.events if event[0] == kind]
