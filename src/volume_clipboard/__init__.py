"""Public API for copying volumes through a text snapshot and pasting them back."""

from volume_clipboard.clipboard import Clipboard, FileClipboard, InMemoryClipboard
from volume_clipboard.contracts import (
    BspBuildOptions,
    ClipboardError,
    ExtractConfig,
    MissingDocumentPolicy,
    PasteConfig,
    PasteResult,
    PromptAnswer,
    SnapshotFormatError,
    VolumeRecord,
)
from volume_clipboard.extract import copy_selected_volumes, extract_selected, extract_volume
from volume_clipboard.host import EditorHost, InMemoryEditorHost
from volume_clipboard.paste import PasteOrchestrator
from volume_clipboard.properties import decode_properties, encode_properties
from volume_clipboard.snapshot import decode_snapshot, encode_snapshot

__all__ = [
    "BspBuildOptions",
    "Clipboard",
    "ClipboardError",
    "EditorHost",
    "ExtractConfig",
    "FileClipboard",
    "InMemoryClipboard",
    "InMemoryEditorHost",
    "MissingDocumentPolicy",
    "PasteConfig",
    "PasteOrchestrator",
    "PasteResult",
    "PromptAnswer",
    "SnapshotFormatError",
    "VolumeRecord",
    "copy_selected_volumes",
    "decode_properties",
    "decode_snapshot",
    "encode_properties",
    "encode_snapshot",
    "extract_selected",
    "extract_volume",
]
