"""
Sub-document reference resolution for a paste batch.

Streaming gate volumes name the sub-documents they control. Before any
volume of a batch is spawned, every referenced sub-document that is not
live yet is resolved once (load, decline, or ask), and only after all
volumes exist are they linked into the gate lists of those sub-documents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from volume_clipboard.contracts import (
    MissingDocumentPolicy,
    PromptAnswer,
    VolumeRecord,
    package_short_name,
)

logger = logging.getLogger(__name__)

STREAMING_NAMES_PROPERTY = "StreamingLevelNames"
_STRIPPED_CHARS = "()\"'"

PromptFn = Callable[[str], PromptAnswer]


def parse_streaming_names(text: str) -> List[str]:
    """Split exported ``StreamingLevelNames`` text into package paths.

    >>> parse_streaming_names('("/Game/Maps/A","/Game/Maps/B")')
    ['/Game/Maps/A', '/Game/Maps/B']
    """
    cleaned = text
    for ch in _STRIPPED_CHARS:
        cleaned = cleaned.replace(ch, "")
    names: List[str] = []
    for part in cleaned.split(","):
        name = part.strip()
        if name and name != "None" and name not in names:
            names.append(name)
    return names


def referenced_paths(record: VolumeRecord) -> List[str]:
    """Sub-documents *record* refers to, property names first, then links."""
    paths: List[str] = []
    text = record.properties.get(STREAMING_NAMES_PROPERTY)
    if text:
        paths.extend(parse_streaming_names(text))
    for link in record.stream_links or []:
        if link.sub_document_path and link.sub_document_path not in paths:
            paths.append(link.sub_document_path)
    return paths


def is_streaming_gate(obj) -> bool:
    find_field = getattr(obj, "find_field", None)
    return find_field is not None and find_field(STREAMING_NAMES_PROPERTY) is not None


def gate_paths(volume) -> List[str]:
    """Names a live gate volume currently holds in its streaming list."""
    names = volume.get_value(STREAMING_NAMES_PROPERTY) or []
    return [str(name) for name in names if name]


class DecisionMemo:
    """Memoized load/skip decisions for missing sub-documents.

    Each distinct path is asked about at most once. A "to all" answer
    becomes sticky and settles every later path without prompting.
    """

    def __init__(self, policy: MissingDocumentPolicy = MissingDocumentPolicy.ASK):
        self.policy = policy
        self.answers: Dict[str, bool] = {}
        self.sticky: Optional[bool] = None
        self.prompts = 0

    def decide(self, path: str, prompt: Optional[PromptFn] = None) -> bool:
        if self.policy is MissingDocumentPolicy.ALWAYS_LOAD:
            return True
        if self.policy is MissingDocumentPolicy.NEVER_LOAD:
            return False
        if path in self.answers:
            return self.answers[path]
        if self.sticky is not None:
            self.answers[path] = self.sticky
            return self.sticky
        if prompt is None:
            logger.warning("No prompt available for missing sub-document %s, not loading", path)
            self.answers[path] = False
            return False

        answer = prompt(path)
        self.prompts += 1
        if answer is PromptAnswer.YES_TO_ALL:
            self.sticky = True
        elif answer is PromptAnswer.NO_TO_ALL:
            self.sticky = False
        load = answer in (PromptAnswer.YES, PromptAnswer.YES_TO_ALL)
        self.answers[path] = load
        logger.debug("Missing sub-document %s: %s", path, answer.value)
        return load


@dataclass
class LoadReport:
    """What happened to each referenced path during the load phase."""

    loaded: List[str] = field(default_factory=list)
    declined: List[str] = field(default_factory=list)
    already_present: List[str] = field(default_factory=list)
    self_references: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class ReferenceResolver:
    """Scan, load and relink sub-document references over one batch."""

    def __init__(
        self,
        host,
        policy: MissingDocumentPolicy = MissingDocumentPolicy.ASK,
        prompt: Optional[PromptFn] = None,
        memo: Optional[DecisionMemo] = None,
    ):
        self.host = host
        self.prompt = prompt
        self.memo = memo or DecisionMemo(policy)

    def scan(self, records: Iterable[Optional[VolumeRecord]]) -> List[str]:
        """Ordered, deduplicated union of every record's referenced paths."""
        required: List[str] = []
        for record in records:
            if record is None:
                continue
            for path in referenced_paths(record):
                if path not in required:
                    required.append(path)
        logger.debug("Batch references %d sub-documents", len(required))
        return required

    def is_present(self, path: str) -> bool:
        short = package_short_name(path)
        for document in self.host.documents():
            if document.package_path == path or document.short_name == short:
                return True
        return False

    def load_missing(self, paths: Iterable[str]) -> LoadReport:
        """Load every path that is not live yet, honouring the memo.

        The current document is reset to the primary document after each
        load so the next load is parented correctly.
        """
        report = LoadReport()
        primary = self.host.primary_document
        current = self.host.current_document

        for path in paths:
            if primary.matches(path) or current.matches(path):
                logger.debug("Skipping self-reference %s", path)
                report.self_references.append(path)
                continue
            if self.is_present(path):
                report.already_present.append(path)
                continue
            if not self.memo.decide(path, self.prompt):
                report.declined.append(path)
                continue

            self.host.clear_selection()
            document = self.host.load_sub_document(path)
            self.host.set_current_document(primary)
            if document is None:
                report.failed.append(path)
                continue
            report.loaded.append(path)

        if report.loaded:
            logger.info("Loaded %d sub-documents", len(report.loaded))
        return report

    def relink(self, volume, paths: Iterable[str]) -> List[str]:
        """Add *volume* to each matching streaming level; returns levels added to."""
        added: List[str] = []
        for path in paths:
            levels = self.matching_streaming_levels(path)
            if not levels:
                logger.debug("No streaming level for %s, %s stays unlinked", path, volume.name)
                continue
            for level in levels:
                if self.host.add_streaming_gate(level, volume):
                    added.append(level.package_path)
        return added

    def matching_streaming_levels(self, path: str) -> list:
        short = package_short_name(path)
        return [
            level
            for level in self.host.streaming_levels()
            if level.package_path == path or level.short_name == short
        ]
