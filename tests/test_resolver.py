"""Tests for sub-document scanning, memoized loading and relinking."""

import logging

from volume_clipboard.contracts import (
    MissingDocumentPolicy,
    PromptAnswer,
    StreamLink,
    VolumeRecord,
)
from volume_clipboard.resolver import (
    DecisionMemo,
    ReferenceResolver,
    is_streaming_gate,
    parse_streaming_names,
    referenced_paths,
)
from volume_clipboard.scene import LevelStreamingVolume, TriggerVolume

GATE = "/Script/Engine.LevelStreamingVolume"


def _make_gate_record(names=None, links=None):
    properties = {}
    if names is not None:
        properties["StreamingLevelNames"] = names
    return VolumeRecord(class_id=GATE, internal_name="Gate", properties=properties, stream_links=links)


class _ScriptedPrompt:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    def __call__(self, path):
        self.asked.append(path)
        return self.answers.pop(0)


class TestParsing:
    def test_parse_exported_array(self):
        assert parse_streaming_names('("/Game/Maps/A","/Game/Maps/B")') == [
            "/Game/Maps/A",
            "/Game/Maps/B",
        ]

    def test_parse_quotes_spaces_and_duplicates(self):
        assert parse_streaming_names("( '/Game/A' , \"B\", B, None )") == ["/Game/A", "B"]

    def test_parse_empty(self):
        assert parse_streaming_names("()") == []

    def test_referenced_paths_union(self):
        record = _make_gate_record(
            names='("/Game/Maps/A")',
            links=[StreamLink("/Game/Maps/A", 0), StreamLink("/Game/Maps/C", 1)],
        )
        assert referenced_paths(record) == ["/Game/Maps/A", "/Game/Maps/C"]

    def test_is_streaming_gate(self):
        assert is_streaming_gate(LevelStreamingVolume("G"))
        assert not is_streaming_gate(TriggerVolume("T"))


class TestDecisionMemo:
    def test_fixed_policies_never_prompt(self):
        prompt = _ScriptedPrompt()
        assert DecisionMemo(MissingDocumentPolicy.ALWAYS_LOAD).decide("/A", prompt)
        assert not DecisionMemo(MissingDocumentPolicy.NEVER_LOAD).decide("/A", prompt)
        assert prompt.asked == []

    def test_answers_memoized_per_path(self):
        memo = DecisionMemo()
        prompt = _ScriptedPrompt(PromptAnswer.NO, PromptAnswer.YES)
        assert not memo.decide("/A", prompt)
        assert not memo.decide("/A", prompt)
        assert memo.decide("/B", prompt)
        assert prompt.asked == ["/A", "/B"]
        assert memo.prompts == 2

    def test_yes_to_all_is_sticky(self):
        memo = DecisionMemo()
        prompt = _ScriptedPrompt(PromptAnswer.YES_TO_ALL)
        assert all(memo.decide(path, prompt) for path in ("/A", "/B", "/C"))
        assert memo.prompts == 1

    def test_no_to_all_is_sticky(self):
        memo = DecisionMemo()
        prompt = _ScriptedPrompt(PromptAnswer.NO_TO_ALL)
        assert not any(memo.decide(path, prompt) for path in ("/A", "/B"))
        assert prompt.asked == ["/A"]

    def test_ask_without_prompt_declines(self, caplog):
        memo = DecisionMemo()
        with caplog.at_level(logging.WARNING, logger="volume_clipboard.resolver"):
            assert not memo.decide("/A")
        assert memo.prompts == 0
        assert caplog.records


class TestLoadMissing:
    def test_scan_deduplicates(self, host):
        resolver = ReferenceResolver(host)
        records = [
            _make_gate_record(names='("/Game/Maps/SubA","/Game/Maps/SubB")'),
            None,
            _make_gate_record(links=[StreamLink("/Game/Maps/SubB", 0)]),
        ]
        assert resolver.scan(records) == ["/Game/Maps/SubA", "/Game/Maps/SubB"]

    def test_load_paths(self, host):
        resolver = ReferenceResolver(host, MissingDocumentPolicy.ALWAYS_LOAD)
        report = resolver.load_missing(
            ["/Game/Maps/Main", "/Game/Maps/SubA", "SubB", "/Game/Maps/Gone"]
        )
        assert report.self_references == ["/Game/Maps/Main"]
        assert report.loaded == ["/Game/Maps/SubA", "SubB"]
        assert report.failed == ["/Game/Maps/Gone"]
        assert [d.short_name for d in host.documents()] == ["Main", "SubA", "SubB"]

    def test_current_document_reset_after_each_load(self, host):
        resolver = ReferenceResolver(host, MissingDocumentPolicy.ALWAYS_LOAD)
        resolver.load_missing(["/Game/Maps/SubA", "/Game/Maps/SubB"])
        loads = host.events_of("load")
        assert [event[2] for event in loads] == ["/Game/Maps/Main", "/Game/Maps/Main"]
        assert host.current_document is host.primary_document

    def test_short_name_self_reference(self, host):
        resolver = ReferenceResolver(host, MissingDocumentPolicy.ALWAYS_LOAD)
        report = resolver.load_missing(["Main"])
        assert report.self_references == ["Main"]
        assert host.events_of("load") == []

    def test_already_present_not_reloaded(self, host):
        host.add_streaming_level("/Game/Maps/SubA")
        resolver = ReferenceResolver(host, MissingDocumentPolicy.ALWAYS_LOAD)
        report = resolver.load_missing(["/Game/Maps/SubA", "SubA"])
        assert report.already_present == ["/Game/Maps/SubA", "SubA"]
        assert host.events_of("load") == []

    def test_declined_paths(self, host):
        prompt = _ScriptedPrompt(PromptAnswer.NO_TO_ALL)
        resolver = ReferenceResolver(host, MissingDocumentPolicy.ASK, prompt=prompt)
        report = resolver.load_missing(["/Game/Maps/SubA", "/Game/Maps/SubB"])
        assert report.declined == ["/Game/Maps/SubA", "/Game/Maps/SubB"]
        assert resolver.memo.prompts == 1

    def test_selection_cleared_before_load(self, host):
        volume = host.spawn(TriggerVolume, host.primary_document, "T")
        host.select(volume)
        ReferenceResolver(host, MissingDocumentPolicy.ALWAYS_LOAD).load_missing(["/Game/Maps/SubA"])
        assert host.selected_objects() == []


class TestRelink:
    def test_relink_is_idempotent(self, host):
        level = host.add_streaming_level("/Game/Maps/SubA")
        gate = host.spawn(LevelStreamingVolume, host.primary_document, "Gate")
        resolver = ReferenceResolver(host)

        assert resolver.relink(gate, ["/Game/Maps/SubA"]) == ["/Game/Maps/SubA"]
        assert resolver.relink(gate, ["SubA"]) == []
        assert level.editor_streaming_volumes == [gate]
        assert len(host.events_of("relink")) == 1

    def test_relink_without_level_is_noop(self, host):
        gate = host.spawn(LevelStreamingVolume, host.primary_document, "Gate")
        assert ReferenceResolver(host).relink(gate, ["/Game/Maps/Nowhere"]) == []
