"""Tests for building records from live volumes and full copy/paste round trips."""

from volume_clipboard.clipboard import InMemoryClipboard
from volume_clipboard.contracts import (
    ExtractConfig,
    MissingDocumentPolicy,
    PasteConfig,
    StreamLink,
    Transform,
)
from volume_clipboard.extract import copy_selected_volumes, extract_selected, extract_volume
from volume_clipboard.geometry import GeometryCodec
from volume_clipboard.host import InMemoryEditorHost
from volume_clipboard.paste import PasteOrchestrator
from volume_clipboard.properties import encode_properties
from volume_clipboard.scene import (
    AudioVolume,
    ComponentMobility,
    Document,
    LevelStreamingVolume,
    Note,
    PostProcessVolume,
    TriggerVolume,
)
from volume_clipboard.snapshot import decode_snapshot

PLACED = Transform(location=(1.5, 2.25, -3.0), orientation=(0.0, 0.0, 0.0, 1.0), scale=(1.0, 1.0, 4.0))


def _spawn_with_box(host, cls, name, polygons, document=None):
    volume = host.spawn(cls, document or host.primary_document, name)
    GeometryCodec().decode(volume, polygons)
    volume.set_actor_transform(PLACED)
    return volume


class TestExtractVolume:
    def test_record_fields(self, host, box_polygons):
        volume = _spawn_with_box(host, PostProcessVolume, "PP", box_polygons)
        volume.set_value("Priority", 4.0)
        volume.root_component.set_value("Mobility", ComponentMobility.MOVABLE)

        record = extract_volume(host, volume)

        assert record.class_id == "/Script/Engine.PostProcessVolume"
        assert record.internal_name == "PP"
        assert record.origin_document.package_path == "/Game/Maps/Main"
        assert record.origin_document.short_name == "Main"
        assert record.transform == PLACED
        assert record.spawn_policy == 1
        assert record.mobility == int(ComponentMobility.MOVABLE)
        assert record.brush_kind == 0
        assert record.properties["Priority"] == "4.0"
        assert len(record.raw_polygons) == 6
        assert record.stream_links is None
        assert record.builder_type == "CustomPolys"

    def test_brush_component_skipped(self, host, box_polygons):
        volume = _spawn_with_box(host, AudioVolume, "Audio", box_polygons)
        record = extract_volume(host, volume)
        assert [c.class_name for c in record.components] == ["BillboardComponent"]

    def test_components_can_be_disabled(self, host, box_polygons):
        volume = _spawn_with_box(host, AudioVolume, "Audio", box_polygons)
        record = extract_volume(host, volume, ExtractConfig(include_components=False))
        assert record.components == []

    def test_stream_links_from_gate_lists(self, host, box_polygons):
        level_a = host.add_streaming_level("/Game/Maps/SubA")
        level_b = host.add_streaming_level("/Game/Maps/SubB")
        other = host.spawn(LevelStreamingVolume, host.primary_document, "Other")
        gate = _spawn_with_box(host, LevelStreamingVolume, "Gate", box_polygons)
        level_b.add_gate(other)
        level_a.add_gate(gate)
        level_b.add_gate(gate)

        record = extract_volume(host, gate)
        assert record.stream_links == [
            StreamLink("/Game/Maps/SubA", 0),
            StreamLink("/Game/Maps/SubB", 1),
        ]

    def test_volume_without_brush(self, host):
        volume = host.spawn(TriggerVolume, host.primary_document, "Bare")
        assert extract_volume(host, volume).raw_polygons is None


class TestSelection:
    def test_non_volumes_skipped(self, host, box_polygons):
        volume = _spawn_with_box(host, TriggerVolume, "T", box_polygons)
        note = host.spawn(Note, host.primary_document, "Note_0")
        host.select(note)
        host.select(volume)
        records = extract_selected(host)
        assert [r.internal_name for r in records] == ["T"]

    def test_copy_writes_snapshot(self, host, box_polygons):
        host.select(_spawn_with_box(host, TriggerVolume, "T1", box_polygons))
        host.select(_spawn_with_box(host, TriggerVolume, "T2", box_polygons))
        clipboard = InMemoryClipboard()
        assert copy_selected_volumes(host, clipboard) == 2
        assert [r.internal_name for r in decode_snapshot(clipboard.read())] == ["T1", "T2"]


class TestRoundTrip:
    def test_copy_into_other_scene(self, host, box_polygons):
        source = _spawn_with_box(host, PostProcessVolume, "PP", box_polygons)
        source.set_value("BlendWeight", 0.35)
        source.get_value("Settings")["VignetteIntensity"] = 0.8
        host.select(source)
        clipboard = InMemoryClipboard()
        copy_selected_volumes(host, clipboard)

        target = InMemoryEditorHost(Document("/Game/Maps/Main"))
        pasted = PasteOrchestrator(target).paste_from_clipboard(clipboard).spawned[0]

        assert pasted.name == "PP"
        assert pasted.actor_transform == source.actor_transform
        assert encode_properties(pasted) == encode_properties(source)
        assert GeometryCodec().encode(pasted) == GeometryCodec().encode(source)

    def test_gate_round_trip_restores_links(self, host, box_polygons):
        level = host.add_streaming_level("/Game/Maps/SubA")
        gate = _spawn_with_box(host, LevelStreamingVolume, "Gate", box_polygons)
        gate.set_value("StreamingLevelNames", ["/Game/Maps/SubA"])
        level.add_gate(gate)
        host.select(gate)
        clipboard = InMemoryClipboard()
        copy_selected_volumes(host, clipboard)

        target = InMemoryEditorHost(Document("/Game/Maps/Main"), library=[Document("/Game/Maps/SubA")])
        config = PasteConfig(missing_document_policy=MissingDocumentPolicy.ALWAYS_LOAD)
        result = PasteOrchestrator(target, config).paste_from_clipboard(clipboard)

        assert result.loaded_documents == ["/Game/Maps/SubA"]
        assert target.streaming_levels()[0].editor_streaming_volumes == result.spawned
        assert result.spawned[0].get_value("StreamingLevelNames") == ["/Game/Maps/SubA"]
