"""
Shared test fixtures for volume copy/paste tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from volume_clipboard.contracts import PolygonRecord
from volume_clipboard.host import InMemoryEditorHost
from volume_clipboard.scene import Document

PRIMARY_PATH = "/Game/Maps/Main"


def _box_faces(half: float):
    h = float(half)
    return [
        # +X
        [(h, -h, -h), (h, h, -h), (h, h, h), (h, -h, h)],
        # -X
        [(-h, -h, -h), (-h, -h, h), (-h, h, h), (-h, h, -h)],
        # +Y
        [(-h, h, -h), (-h, h, h), (h, h, h), (h, h, -h)],
        # -Y
        [(-h, -h, -h), (h, -h, -h), (h, -h, h), (-h, -h, h)],
        # +Z
        [(-h, -h, h), (h, -h, h), (h, h, h), (-h, h, h)],
        # -Z
        [(-h, -h, -h), (-h, h, -h), (h, h, -h), (h, -h, -h)],
    ]


@pytest.fixture
def box_polygons():
    """Outward-wound 200x200x200 cube centred at the origin, flags 0."""
    return [PolygonRecord(vertices=face, flags=0) for face in _box_faces(100.0)]


@pytest.fixture
def triangle_polygons():
    """A single triangle in the z=0 plane."""
    return [
        PolygonRecord(
            vertices=[(0.0, 0.0, 0.0), (100.0, 0.0, 0.0), (0.0, 100.0, 0.0)],
            flags=0,
        )
    ]


@pytest.fixture
def primary_document():
    return Document(PRIMARY_PATH)


@pytest.fixture
def host(primary_document):
    """In-memory host with an empty primary document and two loadable sub-documents."""
    library = [Document("/Game/Maps/SubA"), Document("/Game/Maps/SubB")]
    return InMemoryEditorHost(primary_document, library=library)
