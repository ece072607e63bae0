"""Text transports for snapshots."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class Clipboard(ABC):
    """A single shared text slot."""

    @abstractmethod
    def read(self) -> str:
        ...

    @abstractmethod
    def write(self, text: str) -> None:
        ...


class InMemoryClipboard(Clipboard):
    def __init__(self, text: str = ""):
        self.text = text

    def read(self) -> str:
        return self.text

    def write(self, text: str) -> None:
        self.text = text


class FileClipboard(Clipboard):
    """Clipboard backed by a UTF-8 text file; a missing file reads as empty."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> str:
        if not self.path.exists():
            logger.debug("Clipboard file %s does not exist", self.path)
            return ""
        return self.path.read_text(encoding="utf-8")

    def write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(text, encoding="utf-8")
