"""Interface definitions for object sources and content handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple

from .models import ProcessingReport, StagedObject


class ObjectSource(ABC):
    """Remote object storage that can copy one object to a local path."""

    @abstractmethod
    def fetch(self, bucket: str, key: str, destination: Path) -> int:
        """Write the object's bytes to ``destination`` and return the byte count.

        Raises ObjectNotFound, StorageBackendError or LocalIOError.
        """


class ContentHandler(ABC):
    """A content-type-specific processing strategy. Handlers only read the staged file."""

    name: str = ""
    suffixes: Tuple[str, ...] = ()

    @abstractmethod
    def process(self, staged: StagedObject) -> ProcessingReport:
        """Consume the staged object.

        Raises UnsupportedContent or ProcessingError.
        """
