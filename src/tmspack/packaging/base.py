"""Protocol definitions for manifest writing components."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

from tmspack.core.models import LayerJob


class ManifestWriter(Protocol):
    """Interface for describing a packaged layer on disk."""

    def write(self, job: LayerJob, levels: Iterable[int]) -> Path:
        """Write the layer manifest and return its path."""
