"""Protocol definitions for tile rendering components."""

from __future__ import annotations

from typing import Protocol

from tmspack.core.models import LayerJob, TileKey


class TileRenderer(Protocol):
    """Interface for rendering and writing a single tile of a layer.

    Implementations must be safe to call concurrently for disjoint keys.
    """

    default_extension: str

    def render(self, job: LayerJob, key: TileKey) -> bool:
        """Write the tile for ``key``; return False when it was skipped."""
