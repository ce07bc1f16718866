"""Gather the extents a packaging run is restricted to."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, List, Optional

import geopandas as gpd
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from tmspack.config import ConfigurationError
from tmspack.core.models import Extent
from tmspack.logging import get_logger

LOGGER = get_logger(__name__)


class BoundsCollector:
    """Accumulate explicit rectangles and feature-derived extents in the map SRS.

    Every input is appended, never replaced. Feature bounds are transformed into the
    map SRS here, once, so that visitors and worker processes only ever see map
    coordinates. An empty result means the whole profile should be packaged.
    """

    def __init__(
        self,
        map_srs: str,
        *,
        reader: Optional[Callable[[Path], Any]] = None,
        densify_points: int = 21,
    ) -> None:
        self._map_srs = map_srs
        self._reader = reader or gpd.read_file
        self._densify_points = densify_points
        self._extents: List[Extent] = []

    @property
    def extents(self) -> List[Extent]:
        return list(self._extents)

    def add_bounds(self, xmin: float, ymin: float, xmax: float, ymax: float) -> Extent:
        """Append a rectangle already expressed in map coordinates."""

        try:
            extent = Extent(float(xmin), float(ymin), float(xmax), float(ymax), self._map_srs)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        LOGGER.debug("adding extent", extra={"extent": str(extent)})
        self._extents.append(extent)
        return extent

    def add_index(self, path: Path | str) -> List[Extent]:
        """Append the transformed bounds of every feature in a boundary source."""

        source = Path(path)
        try:
            frame = self._reader(source)
        except Exception as exc:
            raise ConfigurationError(f"Failed to open feature source {source}: {exc}") from exc

        transformer = self._transformer_for(frame, source)
        added: List[Extent] = []
        try:
            for geometry in frame.geometry:
                if geometry is None or geometry.is_empty:
                    continue
                xmin, ymin, xmax, ymax = geometry.bounds
                if transformer is not None:
                    xmin, ymin, xmax, ymax = transformer.transform_bounds(
                        xmin, ymin, xmax, ymax, densify_pts=self._densify_points
                    )
                added.append(Extent(xmin, ymin, xmax, ymax, self._map_srs))
        except (AttributeError, TypeError, ValueError, ProjError) as exc:
            raise ConfigurationError(f"Failed to read feature bounds from {source}: {exc}") from exc

        LOGGER.info(
            "collected feature bounds",
            extra={"source": str(source), "features": len(added)},
        )
        self._extents.extend(added)
        return added

    def _transformer_for(self, frame: Any, source: Path) -> Optional[Transformer]:
        source_crs = getattr(frame, "crs", None)
        if source_crs is None:
            LOGGER.warning(
                "feature source has no CRS; assuming map SRS",
                extra={"source": str(source), "srs": self._map_srs},
            )
            return None
        try:
            target = CRS.from_user_input(self._map_srs)
            origin = CRS.from_user_input(source_crs)
        except CRSError as exc:
            raise ConfigurationError(f"Cannot interpret CRS for {source}: {exc}") from exc
        if origin == target:
            return None
        return Transformer.from_crs(origin, target, always_xy=True)
