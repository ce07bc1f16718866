"""Tiling profiles: the grid a map's tile pyramid is cut along."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping

from .models import Extent, TileKey

ORIGIN_SHIFT = 20037508.342789244


@dataclass(frozen=True)
class TileProfile:
    """Regular quadtree grid over ``extent`` with ``tiles_x`` by ``tiles_y`` tiles at level 0."""

    name: str
    srs: str
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    tiles_x: int = 1
    tiles_y: int = 1
    tile_size: int = 256

    def __post_init__(self) -> None:
        if self.tiles_x < 1 or self.tiles_y < 1 or self.tile_size < 1:
            raise ValueError(
                f"profile {self.name}: tiles_x, tiles_y and tile_size must be at least 1"
            )
        if self.xmin >= self.xmax or self.ymin >= self.ymax:
            raise ValueError(f"profile {self.name}: extent must have positive width and height")

    @classmethod
    def global_geodetic(cls) -> "TileProfile":
        return cls("global-geodetic", "EPSG:4326", -180.0, -90.0, 180.0, 90.0, tiles_x=2, tiles_y=1)

    @classmethod
    def spherical_mercator(cls) -> "TileProfile":
        return cls(
            "spherical-mercator",
            "EPSG:3857",
            -ORIGIN_SHIFT,
            -ORIGIN_SHIFT,
            ORIGIN_SHIFT,
            ORIGIN_SHIFT,
        )

    @classmethod
    def from_config(cls, value: Any) -> "TileProfile":
        """Build a profile from a well-known name or a mapping."""

        if isinstance(value, str):
            named = _NAMED_PROFILES.get(value.lower())
            if named is None:
                raise ValueError(f"Unknown tiling profile: {value}")
            return named()
        if not isinstance(value, Mapping):
            raise ValueError("profile must be a name or a mapping")
        extent = value.get("extent")
        if not isinstance(extent, (list, tuple)) or len(extent) != 4:
            raise ValueError("profile.extent must be a list of four numbers")
        return cls(
            name=str(value.get("name", "custom")),
            srs=str(value["srs"]),
            xmin=float(extent[0]),
            ymin=float(extent[1]),
            xmax=float(extent[2]),
            ymax=float(extent[3]),
            tiles_x=int(value.get("tiles_x", 1)),
            tiles_y=int(value.get("tiles_y", 1)),
            tile_size=int(value.get("tile_size", 256)),
        )

    def to_config(self) -> Any:
        for name, factory in _NAMED_PROFILES.items():
            if factory() == self:
                return name
        return {
            "name": self.name,
            "srs": self.srs,
            "extent": [self.xmin, self.ymin, self.xmax, self.ymax],
            "tiles_x": self.tiles_x,
            "tiles_y": self.tiles_y,
            "tile_size": self.tile_size,
        }

    @property
    def extent(self) -> Extent:
        return Extent(self.xmin, self.ymin, self.xmax, self.ymax, self.srs)

    def tile_count(self, level: int) -> tuple[int, int]:
        scale = 2 ** level
        return self.tiles_x * scale, self.tiles_y * scale

    def tile_dimensions(self, level: int) -> tuple[float, float]:
        cols, rows = self.tile_count(level)
        return (self.xmax - self.xmin) / cols, (self.ymax - self.ymin) / rows

    def contains(self, key: TileKey) -> bool:
        if key.level < 0:
            return False
        cols, rows = self.tile_count(key.level)
        return 0 <= key.x < cols and 0 <= key.y < rows

    def key_extent(self, key: TileKey) -> Extent:
        width, height = self.tile_dimensions(key.level)
        xmin = self.xmin + key.x * width
        ymax = self.ymax - key.y * height
        return Extent(xmin, ymax - height, xmin + width, ymax, self.srs)

    def tms_row(self, key: TileKey) -> int:
        """Row index counted from the bottom, as laid out in a TMS repository."""

        _, rows = self.tile_count(key.level)
        return rows - 1 - key.y

    def keys_in(self, extent: Extent, level: int) -> Iterator[TileKey]:
        """Yield keys at ``level`` whose tiles intersect ``extent``, row by row."""

        if extent.srs != self.srs:
            raise ValueError(f"Extent SRS {extent.srs} does not match profile SRS {self.srs}")
        cols, rows = self.tile_count(level)
        width, height = self.tile_dimensions(level)

        xmin = max(extent.xmin, self.xmin)
        xmax = min(extent.xmax, self.xmax)
        ymin = max(extent.ymin, self.ymin)
        ymax = min(extent.ymax, self.ymax)
        if xmin > xmax or ymin > ymax:
            return
        # an area that only touches the profile edge covers no tile
        if (xmin == xmax and extent.xmin < extent.xmax) or (ymin == ymax and extent.ymin < extent.ymax):
            return

        first_col = _clamp(math.floor((xmin - self.xmin) / width), cols)
        last_col = _clamp(math.ceil((xmax - self.xmin) / width) - 1, cols)
        first_row = _clamp(math.floor((self.ymax - ymax) / height), rows)
        last_row = _clamp(math.ceil((self.ymax - ymin) / height) - 1, rows)
        last_col = max(first_col, last_col)
        last_row = max(first_row, last_row)

        for y in range(first_row, last_row + 1):
            for x in range(first_col, last_col + 1):
                yield TileKey(level, x, y)


def _clamp(value: int, count: int) -> int:
    return min(max(value, 0), count - 1)


_NAMED_PROFILES: Dict[str, Any] = {
    "global-geodetic": TileProfile.global_geodetic,
    "spherical-mercator": TileProfile.spherical_mercator,
}
