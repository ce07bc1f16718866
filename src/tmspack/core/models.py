"""Dataclasses describing core tmspack entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, FrozenSet, List, Optional, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .profile import TileProfile


@dataclass(frozen=True)
class Extent:
    """Spatial rectangle tagged with the SRS its coordinates are expressed in."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    srs: str

    def __post_init__(self) -> None:
        if self.xmin > self.xmax or self.ymin > self.ymax:
            raise ValueError(
                f"Invalid extent ({self.xmin}, {self.ymin}, {self.xmax}, {self.ymax}): min exceeds max"
            )

    def intersects(self, other: "Extent") -> bool:
        return not (
            other.xmin >= self.xmax
            or other.xmax <= self.xmin
            or other.ymin >= self.ymax
            or other.ymax <= self.ymin
        )


@dataclass(frozen=True, order=True)
class TileKey:
    """Address of one tile; ``y`` counts rows from the top of the profile."""

    level: int
    x: int
    y: int

    def __str__(self) -> str:
        return f"{self.level}/{self.x}/{self.y}"


class LayerKind(str, Enum):
    IMAGE = "image"
    ELEVATION = "elevation"


@dataclass
class VisitorConfig:
    """Level range and spatial restriction handed to a tile visitor."""

    min_level: int = 0
    max_level: int = 5
    extents: List[Extent] = field(default_factory=list)
    progress_enabled: bool = False


@dataclass
class StrategySpec:
    """Selected execution strategy and its tuning knobs."""

    kind: str = "sequential"
    thread_count: Optional[int] = None
    process_count: Optional[int] = None
    batch_size: Optional[int] = None
    worker_timeout: Optional[float] = None

    KINDS = ("sequential", "threaded", "multiprocess")

    def __post_init__(self) -> None:
        if self.kind not in self.KINDS:
            raise ValueError(f"Unknown strategy kind: {self.kind}")


@dataclass
class LayerJob:
    """One layer's packaging assignment for the current run."""

    layer: Any
    kind: LayerKind
    index: int
    extension: str
    folder: Path
    profile: "TileProfile"


@dataclass(frozen=True)
class OutputRecord:
    """Packaged layer entry destined for the combined map definition."""

    layer_name: str
    relative_folder: str
    manifest_uri: str
    kind: LayerKind = LayerKind.IMAGE


@dataclass(frozen=True)
class RunResult:
    """Aggregate outcome of running a visitor over one layer."""

    succeeded_count: int = 0
    failed_keys: FrozenSet[TileKey] = frozenset()
    failed_batches: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failed_keys)

    @property
    def ok(self) -> bool:
        return not self.failed_keys and not self.failed_batches

    def merge(self, other: "RunResult") -> "RunResult":
        return RunResult(
            succeeded_count=self.succeeded_count + other.succeeded_count,
            failed_keys=self.failed_keys | other.failed_keys,
            failed_batches=self.failed_batches + other.failed_batches,
        )


@dataclass(frozen=True)
class LayerSelection:
    """Explicit choice of a single layer by kind and index."""

    kind: LayerKind
    index: int

    @property
    def flag(self) -> str:
        return f"--{self.kind.value}"


@dataclass
class PackagingOptions:
    """Fully resolved command-line configuration for one packaging run."""

    map_path: Path
    out_dir: Path
    bounds: List[Tuple[float, float, float, float]] = field(default_factory=list)
    index_paths: List[Path] = field(default_factory=list)
    tiles: Optional[Path] = None
    min_level: int = 0
    max_level: int = 5
    strategy: StrategySpec = field(default_factory=StrategySpec)
    selection: Optional[LayerSelection] = None
    extension: Optional[str] = None
    overwrite: bool = False
    keep_empties: bool = False
    continue_single_color: bool = False
    elevation_pixel_depth: int = 32
    db_options: str = ""
    out_earth: Optional[Path] = None
    verbose: bool = False
    quiet: bool = False
    log_level: str = "INFO"

    @property
    def is_worker(self) -> bool:
        return self.tiles is not None
