"""Core data models for tmspack."""

from .models import (
    Extent,
    LayerJob,
    LayerKind,
    LayerSelection,
    OutputRecord,
    PackagingOptions,
    RunResult,
    StrategySpec,
    TileKey,
    VisitorConfig,
)
from .profile import TileProfile

__all__ = [
    "Extent",
    "LayerJob",
    "LayerKind",
    "LayerSelection",
    "OutputRecord",
    "PackagingOptions",
    "RunResult",
    "StrategySpec",
    "TileKey",
    "TileProfile",
    "VisitorConfig",
]
