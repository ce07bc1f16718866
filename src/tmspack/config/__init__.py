"""Map definition loading utilities for tmspack."""

from .loader import (
    ConfigurationError,
    LayerDefinition,
    MapDefinition,
    MapLoader,
    dump_map,
    load_map,
)

__all__ = [
    "ConfigurationError",
    "LayerDefinition",
    "MapDefinition",
    "MapLoader",
    "dump_map",
    "load_map",
]
