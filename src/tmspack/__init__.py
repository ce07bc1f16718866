"""tmspack: package map layers into static TMS tile repositories."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "BoundsCollector",
    "CommandTemplateBuilder",
    "Extent",
    "MapDefinition",
    "MultiprocessTileVisitor",
    "MultithreadedTileVisitor",
    "OutputManifestAssembler",
    "RunResult",
    "TileKey",
    "TileProfile",
    "TileVisitor",
    "TmsPackager",
    "load_map",
    "load_task_list",
]

_MODULE_MAP = {
    "BoundsCollector": ("tmspack.bounds", "BoundsCollector"),
    "CommandTemplateBuilder": ("tmspack.tiling", "CommandTemplateBuilder"),
    "Extent": ("tmspack.core", "Extent"),
    "MapDefinition": ("tmspack.config", "MapDefinition"),
    "MultiprocessTileVisitor": ("tmspack.tiling", "MultiprocessTileVisitor"),
    "MultithreadedTileVisitor": ("tmspack.tiling", "MultithreadedTileVisitor"),
    "OutputManifestAssembler": ("tmspack.packaging", "OutputManifestAssembler"),
    "RunResult": ("tmspack.core", "RunResult"),
    "TileKey": ("tmspack.core", "TileKey"),
    "TileProfile": ("tmspack.core", "TileProfile"),
    "TileVisitor": ("tmspack.tiling", "TileVisitor"),
    "TmsPackager": ("tmspack.packaging", "TmsPackager"),
    "load_map": ("tmspack.config", "load_map"),
    "load_task_list": ("tmspack.tiling", "load_task_list"),
}


def __getattr__(name: str) -> Any:
    if name not in _MODULE_MAP:
        raise AttributeError(f"module 'tmspack' has no attribute '{name}'")
    module_name, attr = _MODULE_MAP[name]
    module = importlib.import_module(module_name)
    return getattr(module, attr)
