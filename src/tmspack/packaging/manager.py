"""Drive a tile visitor across the layers of a map and record the results."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from tmspack.config import LayerDefinition, MapDefinition
from tmspack.core.models import LayerJob, LayerKind, LayerSelection, OutputRecord, RunResult
from tmspack.logging import get_logger
from tmspack.tiling.command import CommandTemplateBuilder
from tmspack.tiling.visitor import MultiprocessTileVisitor, TileVisitor

from .base import ManifestWriter
from .manifest import TILEMAP_NAME, ManifestWriteError, OutputManifestAssembler, TileMapWriter

LOGGER = get_logger(__name__)

ELEVATION_EXTENSION = "tif"


class LayerNotFoundError(LookupError):
    """Raised when an explicitly selected layer index does not exist."""


@dataclass
class PackagingSummary:
    """Per-layer results of a packaging run."""

    results: List[Tuple[str, RunResult]] = field(default_factory=list)
    records: List[OutputRecord] = field(default_factory=list)
    manifest_failures: int = 0

    @property
    def total(self) -> RunResult:
        combined = RunResult()
        for _, result in self.results:
            combined = combined.merge(result)
        return combined

    @property
    def ok(self) -> bool:
        return self.total.ok


def legal_file_name(name: str) -> str:
    """Turn a layer name into a folder name that is safe on every filesystem."""

    return re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_.") or "layer"


class TmsPackager:
    """Package the layers of a map into a TMS folder per layer."""

    def __init__(
        self,
        map_definition: MapDefinition,
        visitor: TileVisitor,
        *,
        destination: Path,
        extension: Optional[str] = None,
        default_extension: str = "png",
        command_builder: Optional[CommandTemplateBuilder] = None,
        write_manifests: bool = True,
        manifest_writer: Optional[ManifestWriter] = None,
        verbose: bool = False,
    ) -> None:
        self._map = map_definition
        self._visitor = visitor
        self._destination = destination
        self._extension = extension
        self._default_extension = default_extension
        self._command_builder = command_builder
        self._write_manifests = write_manifests
        self._manifest_writer = manifest_writer or TileMapWriter()
        self._verbose = verbose

    def package(
        self,
        selection: Optional[LayerSelection] = None,
        assembler: Optional[OutputManifestAssembler] = None,
    ) -> PackagingSummary:
        """Run every selected layer; per-layer failures never stop the next layer."""

        targets = self._resolve_targets(selection)
        summary = PackagingSummary()
        for kind, index, layer in targets:
            result = self._package_layer(kind, index, layer, summary, assembler)
            summary.results.append((layer.name, result))
            if not result.ok:
                LOGGER.warning(
                    "layer %s finished with %d failed tiles (%d failed batches)",
                    layer.name,
                    result.failed_count,
                    result.failed_batches,
                )
        return summary

    def _resolve_targets(
        self, selection: Optional[LayerSelection]
    ) -> List[Tuple[LayerKind, int, LayerDefinition]]:
        if selection is None:
            return [
                *((LayerKind.IMAGE, i, layer) for i, layer in enumerate(self._map.image_layers)),
                *((LayerKind.ELEVATION, i, layer) for i, layer in enumerate(self._map.elevation_layers)),
            ]
        layers = (
            self._map.elevation_layers
            if selection.kind is LayerKind.ELEVATION
            else self._map.image_layers
        )
        if not 0 <= selection.index < len(layers):
            raise LayerNotFoundError(
                f"Failed to find an {selection.kind.value} layer at index {selection.index}"
            )
        return [(selection.kind, selection.index, layers[selection.index])]

    def _package_layer(
        self,
        kind: LayerKind,
        index: int,
        layer: LayerDefinition,
        summary: PackagingSummary,
        assembler: Optional[OutputManifestAssembler],
    ) -> RunResult:
        if kind is LayerKind.ELEVATION:
            extension = ELEVATION_EXTENSION
        else:
            extension = self._extension or self._default_extension
        folder_name = legal_file_name(layer.name)
        job = LayerJob(
            layer=layer,
            kind=kind,
            index=index,
            extension=extension,
            folder=self._destination / folder_name,
            profile=self._map.profile,
        )

        if isinstance(self._visitor, MultiprocessTileVisitor) and self._command_builder is not None:
            self._visitor.command_template = self._command_builder.build(LayerSelection(kind, index))

        LOGGER.info("Packaging %s", layer.name)
        start = time.perf_counter()
        result = self._visitor.run(job)
        if self._verbose:
            LOGGER.info(
                "Completed seeding layer %s in %s",
                layer.name,
                format_duration(time.perf_counter() - start),
            )

        if self._write_manifests:
            try:
                self._manifest_writer.write(job, self._levels())
            except ManifestWriteError as exc:
                LOGGER.warning("manifest for %s not written: %s", layer.name, exc)
                summary.manifest_failures += 1

        if assembler is not None:
            record = OutputRecord(
                layer_name=layer.name,
                relative_folder=folder_name,
                manifest_uri=f"{folder_name}/{TILEMAP_NAME}",
                kind=kind,
            )
            assembler.add(record, layer)
            summary.records.append(record)
        return result

    def _levels(self) -> List[int]:
        task_list = self._visitor.task_list
        if task_list is not None:
            return sorted({key.level for key in task_list})
        config = self._visitor.config
        return list(range(config.min_level, config.max_level + 1))


def format_duration(seconds: float) -> str:
    """Render elapsed seconds as ``1h 02m 03s`` style text."""

    seconds = max(0.0, seconds)
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{seconds:.2f}s"
