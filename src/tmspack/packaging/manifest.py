"""Per-layer TMS manifests and the combined output map definition."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, List

from tmspack.config import LayerDefinition, MapDefinition, dump_map
from tmspack.core.models import LayerJob, LayerKind, OutputRecord
from tmspack.logging import get_logger

from .base import ManifestWriter

LOGGER = get_logger(__name__)

TILEMAP_NAME = "tms.xml"
NO_CACHE = "no_cache"

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
}


class ManifestWriteError(RuntimeError):
    """Raised when a manifest cannot be written."""


class TileMapWriter(ManifestWriter):
    """Write a TMS ``TileMap`` document describing one packaged layer."""

    def write(self, job: LayerJob, levels: Iterable[int]) -> Path:
        profile = job.profile
        root = ET.Element("TileMap", version="1.0.0", tilemapservice="http://tms.osgeo.org/1.0.0")
        ET.SubElement(root, "Title").text = job.layer.name
        ET.SubElement(root, "Abstract")
        ET.SubElement(root, "SRS").text = profile.srs
        ET.SubElement(
            root,
            "BoundingBox",
            minx=repr(profile.xmin),
            miny=repr(profile.ymin),
            maxx=repr(profile.xmax),
            maxy=repr(profile.ymax),
        )
        ET.SubElement(root, "Origin", x=repr(profile.xmin), y=repr(profile.ymin))
        ET.SubElement(
            root,
            "TileFormat",
            width=str(profile.tile_size),
            height=str(profile.tile_size),
            **{
                "mime-type": _MIME_TYPES.get(job.extension.lower(), "application/octet-stream"),
                "extension": job.extension,
            },
        )
        tilesets = ET.SubElement(root, "TileSets", profile=profile.name)
        for level in sorted(set(levels)):
            width, _ = profile.tile_dimensions(level)
            ET.SubElement(
                tilesets,
                "TileSet",
                href=str(level),
                order=str(level),
                **{"units-per-pixel": repr(width / profile.tile_size)},
            )

        destination = job.folder / TILEMAP_NAME
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            ET.ElementTree(root).write(destination, encoding="utf-8", xml_declaration=True)
        except OSError as exc:
            raise ManifestWriteError(f"Unable to write {destination}: {exc}") from exc
        return destination


class OutputManifestAssembler:
    """Collect packaged layers into a new map definition that points at the TMS repo."""

    def __init__(self, source: MapDefinition, path: Path) -> None:
        self._path = path
        self._records: List[OutputRecord] = []
        self._map = MapDefinition(
            name=source.name,
            profile=source.profile,
            options=dict(source.options),
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def records(self) -> List[OutputRecord]:
        return list(self._records)

    @property
    def map_definition(self) -> MapDefinition:
        return self._map

    def add(self, record: OutputRecord, source_layer: LayerDefinition) -> LayerDefinition:
        options = dict(source_layer.options)
        layer = LayerDefinition(
            name=record.layer_name,
            driver="tms",
            url=record.manifest_uri,
            bounds=source_layer.bounds,
            cache_policy=NO_CACHE,
            options=options,
        )
        if record.kind is LayerKind.ELEVATION:
            self._map.elevation_layers.append(layer)
        else:
            self._map.image_layers.append(layer)
        self._records.append(record)
        return layer

    def write(self) -> bool:
        """Serialize the combined definition; failures are logged, never raised."""

        try:
            dump_map(self._map, self._path)
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Error writing output map to %s: %s", self._path, exc)
            return False
        LOGGER.info(
            "wrote output map",
            extra={"path": str(self._path), "layers": len(self._records)},
        )
        return True
