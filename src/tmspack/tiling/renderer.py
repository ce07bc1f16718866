"""Tile rendering through ``gdal_translate``."""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from tmspack.core.models import Extent, LayerJob, LayerKind, TileKey
from tmspack.logging import get_logger

LOGGER = get_logger(__name__)

_GDAL_DRIVERS = {"png": "PNG", "jpg": "JPEG", "jpeg": "JPEG", "webp": "WEBP", "tif": "GTiff", "tiff": "GTiff"}
_ELEVATION_TYPES = {16: "Int16", 32: "Float32"}


class TileCommandError(RuntimeError):
    """Raised when a tiling command exits with a non-zero code."""


class TileRunner:
    """Execute external commands and propagate failures with context."""

    def __init__(self, *, dry_run: bool = False) -> None:
        self._dry_run = dry_run

    def run(self, command: Sequence[str], *, description: str) -> None:
        LOGGER.debug("tiling step", extra={"description": description, "command": shlex.join(command)})
        if self._dry_run:
            return
        try:
            proc = subprocess.run(command, check=True, text=True, capture_output=True)
            if proc.stderr:
                LOGGER.debug(proc.stderr.strip())
        except FileNotFoundError as exc:
            raise TileCommandError(f"Executable not found: {command[0]}") from exc
        except subprocess.CalledProcessError as exc:  # pragma: no cover - depends on GDAL runtime
            msg = f"Command failed: {shlex.join(command)}"
            if exc.stderr:
                msg += f"\n--- stderr ---\n{exc.stderr}"
            raise TileCommandError(msg) from exc


@dataclass
class RenderOptions:
    """Writer settings shared by every tile of a run."""

    overwrite: bool = False
    keep_empties: bool = False
    continue_single_color: bool = False
    elevation_pixel_depth: int = 32
    db_options: str = ""


def tile_path(job: LayerJob, key: TileKey) -> Path:
    """Return ``<folder>/<level>/<x>/<tms row>.<ext>`` for a key."""

    return job.folder / str(key.level) / str(key.x) / f"{job.profile.tms_row(key)}.{job.extension}"


def creation_options(db_options: str) -> List[str]:
    """Translate a db-options string into ``-co`` arguments.

    ``KEY=VALUE`` tokens are used as-is; bare tokens pair up as ``KEY VALUE``.
    A string with unbalanced quotes has its double quotes dropped and is split
    on whitespace.
    """

    try:
        tokens = shlex.split(db_options)
    except ValueError:
        LOGGER.warning("db-options has unbalanced quotes; stripping them", extra={"db_options": db_options})
        tokens = db_options.replace('"', "").split()
    arguments: List[str] = []
    pending: Optional[str] = None
    for token in tokens:
        if pending is not None:
            arguments.extend(["-co", f"{pending}={token}"])
            pending = None
        elif "=" in token:
            arguments.extend(["-co", token])
        else:
            pending = token
    if pending is not None:
        raise ValueError(f"db-options key {pending!r} has no value")
    return arguments


class GdalTileRenderer:
    """Cut one tile at a time from a layer's GDAL-readable source."""

    default_extension = "png"

    def __init__(self, options: RenderOptions, *, runner: Optional[TileRunner] = None) -> None:
        self._options = options
        self._runner = runner or TileRunner()
        self._creation_options = creation_options(options.db_options)

    def render(self, job: LayerJob, key: TileKey) -> bool:
        destination = tile_path(job, key)
        if destination.exists() and not self._options.overwrite:
            return False

        tile_extent = job.profile.key_extent(key)
        if not self._options.keep_empties and not _covers(job.layer.bounds, tile_extent):
            return False

        source = job.layer.source
        if not source:
            raise TileCommandError(f"Layer {job.layer.name!r} has no source to render from")

        destination.parent.mkdir(parents=True, exist_ok=True)
        self._runner.run(
            self._build_command(job, tile_extent, source, destination),
            description=f"render {job.layer.name} tile {key}",
        )
        return True

    def _build_command(self, job: LayerJob, extent: Extent, source: str, destination: Path) -> List[str]:
        size = str(job.profile.tile_size)
        driver = _GDAL_DRIVERS.get(job.extension.lower())
        if driver is None:
            raise TileCommandError(f"Unsupported tile extension: {job.extension}")
        command = [
            "gdal_translate",
            "-q",
            "-of",
            driver,
            "-projwin_srs",
            extent.srs,
            "-projwin",
            repr(extent.xmin),
            repr(extent.ymax),
            repr(extent.xmax),
            repr(extent.ymin),
            "-outsize",
            size,
            size,
        ]
        if job.kind is LayerKind.ELEVATION:
            data_type = _ELEVATION_TYPES.get(self._options.elevation_pixel_depth, "Float32")
            command.extend(["-ot", data_type])
        command.extend(self._creation_options)
        command.extend([source, str(destination)])
        return command


def _covers(bounds, extent: Extent) -> bool:
    if bounds is None:
        return True
    layer_extent = Extent(*bounds, srs=extent.srs)
    return layer_extent.intersects(extent)
