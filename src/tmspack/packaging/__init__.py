"""TMS packaging and manifest assembly for tmspack."""

from .base import ManifestWriter
from .manager import LayerNotFoundError, PackagingSummary, TmsPackager, legal_file_name
from .manifest import ManifestWriteError, OutputManifestAssembler, TileMapWriter

__all__ = [
    "LayerNotFoundError",
    "ManifestWriteError",
    "ManifestWriter",
    "OutputManifestAssembler",
    "PackagingSummary",
    "TileMapWriter",
    "TmsPackager",
    "legal_file_name",
]
