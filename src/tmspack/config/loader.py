"""Map definition loading and serialization with YAML and JSON support."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from tmspack.core.profile import TileProfile


class ConfigurationError(RuntimeError):
    """Raised when required input is missing or invalid; fatal for the whole run."""


@dataclass
class LayerDefinition:
    """A named image or elevation source within a map definition."""

    name: str
    source: Optional[str] = None
    driver: str = "gdal"
    url: Optional[str] = None
    bounds: Optional[Tuple[float, float, float, float]] = None
    cache_policy: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "driver": self.driver,
            "source": self.source,
            "url": self.url,
            "bounds": list(self.bounds) if self.bounds is not None else None,
            "cache_policy": self.cache_policy,
            "options": dict(self.options) or None,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass
class MapDefinition:
    """Ordered image and elevation layers sharing one tiling profile."""

    name: str = "map"
    profile: TileProfile = field(default_factory=TileProfile.global_geodetic)
    options: Dict[str, Any] = field(default_factory=dict)
    image_layers: List[LayerDefinition] = field(default_factory=list)
    elevation_layers: List[LayerDefinition] = field(default_factory=list)
    path: Optional[Path] = None

    @property
    def srs(self) -> str:
        return self.profile.srs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "profile": self.profile.to_config(),
            "options": dict(self.options),
            "image_layers": [layer.to_dict() for layer in self.image_layers],
            "elevation_layers": [layer.to_dict() for layer in self.elevation_layers],
        }


class MapLoader:
    """Load map definition files in YAML or JSON format."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir or Path.cwd()

    def load(self, path: Path | str) -> MapDefinition:
        """Parse a map definition file and return a populated dataclass."""

        map_path = self._resolve_path(Path(path))
        if not map_path.exists():
            raise ConfigurationError(f"Map definition not found: {map_path}")
        try:
            payload = self._load_payload(map_path)
            definition = self._build_map(payload, map_path.parent)
        except (ValueError, KeyError, TypeError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Invalid map definition {map_path}: {exc}") from exc
        definition.path = map_path
        return definition

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self._base_dir / path).resolve()

    def _load_payload(self, path: Path) -> Dict[str, Any]:
        suffix = path.suffix.lower()
        with path.open("r", encoding="utf-8") as handle:
            if suffix in {".yaml", ".yml"}:
                payload = yaml.safe_load(handle) or {}
            elif suffix == ".json":
                payload = json.load(handle) or {}
            else:
                raise ValueError(f"Unsupported map definition format: {suffix}")
        if not isinstance(payload, dict):
            raise ValueError("map definition must be a mapping")
        return payload

    def _build_map(self, payload: Dict[str, Any], base_dir: Path) -> MapDefinition:
        options = payload.get("options") or {}
        if not isinstance(options, dict):
            raise ValueError("options section must be a mapping")
        profile = TileProfile.from_config(payload.get("profile", "global-geodetic"))
        return MapDefinition(
            name=str(payload.get("name", "map")),
            profile=profile,
            options=dict(options),
            image_layers=self._build_layers(payload.get("image_layers"), "image_layers", base_dir),
            elevation_layers=self._build_layers(
                payload.get("elevation_layers"), "elevation_layers", base_dir
            ),
        )

    def _build_layers(self, entries: Any, section: str, base_dir: Path) -> List[LayerDefinition]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            raise ValueError(f"{section} must be a list")
        layers: List[LayerDefinition] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ValueError(f"{section} entries must be mappings")
            data = dict(entry)
            source = data.get("source")
            if source and "://" not in source and not Path(source).is_absolute():
                data["source"] = str((base_dir / source).resolve())
            bounds = data.get("bounds")
            if bounds is not None:
                if not isinstance(bounds, (list, tuple)) or len(bounds) != 4:
                    raise ValueError(f"{section}.bounds must be a list of four numbers")
                data["bounds"] = tuple(float(value) for value in bounds)
            data["options"] = dict(data.get("options") or {})
            layers.append(LayerDefinition(**data))
        return layers


def load_map(path: Path | str, *, base_dir: Optional[Path] = None) -> MapDefinition:
    """Convenience wrapper around :class:`MapLoader`."""

    loader = MapLoader(base_dir=base_dir)
    return loader.load(path)


def dump_map(definition: MapDefinition, path: Path) -> None:
    """Serialize a map definition; YAML for ``.yaml``/``.yml`` paths, JSON otherwise."""

    payload = definition.to_dict()
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() in {".yaml", ".yml"}:
        text = yaml.safe_dump(payload, sort_keys=False)
    else:
        text = json.dumps(payload, indent=2)
    path.write_text(text, encoding="utf-8")
