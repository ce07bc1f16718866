import json
from pathlib import Path

import pytest

from tmspack.config import ConfigurationError, LayerDefinition, MapDefinition, dump_map, load_map
from tmspack.core import TileProfile


def test_load_yaml_resolves_relative_sources(tmp_path: Path) -> None:
    path = tmp_path / "maps" / "world.yaml"
    path.parent.mkdir()
    path.write_text(
        "name: world\n"
        "profile: spherical-mercator\n"
        "image_layers:\n"
        "  - name: imagery\n"
        "    source: data/imagery.tif\n"
        "    bounds: [0, 0, 10, 10]\n"
        "  - name: remote\n"
        "    source: https://example.org/cog.tif\n"
        "elevation_layers:\n"
        "  - name: dem\n"
        "    source: /srv/dem.tif\n",
        encoding="utf-8",
    )

    definition = load_map(path)

    assert definition.profile == TileProfile.spherical_mercator()
    assert definition.srs == "EPSG:3857"
    assert definition.image_layers[0].source == str((path.parent / "data" / "imagery.tif").resolve())
    assert definition.image_layers[0].bounds == (0.0, 0.0, 10.0, 10.0)
    assert definition.image_layers[1].source == "https://example.org/cog.tif"
    assert definition.elevation_layers[0].source == "/srv/dem.tif"
    assert definition.path == path


def test_load_json_defaults_to_geodetic(tmp_path: Path) -> None:
    path = tmp_path / "world.json"
    path.write_text(json.dumps({"image_layers": [{"name": "imagery"}]}), encoding="utf-8")

    definition = load_map(path)

    assert definition.profile == TileProfile.global_geodetic()
    assert definition.elevation_layers == []


@pytest.mark.parametrize(
    "text",
    [
        "image_layers: {name: imagery}\n",
        "image_layers:\n  - name: imagery\n    bounds: [1, 2]\n",
        "image_layers:\n  - name: imagery\n    colour: red\n",
        "profile: plate-carree-ish\n",
        "profile: {srs: 'EPSG:4326', extent: [0, 0, 10, 10], tiles_x: 0}\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_definitions_raise_configuration_error(tmp_path: Path, text: str) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text(text, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_map(path)


def test_missing_and_unsupported_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_map(tmp_path / "absent.yaml")

    odd = tmp_path / "world.ini"
    odd.write_text("[map]\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_map(odd)


def test_dump_map_picks_format_from_suffix(tmp_path: Path) -> None:
    definition = MapDefinition(
        name="out",
        image_layers=[LayerDefinition(name="imagery", driver="tms", url="imagery/tms.xml", cache_policy="no_cache")],
    )

    dump_map(definition, tmp_path / "a" / "out.json")
    dump_map(definition, tmp_path / "out.yaml")

    payload = json.loads((tmp_path / "a" / "out.json").read_text(encoding="utf-8"))
    assert payload["image_layers"] == [
        {"name": "imagery", "driver": "tms", "url": "imagery/tms.xml", "cache_policy": "no_cache"}
    ]
    assert load_map(tmp_path / "out.yaml").image_layers[0].url == "imagery/tms.xml"
