from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import box

from tmspack.bounds import BoundsCollector
from tmspack.config import ConfigurationError


def test_add_bounds_accumulates_in_order() -> None:
    collector = BoundsCollector("EPSG:4326")

    collector.add_bounds(-10, -10, 0, 0)
    collector.add_bounds(5, 5, 15, 15)

    assert [(e.xmin, e.ymin, e.xmax, e.ymax) for e in collector.extents] == [
        (-10.0, -10.0, 0.0, 0.0),
        (5.0, 5.0, 15.0, 15.0),
    ]
    assert all(extent.srs == "EPSG:4326" for extent in collector.extents)


def test_add_bounds_rejects_inverted_rectangle() -> None:
    collector = BoundsCollector("EPSG:4326")

    with pytest.raises(ConfigurationError):
        collector.add_bounds(10, 0, 0, 10)


def test_add_index_transforms_feature_bounds_into_map_srs(tmp_path: Path) -> None:
    frame = gpd.GeoDataFrame(geometry=[box(-1, -1, 1, 1), None], crs="EPSG:4326")
    collector = BoundsCollector("EPSG:3857", reader=lambda path: frame)
    collector.add_bounds(0, 0, 10, 10)

    added = collector.add_index(tmp_path / "boundary.gpkg")

    assert len(added) == 1
    assert len(collector.extents) == 2
    extent = added[0]
    assert extent.srs == "EPSG:3857"
    assert extent.xmax == pytest.approx(111319.49, rel=1e-4)
    assert extent.xmin == pytest.approx(-111319.49, rel=1e-4)


def test_add_index_keeps_bounds_when_crs_matches(tmp_path: Path) -> None:
    frame = gpd.GeoDataFrame(geometry=[box(2, 3, 4, 5), box(6, 7, 8, 9)], crs="EPSG:4326")
    collector = BoundsCollector("EPSG:4326", reader=lambda path: frame)

    added = collector.add_index(tmp_path / "boundary.shp")

    assert [(e.xmin, e.ymin, e.xmax, e.ymax) for e in added] == [(2, 3, 4, 5), (6, 7, 8, 9)]


def test_add_index_without_crs_assumes_map_srs(tmp_path: Path) -> None:
    frame = gpd.GeoDataFrame(geometry=[box(2, 3, 4, 5)])
    collector = BoundsCollector("EPSG:4326", reader=lambda path: frame)

    added = collector.add_index(tmp_path / "boundary.geojson")

    assert (added[0].xmin, added[0].ymax) == (2, 5)


def test_add_index_reader_failure_is_configuration_error(tmp_path: Path) -> None:
    def reader(path: Path):  # type: ignore[no-untyped-def]
        raise OSError(f"cannot open {path}")

    collector = BoundsCollector("EPSG:4326", reader=reader)

    with pytest.raises(ConfigurationError):
        collector.add_index(tmp_path / "missing.shp")


def test_add_index_without_geometries_is_configuration_error(tmp_path: Path) -> None:
    collector = BoundsCollector("EPSG:4326", reader=lambda path: object())

    with pytest.raises(ConfigurationError):
        collector.add_index(tmp_path / "table.csv")
    assert collector.extents == []


def test_add_index_with_bad_bounds_is_configuration_error(tmp_path: Path) -> None:
    class Frame:
        crs = None
        geometry = [box(0, 0, 1, 1), "not a geometry"]

    collector = BoundsCollector("EPSG:4326", reader=lambda path: Frame())

    with pytest.raises(ConfigurationError):
        collector.add_index(tmp_path / "broken.gpkg")
