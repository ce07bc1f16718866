import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Tuple

import pytest

from tmspack.config import LayerDefinition, MapDefinition, load_map
from tmspack.core import LayerKind, LayerSelection, TileKey, TileProfile, VisitorConfig
from tmspack.packaging import (
    LayerNotFoundError,
    OutputManifestAssembler,
    TmsPackager,
    legal_file_name,
)
from tmspack.tiling import CommandTemplateBuilder, MultiprocessTileVisitor, TileVisitor, WorkerOptions


class StubRenderer:
    default_extension = "png"

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, TileKey]] = []
        self._lock = threading.Lock()

    def render(self, job, key):  # type: ignore[no-untyped-def]
        with self._lock:
            self.calls.append((job.layer.name, job.extension, key))
        return True


@pytest.fixture()
def world() -> MapDefinition:
    return MapDefinition(
        name="world",
        profile=TileProfile.global_geodetic(),
        image_layers=[
            LayerDefinition(name="Blue Marble", source="/data/bm.tif", options={"opacity": 0.8}),
            LayerDefinition(name="roads", source="/data/roads.tif"),
        ],
        elevation_layers=[LayerDefinition(name="dem", source="/data/dem.tif")],
    )


def _visitor(renderer: StubRenderer) -> TileVisitor:
    visitor = TileVisitor(renderer)
    visitor.configure(VisitorConfig(min_level=0, max_level=2))
    return visitor


def test_package_writes_folder_and_manifest_per_layer(world: MapDefinition, tmp_path: Path) -> None:
    renderer = StubRenderer()
    out = tmp_path / "repo"
    assembler = OutputManifestAssembler(world, out / "world_tms.yaml")
    packager = TmsPackager(world, _visitor(renderer), destination=out)

    summary = packager.package(assembler=assembler)

    assert summary.ok
    assert [name for name, _ in summary.results] == ["Blue Marble", "roads", "dem"]
    assert summary.total.succeeded_count == 3 * (2 + 8 + 32)
    for folder in ("Blue_Marble", "roads", "dem"):
        assert (out / folder / "tms.xml").is_file()
    extensions = {name: ext for name, ext, _ in renderer.calls}
    assert extensions == {"Blue Marble": "png", "roads": "png", "dem": "tif"}

    assert assembler.write()
    combined = load_map(out / "world_tms.yaml")
    layers = combined.image_layers + combined.elevation_layers
    assert [layer.name for layer in layers] == ["Blue Marble", "roads", "dem"]
    assert {layer.cache_policy for layer in layers} == {"no_cache"}
    assert {layer.driver for layer in layers} == {"tms"}
    assert combined.image_layers[0].url == "Blue_Marble/tms.xml"
    assert combined.image_layers[0].options == {"opacity": 0.8}
    assert combined.elevation_layers[0].url == "dem/tms.xml"


def test_tile_map_lists_every_level(world: MapDefinition, tmp_path: Path) -> None:
    out = tmp_path / "repo"
    TmsPackager(world, _visitor(StubRenderer()), destination=out).package(
        LayerSelection(LayerKind.IMAGE, 1)
    )

    root = ET.parse(out / "roads" / "tms.xml").getroot()

    assert root.findtext("SRS") == "EPSG:4326"
    tilesets = root.find("TileSets").findall("TileSet")
    assert [tileset.get("href") for tileset in tilesets] == ["0", "1", "2"]
    assert float(tilesets[0].get("units-per-pixel")) == pytest.approx(180 / 256)
    assert root.find("TileFormat").get("extension") == "png"


def test_selected_layer_only(world: MapDefinition, tmp_path: Path) -> None:
    renderer = StubRenderer()
    out = tmp_path / "repo"

    summary = TmsPackager(world, _visitor(renderer), destination=out, extension="jpg").package(
        LayerSelection(LayerKind.IMAGE, 0)
    )

    assert [name for name, _ in summary.results] == ["Blue Marble"]
    assert {ext for _, ext, _ in renderer.calls} == {"jpg"}
    assert sorted(path.name for path in out.iterdir()) == ["Blue_Marble"]


def test_missing_layer_raises_before_any_output(world: MapDefinition, tmp_path: Path) -> None:
    out = tmp_path / "repo"
    out.mkdir()
    renderer = StubRenderer()

    with pytest.raises(LayerNotFoundError):
        TmsPackager(world, _visitor(renderer), destination=out).package(
            LayerSelection(LayerKind.ELEVATION, 4)
        )

    assert list(out.iterdir()) == []
    assert renderer.calls == []


def test_worker_runs_skip_manifests(world: MapDefinition, tmp_path: Path) -> None:
    out = tmp_path / "repo"

    TmsPackager(world, _visitor(StubRenderer()), destination=out, write_manifests=False).package(
        LayerSelection(LayerKind.IMAGE, 1)
    )

    assert not (out / "roads" / "tms.xml").exists()


def test_multiprocess_template_names_each_layer(world: MapDefinition, tmp_path: Path) -> None:
    class RecordingLauncher:
        def __init__(self) -> None:
            self.commands: List[List[str]] = []

        def run(self, command, *, description):  # type: ignore[no-untyped-def]
            self.commands.append(list(command))
            return 0

    launcher = RecordingLauncher()
    visitor = MultiprocessTileVisitor(process_count=1, batch_size=100, launcher=launcher)
    visitor.configure(VisitorConfig(min_level=0, max_level=0))
    builder = CommandTemplateBuilder(
        tmp_path / "world.yaml", tmp_path / "repo", WorkerOptions(), executable=("tmspack",)
    )

    TmsPackager(world, visitor, destination=tmp_path / "repo", command_builder=builder).package()

    selections = [command[command.index("--tiles") - 3 : command.index("--tiles") - 1] for command in launcher.commands]
    assert selections == [["--image", "0"], ["--image", "1"], ["--elevation", "0"]]


def test_assembler_write_failure_is_reported(world: MapDefinition, tmp_path: Path) -> None:
    target = tmp_path / "taken.yaml"
    target.mkdir()
    assembler = OutputManifestAssembler(world, target)

    assert assembler.write() is False


@pytest.mark.parametrize(
    "name, expected",
    [("Blue Marble", "Blue_Marble"), ("a/b\\c", "a_b_c"), ("..", "layer"), ("dem-30m.v2", "dem-30m.v2")],
)
def test_legal_file_name(name: str, expected: str) -> None:
    assert legal_file_name(name) == expected
