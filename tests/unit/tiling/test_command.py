import importlib
import sys
from pathlib import Path

import pytest

from tmspack.core import LayerKind, LayerSelection
from tmspack.tiling import CommandTemplateBuilder, WorkerLauncher, WorkerOptions

cli_main = importlib.import_module("tmspack.cli.main")


def _builder(tmp_path: Path, **options) -> CommandTemplateBuilder:  # type: ignore[no-untyped-def]
    return CommandTemplateBuilder(
        tmp_path / "world.yaml",
        tmp_path / "repo",
        WorkerOptions(**options),
        executable=("tmspack",),
    )


def test_template_carries_output_and_selection(tmp_path: Path) -> None:
    command = _builder(tmp_path).build(LayerSelection(LayerKind.ELEVATION, 2))

    assert command[0] == "tmspack"
    assert command[1:4] == ["--tms", "--out", str(tmp_path / "repo")]
    assert command[-3:] == ["--elevation", "2", str(tmp_path / "world.yaml")]
    assert "--tiles" not in command


def test_template_round_trips_through_worker_parser(tmp_path: Path) -> None:
    db_options = 'QUALITY=60 NAME="two words"'
    builder = _builder(
        tmp_path,
        extension="jpg",
        overwrite=True,
        db_options=db_options,
        keep_empties=True,
        continue_single_color=True,
        elevation_pixel_depth=16,
        log_level="DEBUG",
    )
    command = builder.build(LayerSelection(LayerKind.IMAGE, 1))
    batch = tmp_path / "batch_000000.tiles"

    args = cli_main.build_parser().parse_args([*command[1:], "--tiles", str(batch)])
    options = cli_main.resolve_options(args)

    assert options.db_options == db_options
    assert options.extension == "jpg"
    assert options.overwrite and options.keep_empties and options.continue_single_color
    assert options.elevation_pixel_depth == 16
    assert options.log_level == "DEBUG"
    assert options.selection == LayerSelection(LayerKind.IMAGE, 1)
    assert options.out_dir == (tmp_path / "repo").resolve()
    assert options.map_path == (tmp_path / "world.yaml").resolve()
    assert options.is_worker
    assert options.strategy.kind == "sequential"


def test_db_options_starting_with_dash_survive_parsing(tmp_path: Path) -> None:
    command = _builder(tmp_path, db_options="-co QUALITY=60").build()

    args = cli_main.build_parser().parse_args(command[1:])

    assert args.db_options == "-co QUALITY=60"


def test_render_quotes_arguments() -> None:
    rendered = CommandTemplateBuilder.render(["tmspack", "--db-options=A=1 B=2"])

    assert rendered == "tmspack '--db-options=A=1 B=2'"


def test_worker_launcher_returns_exit_status() -> None:
    launcher = WorkerLauncher()

    code = launcher.run([sys.executable, "-c", "import sys; sys.exit(3)"], description="exit three")

    assert code == 3


def test_worker_launcher_times_out() -> None:
    launcher = WorkerLauncher(timeout=0.2)

    code = launcher.run([sys.executable, "-c", "import time; time.sleep(5)"], description="sleeper")

    assert code == -1


def test_worker_launcher_missing_executable(tmp_path: Path) -> None:
    code = WorkerLauncher().run([str(tmp_path / "no-such-worker")], description="missing")

    assert code == -1


@pytest.mark.parametrize("depth", [16, 32])
def test_template_always_states_pixel_depth(tmp_path: Path, depth: int) -> None:
    command = _builder(tmp_path, elevation_pixel_depth=depth).build()

    position = command.index("--elevation-pixel-depth")
    assert command[position + 1] == str(depth)
