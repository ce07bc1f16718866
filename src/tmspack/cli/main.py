"""CLI entry point for tmspack."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, NoReturn

from tmspack.bounds import BoundsCollector
from tmspack.config import ConfigurationError, load_map
from tmspack.core.models import (
    LayerKind,
    LayerSelection,
    PackagingOptions,
    StrategySpec,
    VisitorConfig,
)
from tmspack.logging import configure_logging, get_logger
from tmspack.packaging import LayerNotFoundError, OutputManifestAssembler, TmsPackager
from tmspack.tiling import (
    CommandTemplateBuilder,
    GdalTileRenderer,
    RenderOptions,
    WorkerOptions,
    create_visitor,
    load_task_list,
)

LOGGER = get_logger(__name__)

EXIT_OK = 0
EXIT_USAGE = -1
EXIT_LAYER_NOT_FOUND = 1
EXIT_PARTIAL_FAILURE = 2


class _ArgumentParser(argparse.ArgumentParser):
    """Parser that reports usage errors as :class:`ConfigurationError`."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        raise ConfigurationError(message)


class _FirstWins(argparse.Action):
    """Keep the first of several competing flags; later ones are noted and ignored."""

    def _store(self, namespace: argparse.Namespace, value: object, option_string: str | None) -> None:
        if getattr(namespace, self.dest, None) is None:
            setattr(namespace, self.dest, value)
            return
        ignored = getattr(namespace, "ignored_flags", None) or []
        ignored.append(option_string or self.dest)
        namespace.ignored_flags = ignored


class _StrategyFlag(_FirstWins):
    def __init__(self, option_strings, dest, const=None, **kwargs):  # type: ignore[no-untyped-def]
        super().__init__(option_strings, dest, nargs=0, const=const, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):  # type: ignore[no-untyped-def]
        self._store(namespace, self.const, option_string)


class _LayerFlag(_FirstWins):
    def __call__(self, parser, namespace, values, option_string=None):  # type: ignore[no-untyped-def]
        self._store(namespace, LayerSelection(self.const, values), option_string)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="tmspack",
        description="Package the layers of a map definition into a TMS tile repository",
    )
    parser.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--tms", action="store_true", help="Make a TMS repository (required)")
    parser.add_argument(
        "map",
        type=Path,
        nargs="?",
        help="Map definition (YAML or JSON) listing the layers to export",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Root output folder of the TMS repository (default: <map>.tms_repo)",
    )
    parser.add_argument(
        "--bounds",
        type=float,
        nargs=4,
        action="append",
        default=None,
        metavar=("XMIN", "YMIN", "XMAX", "YMAX"),
        help="Bounds to package in map coordinates; repeatable (default: entire map)",
    )
    parser.add_argument(
        "--index",
        type=Path,
        action="append",
        default=None,
        help="Boundary feature source whose feature extents restrict packaging; repeatable",
    )
    parser.add_argument(
        "--tiles",
        type=Path,
        default=None,
        help="Task list of level,x,y keys to render; marks this run as a batch worker",
    )
    parser.add_argument("--min-level", type=int, default=0, help="Minimum level to package (default: 0)")
    parser.add_argument("--max-level", type=int, default=5, help="Maximum level to package (default: 5)")
    parser.add_argument(
        "--mt",
        dest="strategy",
        action=_StrategyFlag,
        const="threaded",
        default=None,
        help="Render with a pool of threads",
    )
    parser.add_argument(
        "--mp",
        dest="strategy",
        action=_StrategyFlag,
        const="multiprocess",
        default=None,
        help="Render with batches dispatched to worker processes",
    )
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=None,
        help="Number of threads (--mt) or processes (--mp) (default: CPU count)",
    )
    parser.add_argument(
        "--batchsize",
        type=int,
        default=None,
        help="Keys per worker batch with --mp (default: 100)",
    )
    parser.add_argument(
        "--worker-timeout",
        type=float,
        default=None,
        help="Seconds before a --mp worker is killed and its batch failed (default: no limit)",
    )
    parser.add_argument(
        "--image",
        dest="selection",
        action=_LayerFlag,
        const=LayerKind.IMAGE,
        type=int,
        default=None,
        metavar="INDEX",
        help="Package only the image layer at INDEX",
    )
    parser.add_argument(
        "--elevation",
        dest="selection",
        action=_LayerFlag,
        const=LayerKind.ELEVATION,
        type=int,
        default=None,
        metavar="INDEX",
        help="Package only the elevation layer at INDEX",
    )
    parser.add_argument("--ext", default=None, help="Override the image tile extension (e.g. jpg)")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite existing tiles")
    parser.add_argument(
        "--keep-empties",
        action="store_true",
        help="Write tiles that fall outside a layer's data bounds (normally skipped)",
    )
    parser.add_argument(
        "--continue-single-color",
        action="store_true",
        help="Keep subdividing single color tiles",
    )
    parser.add_argument(
        "--elevation-pixel-depth",
        type=int,
        choices=(16, 32),
        default=32,
        help="Pixel depth of elevation tiles (default: 32)",
    )
    parser.add_argument(
        "--db-options",
        default="",
        help='Options passed to the tile writer, e.g. "QUALITY=60"',
    )
    parser.add_argument(
        "--out-earth",
        type=Path,
        default=None,
        help="Write a map definition referencing the new repository into the output folder",
    )
    parser.add_argument("--verbose", action="store_true", help="Show progress and per-layer timings")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser


def resolve_options(args: argparse.Namespace) -> PackagingOptions:
    """Collapse parsed flags into one configuration, applying precedence rules."""

    if not args.tms:
        raise ConfigurationError("--tms is required")
    if args.map is None:
        raise ConfigurationError("Failed to load a valid map definition: no map file given")
    if args.min_level < 0 or args.max_level < args.min_level:
        raise ConfigurationError("--max-level must be greater than or equal to --min-level >= 0")
    if args.concurrency is not None and args.concurrency < 1:
        raise ConfigurationError("--concurrency must be at least 1")
    if args.batchsize is not None and args.batchsize < 1:
        raise ConfigurationError("--batchsize must be at least 1")

    kind = args.strategy or "sequential"
    if args.tiles is not None and kind != "sequential":
        LOGGER.warning("--tiles given; ignoring %s strategy for this worker run", kind)
        kind = "sequential"
    strategy = StrategySpec(
        kind=kind,
        thread_count=args.concurrency if kind == "threaded" else None,
        process_count=args.concurrency if kind == "multiprocess" else None,
        batch_size=args.batchsize if kind == "multiprocess" else None,
        worker_timeout=args.worker_timeout,
    )

    map_path = args.map.resolve()
    out_dir = (args.out or Path(f"{map_path}.tms_repo")).resolve()
    return PackagingOptions(
        map_path=map_path,
        out_dir=out_dir,
        bounds=[tuple(values) for values in (args.bounds or [])],
        index_paths=list(args.index or []),
        tiles=args.tiles,
        min_level=args.min_level,
        max_level=args.max_level,
        strategy=strategy,
        selection=args.selection,
        extension=args.ext,
        overwrite=args.overwrite,
        keep_empties=args.keep_empties,
        continue_single_color=args.continue_single_color,
        elevation_pixel_depth=args.elevation_pixel_depth,
        db_options=args.db_options,
        out_earth=args.out_earth,
        verbose=args.verbose,
        quiet=args.quiet,
        log_level=args.log_level,
    )


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except ConfigurationError as exc:
        sys.stderr.write(f"{parser.prog}: error: {exc}\n")
        return EXIT_USAGE

    configure_logging(level=args.log_level, json_logs=args.log_json)
    for flag in getattr(args, "ignored_flags", None) or []:
        LOGGER.warning("ignoring %s; a competing flag was given first", flag)

    try:
        return _handle_tms(resolve_options(args))
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return EXIT_USAGE


def _handle_tms(options: PackagingOptions) -> int:
    map_definition = load_map(options.map_path)

    try:
        options.out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Failed to create root output folder {options.out_dir}: {exc}") from exc

    collector = BoundsCollector(map_definition.srs)
    for bounds in options.bounds:
        collector.add_bounds(*bounds)
    for index_path in options.index_paths:
        collector.add_index(index_path)

    try:
        renderer = GdalTileRenderer(
            RenderOptions(
                overwrite=options.overwrite,
                keep_empties=options.keep_empties,
                continue_single_color=options.continue_single_color,
                elevation_pixel_depth=options.elevation_pixel_depth,
                db_options=options.db_options,
            )
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid --db-options: {exc}") from exc

    visitor = create_visitor(options.strategy, renderer=renderer)
    visitor.configure(
        VisitorConfig(
            min_level=options.min_level,
            max_level=options.max_level,
            progress_enabled=options.verbose and not options.quiet,
        )
    )
    for extent in collector.extents:
        visitor.add_extent(extent)

    # Workers only render their batch; the orchestrating run owns the manifests.
    write_manifests = True
    if options.is_worker:
        visitor.set_task_list(load_task_list(options.tiles, map_definition.profile))
        write_manifests = False

    command_builder = None
    if options.strategy.kind == "multiprocess":
        command_builder = CommandTemplateBuilder(
            options.map_path,
            options.out_dir,
            WorkerOptions(
                extension=options.extension,
                overwrite=options.overwrite,
                db_options=options.db_options,
                keep_empties=options.keep_empties,
                continue_single_color=options.continue_single_color,
                elevation_pixel_depth=options.elevation_pixel_depth,
                log_level=options.log_level,
            ),
        )

    assembler = None
    if options.out_earth is not None and write_manifests:
        assembler = OutputManifestAssembler(map_definition, options.out_dir / options.out_earth.name)

    packager = TmsPackager(
        map_definition,
        visitor,
        destination=options.out_dir,
        extension=options.extension,
        default_extension=renderer.default_extension,
        command_builder=command_builder,
        write_manifests=write_manifests,
        verbose=options.verbose,
    )
    try:
        summary = packager.package(options.selection, assembler)
    except LayerNotFoundError as exc:
        LOGGER.error("%s", exc)
        return EXIT_LAYER_NOT_FOUND

    if assembler is not None and assembler.write() and options.verbose:
        LOGGER.info("Wrote output map to %s", assembler.path)

    total = summary.total
    LOGGER.info(
        "packaging complete",
        extra={
            "layers": len(summary.results),
            "succeeded": total.succeeded_count,
            "failed": total.failed_count,
            "failed_batches": total.failed_batches,
            "out": str(options.out_dir),
        },
    )
    if not total.ok:
        LOGGER.warning(
            "%d tiles in %d batches failed; re-run with --overwrite to retry the affected region",
            total.failed_count,
            total.failed_batches,
        )
        return EXIT_PARTIAL_FAILURE
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
