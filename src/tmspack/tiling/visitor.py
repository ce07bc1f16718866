"""Tile visitors: walk a key space and render it sequentially, on threads, or in worker processes."""

from __future__ import annotations

import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Set

from tqdm import tqdm

from tmspack.config import ConfigurationError
from tmspack.core.models import Extent, LayerJob, RunResult, StrategySpec, TileKey, VisitorConfig
from tmspack.core.profile import TileProfile
from tmspack.logging import get_logger

from .base import TileRenderer
from .command import WorkerLauncher
from .tasklist import TaskList, write_task_list

LOGGER = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100


def default_concurrency() -> int:
    return os.cpu_count() or 1


class ProgressReporter:
    """Thread-safe wrapper around a tqdm bar."""

    def __init__(self, total: int, *, enabled: bool, description: str) -> None:
        self._lock = threading.Lock()
        self._bar = tqdm(total=total, desc=description, unit="tile", disable=not enabled)

    def advance(self, count: int = 1) -> None:
        with self._lock:
            self._bar.update(count)

    def close(self) -> None:
        self._bar.close()


def batch_keys(keys: Sequence[TileKey], batch_size: int) -> List[List[TileKey]]:
    """Split ``keys`` into ordered, disjoint batches of at most ``batch_size``."""

    if batch_size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(keys[start : start + batch_size]) for start in range(0, len(keys), batch_size)]


class TileVisitor:
    """Sequential visitor; the reference behavior every other strategy must match."""

    def __init__(self, renderer: Optional[TileRenderer] = None) -> None:
        self._renderer = renderer
        self._config = VisitorConfig()
        self._task_list: Optional[TaskList] = None

    @property
    def config(self) -> VisitorConfig:
        return self._config

    @property
    def task_list(self) -> Optional[TaskList]:
        return self._task_list

    def configure(self, config: VisitorConfig) -> None:
        if config.min_level < 0 or config.max_level < config.min_level:
            raise ConfigurationError(
                f"Invalid level range [{config.min_level}, {config.max_level}]"
            )
        self._config = replace(config, extents=list(config.extents))

    def add_extent(self, extent: Extent) -> None:
        self._config.extents.append(extent)

    def set_task_list(self, task_list: TaskList) -> None:
        self._task_list = task_list

    def collect_keys(self, profile: TileProfile) -> List[TileKey]:
        """Return the task list verbatim, or every key in the extents and level range."""

        if self._task_list is not None:
            return list(self._task_list.keys)

        extents = self._config.extents or [profile.extent]
        keys: List[TileKey] = []
        for level in range(self._config.min_level, self._config.max_level + 1):
            level_keys: Set[TileKey] = set()
            for extent in extents:
                level_keys.update(profile.keys_in(extent, level))
            keys.extend(sorted(level_keys, key=lambda key: (key.y, key.x)))
        return keys

    def run(self, job: LayerJob) -> RunResult:
        keys = self.collect_keys(job.profile)
        LOGGER.debug("visiting keys", extra={"layer": job.layer.name, "keys": len(keys)})
        progress = self._progress(len(keys), job)
        failed: Set[TileKey] = set()
        try:
            for key in keys:
                if not self._render_key(job, key):
                    failed.add(key)
                progress.advance()
        finally:
            progress.close()
        return RunResult(succeeded_count=len(keys) - len(failed), failed_keys=frozenset(failed))

    def _render_key(self, job: LayerJob, key: TileKey) -> bool:
        if self._renderer is None:
            raise ConfigurationError(f"{type(self).__name__} requires a tile renderer")
        try:
            self._renderer.render(job, key)
        except Exception as exc:
            LOGGER.warning("tile %s of %s failed: %s", key, job.layer.name, exc)
            return False
        return True

    def _progress(self, total: int, job: LayerJob) -> ProgressReporter:
        return ProgressReporter(total, enabled=self._config.progress_enabled, description=job.layer.name)


class MultithreadedTileVisitor(TileVisitor):
    """Render keys on a fixed pool of threads drawing from one work queue."""

    def __init__(self, renderer: Optional[TileRenderer] = None, *, thread_count: Optional[int] = None) -> None:
        super().__init__(renderer)
        self.thread_count = thread_count or default_concurrency()

    def run(self, job: LayerJob) -> RunResult:
        keys = self.collect_keys(job.profile)
        LOGGER.debug(
            "visiting keys",
            extra={"layer": job.layer.name, "keys": len(keys), "threads": self.thread_count},
        )
        progress = self._progress(len(keys), job)
        failed: Set[TileKey] = set()
        lock = threading.Lock()

        def work(key: TileKey) -> None:
            ok = self._render_key(job, key)
            if not ok:
                with lock:
                    failed.add(key)
            progress.advance()

        try:
            with ThreadPoolExecutor(max_workers=self.thread_count) as executor:
                for future in [executor.submit(work, key) for key in keys]:
                    future.result()
        finally:
            progress.close()
        return RunResult(succeeded_count=len(keys) - len(failed), failed_keys=frozenset(failed))


class MultiprocessTileVisitor(TileVisitor):
    """Hand ordered batches of keys to independent worker processes.

    Each batch is written to a task list file and passed to a worker launched from
    ``command_template`` plus ``--tiles <file>``. At most ``process_count`` workers run
    at once. A worker exiting non-zero fails its own batch only.
    """

    def __init__(
        self,
        *,
        process_count: Optional[int] = None,
        batch_size: Optional[int] = None,
        launcher: Optional[WorkerLauncher] = None,
        work_dir: Optional[Path] = None,
    ) -> None:
        super().__init__(renderer=None)
        self.process_count = process_count or default_concurrency()
        self.batch_size = batch_size or DEFAULT_BATCH_SIZE
        self.command_template: List[str] = []
        self._launcher = launcher or WorkerLauncher()
        self._work_dir = work_dir

    def run(self, job: LayerJob) -> RunResult:
        if not self.command_template:
            raise ConfigurationError("MultiprocessTileVisitor requires a worker command template")

        batches = batch_keys(self.collect_keys(job.profile), self.batch_size)
        template = list(self.command_template)
        LOGGER.info(
            "dispatching batches",
            extra={
                "layer": job.layer.name,
                "batches": len(batches),
                "batch_size": self.batch_size,
                "processes": self.process_count,
            },
        )
        progress = self._progress(sum(len(batch) for batch in batches), job)
        failed: Set[TileKey] = set()
        failed_batches = 0
        succeeded = 0

        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)
        try:
            with tempfile.TemporaryDirectory(prefix="tmspack-batches-", dir=self._work_dir) as tmp:
                batch_dir = Path(tmp)

                def dispatch(index: int, batch: List[TileKey]) -> int:
                    description = f"{job.layer.name} batch {index + 1}/{len(batches)}"
                    try:
                        path = write_task_list(batch, batch_dir / f"batch_{index:06d}.tiles")
                        return self._launcher.run([*template, "--tiles", str(path)], description=description)
                    except Exception as exc:
                        LOGGER.error("batch dispatch failed: %s", exc, extra={"description": description})
                        return -1

                with ThreadPoolExecutor(max_workers=self.process_count) as executor:
                    futures = {
                        executor.submit(dispatch, index, batch): index
                        for index, batch in enumerate(batches)
                    }
                    for future in as_completed(futures):
                        batch = batches[futures[future]]
                        code = future.result()
                        if code == 0:
                            succeeded += len(batch)
                        else:
                            LOGGER.warning(
                                "batch %d of %d failed with exit code %s",
                                futures[future] + 1,
                                len(batches),
                                code,
                            )
                            failed.update(batch)
                            failed_batches += 1
                        progress.advance(len(batch))
        finally:
            progress.close()
        return RunResult(succeeded_count=succeeded, failed_keys=frozenset(failed), failed_batches=failed_batches)


def create_visitor(
    spec: StrategySpec,
    *,
    renderer: Optional[TileRenderer] = None,
    launcher: Optional[WorkerLauncher] = None,
    work_dir: Optional[Path] = None,
) -> TileVisitor:
    """Instantiate the visitor for the selected strategy."""

    if spec.kind == "threaded":
        return MultithreadedTileVisitor(renderer, thread_count=spec.thread_count)
    if spec.kind == "multiprocess":
        return MultiprocessTileVisitor(
            process_count=spec.process_count,
            batch_size=spec.batch_size,
            launcher=launcher or WorkerLauncher(timeout=spec.worker_timeout),
            work_dir=work_dir,
        )
    return TileVisitor(renderer)
