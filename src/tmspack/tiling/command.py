"""Worker command construction and launching for multi-process packaging."""

from __future__ import annotations

import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from tmspack.core.models import LayerSelection
from tmspack.logging import get_logger

LOGGER = get_logger(__name__)

WORKER_EXECUTABLE = (sys.executable, "-m", "tmspack.cli.main")


@dataclass(frozen=True)
class WorkerOptions:
    """Options a worker process must receive to reproduce the parent's run."""

    extension: Optional[str] = None
    overwrite: bool = False
    db_options: str = ""
    keep_empties: bool = False
    continue_single_color: bool = False
    elevation_pixel_depth: int = 32
    log_level: Optional[str] = None


class CommandTemplateBuilder:
    """Build the argument vector each worker is launched with.

    The template is a list handed straight to ``subprocess`` without a shell, so
    values such as a db-options string containing quotes or spaces travel as one
    argument, byte for byte. Callers append ``--tiles <batch file>``.
    """

    def __init__(
        self,
        map_path: Path,
        out_dir: Path,
        options: WorkerOptions,
        *,
        executable: Sequence[str] = WORKER_EXECUTABLE,
    ) -> None:
        self._map_path = map_path
        self._out_dir = out_dir
        self._options = options
        self._executable = list(executable)

    def build(self, selection: Optional[LayerSelection] = None) -> List[str]:
        opts = self._options
        command = list(self._executable)
        if opts.log_level:
            command.extend(["--log-level", opts.log_level])
        command.extend(["--tms", "--out", str(self._out_dir)])
        if opts.extension:
            command.extend(["--ext", opts.extension])
        if opts.overwrite:
            command.append("--overwrite")
        if opts.db_options:
            # joined form so a value starting with "-" is not taken for a flag
            command.append(f"--db-options={opts.db_options}")
        if opts.keep_empties:
            command.append("--keep-empties")
        if opts.continue_single_color:
            command.append("--continue-single-color")
        command.extend(["--elevation-pixel-depth", str(opts.elevation_pixel_depth)])
        if selection is not None:
            command.extend([selection.flag, str(selection.index)])
        command.append(str(self._map_path))
        return command

    @staticmethod
    def render(command: Sequence[str]) -> str:
        """Return a shell-quoted rendering of ``command`` for logs."""

        return shlex.join(command)


class WorkerLauncher:
    """Spawn one worker process and wait for its exit status."""

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self._timeout = timeout

    def run(self, command: Sequence[str], *, description: str) -> int:
        LOGGER.info("worker launch", extra={"description": description, "command": shlex.join(command)})
        try:
            proc = subprocess.run(
                list(command),
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            LOGGER.error("worker timed out", extra={"description": description, "timeout_s": self._timeout})
            return -1
        except OSError as exc:
            LOGGER.error("worker failed to start: %s", exc, extra={"description": description})
            return -1
        if proc.stdout:
            LOGGER.debug(proc.stdout.strip())
        if proc.returncode != 0 and proc.stderr:
            LOGGER.warning(proc.stderr.strip())
        return proc.returncode
