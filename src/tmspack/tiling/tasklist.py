"""Task list files: explicit tile assignments handed to worker processes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Tuple

from tmspack.config import ConfigurationError
from tmspack.core.models import TileKey
from tmspack.core.profile import TileProfile


class MalformedTaskList(ConfigurationError):
    """Raised when a task list record is not a valid key under the profile."""


@dataclass(frozen=True)
class TaskList:
    """Ordered, immutable sequence of keys bound to one tiling profile."""

    profile: TileProfile
    keys: Tuple[TileKey, ...] = ()

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[TileKey]:
        return iter(self.keys)


def load_task_list(path: Path | str, profile: TileProfile) -> TaskList:
    """Parse ``level,x,y`` records; blank lines and ``#`` comments are ignored."""

    task_path = Path(path)
    try:
        lines = task_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise MalformedTaskList(f"Unable to read task list {task_path}: {exc}") from exc

    keys = []
    for number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = [field.strip() for field in stripped.split(",")]
        if len(fields) != 3:
            raise MalformedTaskList(f"{task_path}:{number}: expected 'level,x,y', got {stripped!r}")
        try:
            key = TileKey(*(int(field) for field in fields))
        except ValueError as exc:
            raise MalformedTaskList(f"{task_path}:{number}: non-integer field in {stripped!r}") from exc
        if not profile.contains(key):
            raise MalformedTaskList(f"{task_path}:{number}: key {key} is outside the {profile.name} grid")
        keys.append(key)
    return TaskList(profile=profile, keys=tuple(keys))


def write_task_list(keys: Iterable[TileKey], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{key.level},{key.x},{key.y}\n" for key in keys), encoding="utf-8")
    return path
