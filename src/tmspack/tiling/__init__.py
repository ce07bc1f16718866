"""Tile visiting, rendering and worker dispatch for tmspack."""

from .base import TileRenderer
from .command import CommandTemplateBuilder, WorkerLauncher, WorkerOptions
from .renderer import GdalTileRenderer, RenderOptions, TileCommandError, TileRunner
from .tasklist import MalformedTaskList, TaskList, load_task_list, write_task_list
from .visitor import (
    MultiprocessTileVisitor,
    MultithreadedTileVisitor,
    TileVisitor,
    batch_keys,
    create_visitor,
)

__all__ = [
    "CommandTemplateBuilder",
    "GdalTileRenderer",
    "MalformedTaskList",
    "MultiprocessTileVisitor",
    "MultithreadedTileVisitor",
    "RenderOptions",
    "TaskList",
    "TileCommandError",
    "TileRenderer",
    "TileRunner",
    "TileVisitor",
    "WorkerLauncher",
    "WorkerOptions",
    "batch_keys",
    "create_visitor",
    "load_task_list",
    "write_task_list",
]
