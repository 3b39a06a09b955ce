from contextlib import contextmanager
from typing import Dict, Iterator, Optional

import humanize  # type: ignore
from rich.console import Console, RenderableType
from rich.progress import Progress, ProgressColumn, SpinnerColumn, Task, TaskID
from rich.text import Text

from datapull.contracts.tracker import ResourceTransferState


def render_state(state: ResourceTransferState) -> str:
    render_parts = [f"{state.transferred_num_files}/{state.total_num_files} files"]
    if state.skipped_num_files:
        render_parts.append(f"{state.skipped_num_files} up to date")
    at_least_a_gig = state.total_resource_size_bytes > 1_000_000_000
    size_format = "%.1f" if at_least_a_gig else "%.f"
    transferred_bytes = humanize.naturalsize(
        state.transferred_resource_size_bytes, format=size_format
    )
    total_resources_bytes = humanize.naturalsize(
        state.total_resource_size_bytes, format=size_format
    )
    render_parts.append(f"{transferred_bytes}/{total_resources_bytes}")
    if not state.is_complete:
        render_parts.append(
            f"{humanize.naturalsize(state.get_bandwidth_in_previous_seconds(), format='%.1f')}/s"
        )
    return " | ".join(render_parts)


class TransferColumn(ProgressColumn):
    def render(self, task: Task) -> RenderableType:
        state: Optional[ResourceTransferState] = task.fields.get("state")
        if state is None:
            return Text("")
        return Text(render_state(state), style="progress.download")


class TransferProgressTracker:
    """
    Live view of the per date transfers of a ``load`` run.
    """

    def __init__(self, console: Optional[Console] = None, disable: bool = False):
        self._progress = Progress(
            SpinnerColumn(finished_text=":white_heavy_check_mark:"),
            "[progress.description]{task.description}",
            TransferColumn(),
            console=console or Console(),
            disable=disable,
        )
        self._tasks: Dict[int, TaskID] = {}

    @contextmanager
    def track(self) -> Iterator["TransferProgressTracker"]:
        with self._progress:
            yield self

    def add_transfer(self, name: str) -> ResourceTransferState:
        state = ResourceTransferState(name)
        self._tasks[id(state)] = self._progress.add_task(name, total=None, state=state)
        return state

    def mark_done(self, state: ResourceTransferState) -> None:
        self._progress.update(self._tasks[id(state)], total=1, completed=1)
