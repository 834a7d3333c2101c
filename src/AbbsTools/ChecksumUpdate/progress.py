"""Download progress events and the channel that carries them.

Fetch workers never call user code directly.  They publish
:class:`ProgressEvent` objects into a :class:`ProgressChannel`, an ordered
queue that the caller drains on its own schedule.  :meth:`ProgressChannel.drain`
adapts the stream to the classic callback contract
``callback(done, entry_index, delta_or_total_bytes, total_bytes)``, and
:class:`RichProgressSink` is such a callback rendering one bar per source.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TimeElapsedColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

__all__ = ["ProgressCallback", "ProgressChannel", "ProgressEvent", "RichProgressSink"]

ProgressCallback = Callable[[bool, int, int, int], None]


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of one fetch worker.

    ``total_bytes`` comes from the transport-reported length and is ``0`` when
    unknown; it is only meant for display.
    """

    entry_index: int
    done: bool
    delta_bytes: int
    total_bytes: int = 0

    def as_callback_args(self) -> Tuple[bool, int, int, int]:
        return (self.done, self.entry_index, self.delta_bytes, self.total_bytes)


class ProgressChannel:
    """Single ordered event queue shared by all workers of a refresh call."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: ProgressEvent) -> None:
        """Enqueue ``event``; events published after :meth:`close` are dropped."""

        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events in publication order until the channel is closed."""

        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def drain(self, callback: ProgressCallback) -> int:
        """Forward every event to ``callback`` until closed; return the count."""

        count = 0
        async for event in self.events():
            callback(*event.as_callback_args())
            count += 1
        return count

    def pending(self) -> List[ProgressEvent]:
        """Return the events queued so far without waiting."""

        items: List[ProgressEvent] = []
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is None:
                self._queue.put_nowait(None)
                break
            items.append(event)
        return items


class RichProgressSink:
    """Progress callback that renders one transient rich bar per entry index."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.progress = Progress(
            SpinnerColumn(style="green"),
            TimeElapsedColumn(),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        )
        self._tasks: Dict[int, TaskID] = {}

    def __enter__(self) -> "RichProgressSink":
        self.progress.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.progress.stop()

    def __call__(self, done: bool, entry_index: int, amount: int, total: int) -> None:
        task = self._tasks.get(entry_index)
        if done:
            if task is not None:
                self.progress.remove_task(task)
                del self._tasks[entry_index]
            return
        if task is None:
            task = self.progress.add_task(f"#{entry_index}", total=total or None)
            self._tasks[entry_index] = task
        self.progress.advance(task, amount)
