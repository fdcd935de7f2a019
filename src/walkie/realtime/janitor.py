"""Periodic consistency sweeps over channels and uploaded media."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from pathlib import Path
from typing import Any, Callable

from starlette.concurrency import run_in_threadpool

from app.monitoring.metrics import (
    janitor_removed_total,
    relay_active_channels,
    relay_active_connections,
    relay_messages_relayed,
)

from .state import RelayState

logger = logging.getLogger(__name__)

SweepCallback = Callable[[], Any]


class PeriodicTask:
    """Run *callback* every *interval* seconds until stopped.

    The first run happens one interval after :meth:`start`. A failing run is
    logged and the schedule continues.
    """

    def __init__(self, name: str, interval: float, callback: SweepCallback) -> None:
        if interval <= 0:
            raise ValueError("Interval must be positive")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"janitor-{self.name}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def run_once(self) -> Any:
        result = self._callback()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)


def _remove_files(root: Path, *, older_than: float | None) -> int:
    """Delete regular files in *root*; with *older_than* only files modified before it."""

    try:
        entries = list(root.iterdir())
    except FileNotFoundError:
        return 0
    except OSError:
        logger.exception("Unable to list media directory %s", root)
        return 0

    removed = 0
    for entry in entries:
        try:
            if not entry.is_file():
                continue
            if older_than is not None and entry.stat().st_mtime >= older_than:
                continue
            entry.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to remove media file %s: %s", entry.name, exc)
            continue
        removed += 1
        logger.info("Deleted old audio file: %s", entry.name)
    return removed


class Janitor:
    """Own the periodic sweeps and expose each one for direct invocation."""

    def __init__(
        self,
        state: RelayState,
        *,
        media_root: Path,
        media_retention_seconds: float,
        channel_interval: float,
        media_interval: float,
        stats_interval: float,
    ) -> None:
        self._state = state
        self._media_root = media_root
        self._retention = media_retention_seconds
        self._tasks = [
            PeriodicTask("empty-channels", channel_interval, self.sweep_empty_channels),
            PeriodicTask("stale-media", media_interval, self.sweep_stale_media),
            PeriodicTask("stats", stats_interval, self.collect_stats),
        ]

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks)

    def start(self) -> None:
        for task in self._tasks:
            task.start()

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self._tasks))

    def sweep_empty_channels(self) -> int:
        cleaned = self._state.channels.sweep_empty()
        if cleaned:
            janitor_removed_total.labels("channels").inc(cleaned)
            relay_active_channels.set(len(self._state.channels))
            logger.info("Cleaned %d empty channels", cleaned)
        return cleaned

    async def sweep_stale_media(self, *, now: float | None = None) -> int:
        cutoff = (time.time() if now is None else now) - self._retention
        removed = await run_in_threadpool(_remove_files, self._media_root, older_than=cutoff)
        if removed:
            janitor_removed_total.labels("media").inc(removed)
        return removed

    async def purge_media(self) -> int:
        return await run_in_threadpool(_remove_files, self._media_root, older_than=None)

    def collect_stats(self) -> dict[str, int]:
        stats = {
            "channels": len(self._state.channels),
            "connections": len(self._state.connections),
            "messages": self._state.channels.total_messages(),
        }
        relay_active_channels.set(stats["channels"])
        relay_active_connections.set(stats["connections"])
        relay_messages_relayed.set(stats["messages"])
        logger.info(
            "Stats - Channels: %d, Users: %d, Total Messages: %d",
            stats["channels"],
            stats["connections"],
            stats["messages"],
        )
        return stats


__all__ = ["Janitor", "PeriodicTask"]
