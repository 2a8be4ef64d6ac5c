from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Optional

from tiered_router.config import Settings, settings as default_settings
from tiered_router.intent.types import RoutingDecision
from tiered_router.logging import get_logger
from tiered_router.utils.jsonl import append_jsonl

logger = get_logger(__name__)

EVENTS_FILENAME = "routing_events.jsonl"


def _ensure_log_dir(settings: Settings) -> Path:
    d = Path(getattr(settings, "log_dir", None) or "logs")
    d.mkdir(parents=True, exist_ok=True)
    return d


def decision_event(text: str, decision: RoutingDecision) -> dict[str, Any]:
    data = decision.to_dict()
    data["ts"] = time.time()
    data["input_chars"] = len(text)
    return data


class RoutingEventQueue:
    """Bounded fire-and-forget queue of routing events.

    `publish()` never blocks the request path: when the queue is full the
    oldest pending event is dropped (and counted) to make room. A background
    worker appends events to `<log_dir>/routing_events.jsonl`.
    """

    def __init__(self, settings: Settings = default_settings, path: Optional[Path] = None):
        self.maxsize = max(1, settings.EVENT_QUEUE_SIZE)
        self._settings = settings
        self._path = path
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.maxsize)
        self._worker: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[asyncio.Future[None]] = None
        self.dropped = 0
        self.written = 0

    @property
    def path(self) -> Path:
        if self._path is None:
            self._path = _ensure_log_dir(self._settings) / EVENTS_FILENAME
        return self._path

    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, event: dict[str, Any]) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self._queue.task_done()
                self.dropped += 1

    def drain(self) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events
            self._queue.task_done()

    def flush(self) -> int:
        """Write every pending event now; returns how many were written."""
        events = self.drain()
        if events:
            self._write(events)
        return len(events)

    def _write(self, events: list[dict[str, Any]]) -> None:
        try:
            append_jsonl(events, self.path)
            self.written += len(events)
        except OSError as e:
            logger.error(f"Failed to write {len(events)} routing events to {self.path}: {e}")

    async def _run(self) -> None:
        while True:
            first = await self._queue.get()
            self._queue.task_done()
            batch = [first, *self.drain()]
            # Disk writes run in a worker thread; stop() waits for the one in flight
            self._inflight = asyncio.ensure_future(asyncio.to_thread(self._write, batch))
            await asyncio.shield(self._inflight)

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._inflight is not None:
            await self._inflight
            self._inflight = None
        self.flush()

    def stats(self) -> dict[str, int]:
        return {
            "pending": self.pending(),
            "dropped": self.dropped,
            "written": self.written,
            "maxsize": self.maxsize,
        }
