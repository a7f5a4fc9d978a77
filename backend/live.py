"""
Live snapshot streams on top of the db subscription callbacks, and their
Server-Sent Events encoding.
"""

from __future__ import annotations

import asyncio
import json
import logging
from functools import partial
from typing import Any, AsyncIterator, Callable, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder

from backend.db import SnapshotCallback, Subscription
from backend.errors import InvalidArgument

logger = logging.getLogger(__name__)

SubscribeFn = Callable[[SnapshotCallback], Optional[Subscription]]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SnapshotStream:
    """
    Async iterator over the snapshots of one or more subscriptions.

    `sources` maps an event name to a function that registers a snapshot
    callback and returns its Subscription. Iteration yields (name, snapshot)
    pairs. `open()` subscribes every source and `close()` releases them; a
    closed stream can be opened again and starts from the current state.
    Snapshot callbacks may arrive on any thread.
    """

    def __init__(self, sources: dict[str, SubscribeFn]):
        self._sources = sources
        self._subscriptions: list[Subscription] = []
        self._queue: asyncio.Queue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_open(self) -> bool:
        return self._queue is not None

    def open(self) -> "SnapshotStream":
        if self.is_open:
            return self
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        for name, subscribe in self._sources.items():
            subscription = subscribe(partial(self._on_snapshot, self._queue, name))
            if subscription is None:
                self.close()
                raise InvalidArgument(f"Could not subscribe to {name}.")
            self._subscriptions.append(subscription)
        return self

    def close(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()
        self._queue = None
        self._loop = None

    def _on_snapshot(self, queue: asyncio.Queue, name: str, snapshot: Any) -> None:
        loop = self._loop
        if loop is None or queue is not self._queue:
            return
        loop.call_soon_threadsafe(queue.put_nowait, (name, snapshot))

    async def next(self) -> tuple[str, Any]:
        if self._queue is None:
            raise StopAsyncIteration
        return await self._queue.get()

    def __aiter__(self) -> "SnapshotStream":
        return self

    async def __anext__(self) -> tuple[str, Any]:
        return await self.next()

    async def __aenter__(self) -> "SnapshotStream":
        return self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


def format_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(jsonable_encoder(data))}\n\n"


async def event_stream(
    request: Request,
    stream: SnapshotStream,
    keepalive_seconds: float,
    transform: Callable[[str, Any], Any] | None = None,
) -> AsyncIterator[str]:
    """
    Yields SSE messages for every snapshot until the client disconnects.
    The stream's subscriptions are released when the generator finishes.
    """
    async with stream:
        while True:
            try:
                name, snapshot = await asyncio.wait_for(
                    stream.next(), timeout=keepalive_seconds
                )
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    logger.info("SSE client disconnected")
                    break
                yield ": keep-alive\n\n"
                continue
            payload = transform(name, snapshot) if transform else snapshot
            yield format_sse(name, payload)
