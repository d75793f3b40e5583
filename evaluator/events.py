"""In-process change feed.

Writers publish ``{"table": ..., "key": ...}`` after a successful commit and
every subscriber whose filter matches gets a copy. The API streams these as
server-sent events so clients know which query to refetch.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

log = logging.getLogger(__name__)

_QUEUE_SIZE = 100


@dataclass(eq=False)
class Subscription:
    table: str | None = None
    key: Any = None
    queue: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=_QUEUE_SIZE))

    def matches(self, event: dict[str, Any]) -> bool:
        if self.table is not None and event["table"] != self.table:
            return False
        # Table-wide events (key None) reach every subscriber of that table
        if self.key is not None and event["key"] is not None and event["key"] != self.key:
            return False
        return True


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: set[Subscription] = set()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, table: str | None = None, key: Any = None) -> Subscription:
        sub = Subscription(table=table, key=key)
        self._subscriptions.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)

    def publish(self, table: str, key: Any = None) -> int:
        """Notify matching subscribers; return how many were notified."""
        event = {"table": table, "key": key}
        delivered = 0
        for sub in list(self._subscriptions):
            if not sub.matches(event):
                continue
            try:
                sub.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                log.warning("Dropping change event for slow subscriber (%s)", table)
        return delivered

    async def stream(self, sub: Subscription) -> AsyncIterator[str]:
        """Yield SSE frames for *sub* until the consumer stops iterating."""
        try:
            while True:
                event = await sub.queue.get()
                yield f"data: {json.dumps(event)}\n\n"
        finally:
            self.unsubscribe(sub)


feed = ChangeFeed()
