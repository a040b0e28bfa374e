"""
Live design updates pushed to browser dashboards over Server-Sent Events.

The broker is created in the application lifespan and closed at shutdown.
Handlers run in FastAPI's threadpool, so publish() hands events to each
subscriber's loop with call_soon_threadsafe.
"""
import asyncio
import json
import logging
import threading

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventBroker:
    def __init__(self):
        self._subscribers = []
        self._lock = threading.Lock()
        self.closed = False

    def subscribe(self) -> asyncio.Queue:
        queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers.append((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        with self._lock:
            self._subscribers = [(l, q) for l, q in self._subscribers if q is not queue]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, data) -> int:
        payload = json.dumps({"type": event_type, "data": data}, default=str)
        with self._lock:
            targets = list(self._subscribers)
        delivered = 0
        for loop, queue in targets:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, payload)
                delivered += 1
            except RuntimeError:
                # loop already closed, the client is gone
                self.unsubscribe(queue)
        return delivered

    def close(self):
        self.closed = True
        with self._lock:
            targets = list(self._subscribers)
            self._subscribers = []
        for loop, queue in targets:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, _CLOSED)
            except RuntimeError:
                pass

    async def stream(self, queue: asyncio.Queue):
        """Yield SSE frames for one subscriber until the broker closes."""
        try:
            yield 'data: {"type": "connected"}\n\n'
            while True:
                payload = await queue.get()
                if payload is _CLOSED:
                    break
                yield f"data: {payload}\n\n"
        finally:
            self.unsubscribe(queue)


def publish_design_update(broker, design: dict):
    if broker is None:
        return
    broker.publish("designUpdated", {
        "design_id": str(design["_id"]),
        "quantity": design.get("quantity"),
        "price": design.get("price"),
        "item_name": design.get("item_name"),
    })
