import asyncio, logging
from typing import Callable, Awaitable, Any, Dict, List, Set

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]

class EventBus:
    def __init__(self):
        self._subs: Dict[str, List[Handler]] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    async def subscribe(self, topic: str, handler: Handler):
        async with self._lock: self._subs.setdefault(topic, []).append(handler)

    async def unsubscribe(self, topic: str, handler: Handler):
        async with self._lock:
            if handler in (subs := self._subs.get(topic, [])): subs.remove(handler)

    async def _deliver(self, topic: str, handler: Handler, payload: Any):
        try: await handler(payload)
        except Exception: logger.exception("Handler for %r failed", topic)

    async def publish(self, topic: str, payload: Any):
        for h in list(self._subs.get(topic, [])):
            task = asyncio.create_task(self._deliver(topic, h, payload))
            self._tasks.add(task); task.add_done_callback(self._tasks.discard)

    async def drain(self):
        if self._tasks: await asyncio.gather(*list(self._tasks))
