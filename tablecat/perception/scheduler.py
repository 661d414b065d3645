import asyncio
from typing import Awaitable, Callable, Optional, Set

class TickScheduler:
    """Single cancellable timer that runs one tick coroutine per firing.

    Each tick reschedules the next one explicitly. After cancel() no further
    tick starts, although a tick already running completes.
    """

    def __init__(self, tick: Callable[[], Awaitable[None]]):
        self._tick = tick
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.active = False

    def start(self, delay_ms: float):
        self.active = True
        self.schedule(delay_ms)

    def schedule(self, delay_ms: float):
        if not self.active:
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(delay_ms / 1000, self._fire)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def _fire(self):
        self._handle = None
        if not self.active:
            return
        task = asyncio.ensure_future(self._tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self):
        self.active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
