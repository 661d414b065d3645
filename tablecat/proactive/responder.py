# tablecat/proactive/responder.py
import asyncio, logging, time
from typing import Awaitable, Callable, Optional
from ..core.event_bus import EventBus
from ..core.schemas import ResponseState, SuggestionEvent, TriggerPayload

logger = logging.getLogger(__name__)

Responder = Callable[[TriggerPayload], Awaitable[Optional[str]]]

class ResponseCoordinator:
    """Allows one response dispatch in flight; a strictly higher-scoring interruptible
    trigger waits as the single pending candidate and goes next."""

    def __init__(self, responder: Responder, bus: Optional[EventBus] = None,
                 bubble_timeout_sec: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.responder, self.bus, self.bubble_timeout_sec, self._clock = responder, bus, bubble_timeout_sec, clock
        self._current: Optional[TriggerPayload] = None
        self._pending: Optional[TriggerPayload] = None
        self._bubble: Optional[TriggerPayload] = None
        self._bubble_until = 0.0
        self.dispatched = self.dropped = 0

    @property
    def pending(self) -> Optional[TriggerPayload]:
        return self._pending

    def get_response_state(self) -> ResponseState:
        if self._current is not None:
            return ResponseState(active=True, interruptible=self._current.allow_interrupt,
                                 score=self._current.trigger_score, phase="inflight")
        if self._bubble is not None and self._clock() < self._bubble_until:
            return ResponseState(active=True, interruptible=self._bubble.allow_interrupt,
                                 score=self._bubble.trigger_score, phase="bubble")
        return ResponseState()

    def _outranks(self, payload: TriggerPayload) -> bool:
        if not (payload.allow_interrupt and self._current.allow_interrupt):
            return False
        if payload.trigger_score <= self._current.trigger_score:
            return False
        return self._pending is None or payload.trigger_score > self._pending.trigger_score

    async def submit(self, payload: TriggerPayload) -> bool:
        if self._current is not None:
            if not self._outranks(payload):
                self.dropped += 1
                logger.info("Dropped %s trigger score=%.2f, response in flight", payload.kind, payload.trigger_score)
                return False
            if self._pending is not None:
                self.dropped += 1
            self._pending = payload
            logger.info("Queued %s trigger score=%.2f as interrupt candidate", payload.kind, payload.trigger_score)
            return True

        next_payload: Optional[TriggerPayload] = payload
        while next_payload is not None:
            await self._run(next_payload)
            next_payload, self._pending = self._pending, None
        return True

    async def _run(self, payload: TriggerPayload):
        self._current, self._bubble = payload, None
        self.dispatched += 1
        try:
            text = await self.responder(payload)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Response dispatch failed for %s", payload.kind)
            text = None
        finally:
            self._current = None
        if text:
            self._bubble, self._bubble_until = payload, self._clock() + self.bubble_timeout_sec
            if self.bus:
                event = SuggestionEvent(text=text, source=payload.kind, meta={"score": payload.trigger_score, "reason": payload.trigger_reason})
                await self.bus.publish("suggestions", event.model_dump())
