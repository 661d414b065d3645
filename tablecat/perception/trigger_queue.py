# tablecat/perception/trigger_queue.py
from typing import List, Optional, Tuple
from .frame_gate import hamming_distance
from .types import Decision, QueueDecision, TriggerMemory, TriggerQueueConfig

SAME_TOPIC_MAX_DISTANCE = 4
BUSY_IDLE_SCORE = 0.35

class TriggerQueue:
    """Cooldown and novelty memory that turns a qualifying moment into drop/cooldown/trigger."""

    def __init__(self, config: TriggerQueueConfig):
        self.config = config
        self.last_trigger_at_ms = 0.0
        self._last_busy_trigger_at_ms = 0.0
        self._recent: List[TriggerMemory] = []

    @property
    def recent(self) -> Tuple[TriggerMemory, ...]:
        return tuple(self._recent)

    def get_global_cooldown_remaining_ms(self, now_ms: float) -> float:
        return max(0.0, self.config.global_cooldown_ms - (now_ms - self.last_trigger_at_ms))

    def peek_cooldown(self, now_ms: float) -> bool:
        return now_ms - self.last_trigger_at_ms >= self.config.global_cooldown_ms

    def get_novelty_score(self, signature: str) -> float:
        if not self._recent:
            return 1.0
        nearest = min(hamming_distance(m.signature, signature) for m in self._recent)
        return max(0.0, min(1.0, nearest / max(len(signature), 1)))

    def find_similar_recent(self, signature: str) -> Optional[TriggerMemory]:
        return next((m for m in self._recent if hamming_distance(m.signature, signature) <= SAME_TOPIC_MAX_DISTANCE), None)

    def decide(self, now_ms: float, final_score: float, trigger_threshold: float, signature: str,
               user_idle_score: float, interrupt_active_response: bool = False,
               current_response_score: Optional[float] = None) -> QueueDecision:
        novelty = self.get_novelty_score(signature)

        if final_score < trigger_threshold:
            return QueueDecision(Decision.DROP, ("below_trigger_threshold",), novelty)

        if interrupt_active_response and current_response_score is not None and final_score > current_response_score:
            self._record(now_ms, signature, user_idle_score)
            return QueueDecision(Decision.TRIGGER, ("interrupt_active_reply",), novelty)

        if block := self._cooldown_block(now_ms, signature, user_idle_score):
            reason, remaining = block
            return QueueDecision(Decision.COOLDOWN, (reason,), novelty, remaining)

        self._record(now_ms, signature, user_idle_score)
        return QueueDecision(Decision.TRIGGER, ("trigger_ready",), novelty)

    def _cooldown_block(self, now_ms: float, signature: str, user_idle_score: float) -> Optional[Tuple[str, float]]:
        if (remaining := self.get_global_cooldown_remaining_ms(now_ms)) > 0:
            return "global_cooldown", remaining

        if self.config.same_topic_cooldown_ms > 0 and (similar := self.find_similar_recent(signature)):
            remaining = similar.at_ms + self.config.same_topic_cooldown_ms - now_ms
            if remaining > 0:
                return "same_topic_cooldown", remaining

        if self.config.busy_cooldown_ms > 0 and user_idle_score < BUSY_IDLE_SCORE:
            remaining = self._last_busy_trigger_at_ms + self.config.busy_cooldown_ms - now_ms
            if remaining > 0:
                return "busy_cooldown", remaining
        return None

    def _record(self, now_ms: float, signature: str, user_idle_score: float):
        self.last_trigger_at_ms = now_ms
        if user_idle_score < BUSY_IDLE_SCORE:
            self._last_busy_trigger_at_ms = now_ms
        self._recent.insert(0, TriggerMemory(now_ms, signature))
        del self._recent[self.config.recent_cache_size:]
