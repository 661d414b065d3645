import pytest

from tablecat.perception.trigger_queue import TriggerQueue
from tablecat.perception.types import Decision, TriggerQueueConfig

T = 1_000_000
SIG = "0" * 64


def decide(queue, now_ms, score=0.8, signature=SIG, idle=1.0, interrupt=False, response_score=None, threshold=0.35):
    return queue.decide(now_ms=now_ms, final_score=score, trigger_threshold=threshold, signature=signature,
                        user_idle_score=idle, interrupt_active_response=interrupt,
                        current_response_score=response_score)


def test_below_threshold_drops():
    result = decide(TriggerQueue(TriggerQueueConfig()), T, score=0.2)
    assert result.decision is Decision.DROP
    assert result.reasons == ("below_trigger_threshold",)


def test_global_cooldown_blocks_then_releases():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=1000))
    assert decide(queue, T).decision is Decision.TRIGGER
    assert queue.last_trigger_at_ms == T

    blocked = decide(queue, T + 500, signature="1" * 64)
    assert blocked.decision is Decision.COOLDOWN
    assert blocked.reasons == ("global_cooldown",)
    assert blocked.cooldown_remaining_ms == pytest.approx(500)
    assert not queue.peek_cooldown(T + 500)

    assert decide(queue, T + 1000, signature="1" * 64).decision is Decision.TRIGGER


def test_higher_score_interrupts_active_response():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=1000))
    decide(queue, T)
    result = decide(queue, T + 100, score=0.5, interrupt=True, response_score=0.3)
    assert result.decision is Decision.TRIGGER
    assert result.reasons == ("interrupt_active_reply",)
    assert queue.last_trigger_at_ms == T + 100


def test_lower_score_does_not_interrupt():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=1000))
    decide(queue, T)
    result = decide(queue, T + 100, score=0.25, interrupt=True, response_score=0.3, threshold=0.2)
    assert result.decision is Decision.COOLDOWN
    assert result.reasons == ("global_cooldown",)


def test_same_topic_cooldown_matches_near_signatures():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=0, same_topic_cooldown_ms=10_000))
    decide(queue, T)
    near = "1111" + "0" * 60
    result = decide(queue, T + 2000, signature=near)
    assert result.decision is Decision.COOLDOWN
    assert result.reasons == ("same_topic_cooldown",)
    assert result.cooldown_remaining_ms == pytest.approx(8000)

    far = "11111" + "0" * 59
    assert decide(queue, T + 2000, signature=far).decision is Decision.TRIGGER


def test_busy_cooldown_only_applies_to_busy_user():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=0, busy_cooldown_ms=5000))
    decide(queue, T, idle=0.1)
    busy = decide(queue, T + 1000, signature="1" * 64, idle=0.1)
    assert busy.decision is Decision.COOLDOWN
    assert busy.reasons == ("busy_cooldown",)
    assert decide(queue, T + 1000, signature="1" * 64, idle=0.9).decision is Decision.TRIGGER


def test_novelty_against_memory():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=0))
    assert queue.get_novelty_score(SIG) == 1.0
    decide(queue, T)
    assert queue.get_novelty_score(SIG) == 0.0
    assert queue.get_novelty_score("1" * 16 + "0" * 48) == pytest.approx(0.25)


def test_recent_memory_is_bounded_newest_first():
    queue = TriggerQueue(TriggerQueueConfig(global_cooldown_ms=0, recent_cache_size=3))
    for i in range(5):
        decide(queue, T + i, signature=str(i) * 64)
    assert [m.signature[0] for m in queue.recent] == ["4", "3", "2"]
