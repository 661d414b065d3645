# tablecat/perception/attention_loop.py
"""Screen attention loop.

Each tick runs capture -> analyze -> gate (L0, L1) -> score -> decide ->
persist -> schedule-next as one async chain, and at most one trigger or
companion dispatch leaves the loop per tick.
"""
import asyncio, logging, time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from ..core.config import ScreenAttentionConfig
from ..core.prompt import companion_content, trigger_content
from ..core.schemas import Attachment, AttentionDebugState, ResponseState, TriggerPayload
from .event_sink import AttentionEventSink, file_stamp
from .foreground import ForegroundWindowProbe
from .frame_gate import (
    build_frame_snapshot, build_roi_proposal, compute_cluster_score, compute_hash_distance, compute_visual_delta,
)
from .idle import InputIdleTracker
from .moment_score import build_moment_scores, compute_user_idle_score
from .scheduler import TickScheduler
from .screen_capture import (
    CapturedImage, ScreenCapture, crop_capture_to_bounds, crop_image_to_png, scale_roi_box_to_capture,
)
from .trigger_queue import TriggerQueue
from .types import (
    AttentionThresholds, Decision, ForegroundWindowInfo, FrameSnapshot, L0GateResult, L1GateResult,
    MomentCandidate, ROIProposal, Rect,
)

logger = logging.getLogger(__name__)

FAST_TICK_MS = 100
CAPTURE_HISTORY_SIZE = 12
CURRENT_MATCH_MS = 1000
HISTORY_LOOKBACK_MS = 2000
L1_IDLE_SCORE = 0.35
COMPANION_IDLE_SCORE = 0.8
# (visual delta, hash distance, cluster score)
STILL_INTERESTING = (0.12, 4, 0.18)
CALM_LIMITS = (0.03, 2, 0.08)

@dataclass
class AttentionLoopCallbacks:
    on_debug_state: Callable[[AttentionDebugState], None]
    on_trigger: Callable[[TriggerPayload], Awaitable[Any]]
    get_response_state: Optional[Callable[[], ResponseState]] = None

@dataclass(frozen=True)
class _HistoryItem:
    at_ms: float
    capture: CapturedImage
    full: Optional[CapturedImage]

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def collect_l0_reasons(previous: Optional[FrameSnapshot], visual_delta: float, hash_distance: int,
                       input_intensity: float, cooldown_ok: bool, th: AttentionThresholds) -> List[str]:
    if previous is None:
        return ["baseline_pending"]
    reasons = []
    if not cooldown_ok:
        reasons.append("global_cooldown")
    if (visual_delta < th.l0_visual_delta_threshold and hash_distance < th.l0_hash_distance_threshold
            and input_intensity < th.l0_input_intensity_threshold):
        reasons.append("l0_not_salient")
    return reasons

def collect_l1_reasons(l0_pass: bool, cluster_score: float, user_idle_score: float,
                       foreground_changed: bool, th: AttentionThresholds) -> List[str]:
    if not l0_pass:
        return ["l0_blocked"]
    if cluster_score >= th.l1_cluster_threshold or user_idle_score >= L1_IDLE_SCORE or foreground_changed:
        return []
    return ["l1_not_worthy"]

def build_signature(snapshot: FrameSnapshot, roi: ROIProposal, foreground: Optional[ForegroundWindowInfo]) -> str:
    boxes = "|".join(f"{b.x},{b.y},{b.width},{b.height}" for b in roi.boxes)
    process, title = (foreground.process_name, foreground.title) if foreground else ("", "")
    return f"{snapshot.signature_bits}:{boxes}:{process}:{title}"

def is_active_tick(visual_delta: float, hash_distance: int, cluster_score: float,
                   l0_pass: bool, l1_pass: bool, decision: Decision) -> bool:
    return (decision in (Decision.TRIGGER, Decision.COOLDOWN) or l0_pass or l1_pass
            or visual_delta >= STILL_INTERESTING[0] or hash_distance >= STILL_INTERESTING[1]
            or cluster_score >= STILL_INTERESTING[2])

def resolve_next_tick_ms(config: ScreenAttentionConfig, visual_delta: float, hash_distance: int, cluster_score: float,
                         l0_pass: bool, l1_pass: bool, decision: Decision) -> int:
    base = config.base_tick_ms
    if not config.active_sampling_enabled:
        return base
    if is_active_tick(visual_delta, hash_distance, cluster_score, l0_pass, l1_pass, decision):
        return min(base, FAST_TICK_MS)
    return base

class AttentionLoop:
    def __init__(self, config: ScreenAttentionConfig, callbacks: AttentionLoopCallbacks, *, log_dir: str = "LOG",
                 capture: Optional[ScreenCapture] = None, idle_seconds: Optional[Callable[[], float]] = None,
                 foreground: Optional[ForegroundWindowProbe] = None, sink: Optional[AttentionEventSink] = None):
        self.config, self.callbacks = config, callbacks
        self.thresholds = config.thresholds()
        self.queue = TriggerQueue(config.trigger_queue_config())
        self.capture = capture or ScreenCapture()
        self.foreground = foreground or ForegroundWindowProbe()
        self.sink = sink or AttentionEventSink(log_dir)
        self._idle_tracker = None if idle_seconds else InputIdleTracker()
        self._idle_seconds = idle_seconds or self._idle_tracker.get_system_idle_seconds
        self.scheduler = TickScheduler(self.run_tick)

        self.started = False
        self._running_tick = False
        self._previous_frame: Optional[FrameSnapshot] = None
        self._previous_foreground_key = ""
        self._history: List[_HistoryItem] = []
        self._dispatches: Set[asyncio.Task] = set()
        self._last_companion_at_ms = 0.0
        self._last_tick_completed_at: Optional[float] = None
        self._generation = 0
        self._ticks_in_flight = 0

        self.tick_count = self.trigger_count = self.cooldown_count = 0
        self.companion_trigger_count = self.overrun_count = 0
        self.last_tick_duration_ms = self.tick_duration_total_ms = 0.0
        self.last_resolved_tick_ms = 0

    @property
    def running_tick(self) -> bool:
        return self._running_tick

    @property
    def has_baseline(self) -> bool:
        return self._previous_frame is not None

    def start(self):
        if self.started:
            return
        self.started = True
        if self._idle_tracker:
            self._idle_tracker.start()
        self._emit(self._idle_state(True))
        self.scheduler.start(self.config.base_tick_ms)
        logger.info("Screen attention loop started tick=%dms", self.config.base_tick_ms)

    async def stop(self):
        self.started = False
        self._generation += 1
        self.scheduler.cancel()
        self._running_tick = False
        self._previous_frame = None
        self._history.clear()
        if self._idle_tracker:
            self._idle_tracker.stop()
        self._emit(self._idle_state(False))
        await self._write_metrics()
        logger.info("Screen attention loop stopped")

    async def wait_dispatches(self):
        if self._dispatches:
            await asyncio.gather(*list(self._dispatches), return_exceptions=True)

    async def run_tick(self) -> Optional[MomentCandidate]:
        # a tick left over from before stop() still counts as running
        if self._running_tick or self._ticks_in_flight:
            self.overrun_count += 1
            if not self._running_tick:
                # the leftover tick will not schedule the next one
                self.scheduler.schedule(self.config.base_tick_ms)
            return None
        generation = self._generation
        self._running_tick = True
        self._ticks_in_flight += 1
        started = time.monotonic()
        try:
            return await self._tick(started, generation)
        except Exception:
            logger.exception("Screen attention tick failed")
            if generation != self._generation:
                return None
            self._record_duration(started)
            self._emit(self._idle_state(True).model_copy(update={"decision": "drop", "reasons": ["tick_failed"]}))
            self.scheduler.schedule(self.config.base_tick_ms)
            return None
        finally:
            self._ticks_in_flight -= 1
            if generation == self._generation:
                self._running_tick = False

    async def _tick(self, started: float, generation: int) -> Optional[MomentCandidate]:
        cfg, th = self.config, self.thresholds
        capture = await self.capture.capture(cfg.thumb_width, cfg.thumb_height)
        full = await self.capture.capture_full_resolution()
        now_ms = capture.captured_at.timestamp() * 1000
        ts = capture.captured_at.isoformat()

        snapshot = build_frame_snapshot(capture.pixels(), capture.width, capture.height)
        previous = self._previous_frame
        if previous is not None and (previous.width, previous.height) != (snapshot.width, snapshot.height):
            logger.info("Gate frame size changed %dx%d -> %dx%d, re-baselining",
                        previous.width, previous.height, snapshot.width, snapshot.height)
            previous = None

        visual_delta = compute_visual_delta(previous, snapshot)
        hash_distance = compute_hash_distance(previous, snapshot)
        cluster_score = compute_cluster_score(previous, snapshot)
        user_idle_score = compute_user_idle_score(self._idle_seconds())
        cooldown_ok = self.queue.peek_cooldown(now_ms)
        foreground = await self.foreground.get_foreground_window_info(now_ms)
        if self._stale(generation):
            return None
        self._history.append(_HistoryItem(now_ms, capture, full))
        del self._history[:-CAPTURE_HISTORY_SIZE]
        foreground_key = foreground.key if foreground else ""
        foreground_changed = bool(self._previous_foreground_key and foreground_key
                                  and foreground_key != self._previous_foreground_key)
        switch_counts = foreground_changed and cfg.foreground_switch_boosts_cluster
        input_intensity = 0.0

        l0_reasons = collect_l0_reasons(previous, visual_delta, hash_distance, input_intensity, cooldown_ok, th)
        l0_pass = not l0_reasons
        l1_reasons = collect_l1_reasons(l0_pass, cluster_score, user_idle_score, switch_counts, th)
        l1_pass = not l1_reasons

        roi = build_roi_proposal(previous, snapshot, capture.width, capture.height)
        signature = build_signature(snapshot, roi, foreground)
        scores = build_moment_scores(
            visual_delta=visual_delta,
            hash_distance=hash_distance,
            cluster_score=max(cluster_score, th.l1_cluster_threshold) if switch_counts else cluster_score,
            user_idle_score=user_idle_score,
            cooldown_ok=cooldown_ok,
            novelty_score=self.queue.get_novelty_score(signature),
        )

        response = self._response_state()
        cooldown_remaining = self.queue.get_global_cooldown_remaining_ms(now_ms)
        if previous is None:
            decision, reasons = Decision.IDLE, ("baseline_pending",)
        elif l0_pass and l1_pass:
            result = self.queue.decide(
                now_ms=now_ms,
                final_score=scores.final_score,
                trigger_threshold=th.trigger_threshold,
                signature=signature,
                user_idle_score=user_idle_score,
                interrupt_active_response=response.active and response.interruptible,
                current_response_score=response.score,
            )
            decision, reasons, cooldown_remaining = result.decision, result.reasons, result.cooldown_remaining_ms
        else:
            decision, reasons = Decision.DROP, tuple(l0_reasons + l1_reasons)

        candidate = MomentCandidate(
            ts=ts,
            l0=L0GateResult(visual_delta, hash_distance, input_intensity, cooldown_ok, l0_pass, tuple(l0_reasons)),
            l1=L1GateResult(foreground_changed, cluster_score, user_idle_score, 0.0, l1_pass, tuple(l1_reasons),
                            foreground.title if foreground else None, foreground.process_name if foreground else None),
            roi=roi,
            scores=scores,
            signature=signature,
            decision=decision,
            reasons=tuple(reasons),
        )

        self.tick_count += 1
        if decision is Decision.TRIGGER:
            self.trigger_count += 1
        elif decision is Decision.COOLDOWN:
            self.cooldown_count += 1

        await self._write_event(candidate, capture)
        if self._stale(generation):
            return candidate
        next_tick_ms = resolve_next_tick_ms(cfg, visual_delta, hash_distance, cluster_score, l0_pass, l1_pass, decision)
        self._emit(self._debug_state(candidate, started, next_tick_ms, cooldown_remaining, response))

        companion_ready = self.should_trigger_companion(now_ms, visual_delta, hash_distance, cluster_score, user_idle_score)

        self._previous_frame = snapshot
        self._previous_foreground_key = foreground_key or self._previous_foreground_key
        self._record_duration(started)
        self.last_resolved_tick_ms = next_tick_ms
        self._last_tick_completed_at = time.monotonic()
        await self._write_metrics()
        if self._stale(generation):
            return candidate
        self.scheduler.schedule(next_tick_ms)

        if decision is Decision.TRIGGER:
            try:
                payload = await self._build_trigger_payload(candidate, now_ms, capture, foreground)
                logger.info("Screen attention trigger dispatch score=%.2f reasons=%s foreground=%s",
                            scores.final_score, ",".join(candidate.reasons) or "none",
                            foreground.process_name if foreground else "-")
                self._spawn_dispatch(payload, "screen_attention")
            except Exception:
                logger.exception("Screen attention trigger failed")
        elif companion_ready:
            try:
                payload = await self._build_companion_payload(candidate, now_ms, capture, foreground)
                self.companion_trigger_count += 1
                self._last_companion_at_ms = now_ms
                logger.info("Active companion trigger dispatch score=%.2f", scores.final_score)
                self._spawn_dispatch(payload, "active_companion")
            except Exception:
                logger.exception("Active companion trigger failed")
        return candidate

    def _stale(self, generation: int) -> bool:
        if generation == self._generation:
            return False
        logger.debug("Discarding tick that finished after stop")
        return True

    def should_trigger_companion(self, now_ms: float, visual_delta: float, hash_distance: int,
                                 cluster_score: float, user_idle_score: float) -> bool:
        cfg = self.config
        if not cfg.active_companion_enabled:
            return False
        if now_ms - self._last_companion_at_ms < cfg.active_companion_interval_min * 60_000:
            return False
        if self.queue.get_global_cooldown_remaining_ms(now_ms) > 0 or user_idle_score < COMPANION_IDLE_SCORE:
            return False
        return (visual_delta < CALM_LIMITS[0] and hash_distance < CALM_LIMITS[1]
                and cluster_score < CALM_LIMITS[2])

    def _response_state(self) -> ResponseState:
        if self.callbacks.get_response_state is None:
            return ResponseState()
        return self.callbacks.get_response_state()

    def _record_duration(self, started: float):
        self.last_tick_duration_ms = (time.monotonic() - started) * 1000
        self.tick_duration_total_ms += self.last_tick_duration_ms

    def _emit(self, state: AttentionDebugState):
        try:
            self.callbacks.on_debug_state(state)
        except Exception:
            logger.exception("Debug state sink failed")

    def _idle_state(self, active: bool) -> AttentionDebugState:
        return AttentionDebugState(
            ts=now_iso(),
            active=active,
            current_tick_ms=self.config.base_tick_ms,
            active_sampling_enabled=self.config.active_sampling_enabled,
            decision="idle",
            reasons=["waiting_for_frame"] if active else ["attention_disabled"],
        )

    def _debug_state(self, c: MomentCandidate, started: float, next_tick_ms: int,
                     cooldown_remaining: float, response: ResponseState) -> AttentionDebugState:
        last_trigger = self.queue.last_trigger_at_ms
        return AttentionDebugState(
            ts=c.ts,
            active=True,
            final_score=c.scores.final_score,
            excitement_score=c.scores.excitement_score,
            interrupt_score=c.scores.interrupt_score,
            novelty_score=c.scores.novelty_score,
            visual_delta=c.l0.visual_delta,
            hash_distance=c.l0.hash_distance,
            cluster_score=c.l1.cluster_score,
            l0_pass=c.l0.passed,
            l1_pass=c.l1.passed,
            foreground_changed=c.l1.foreground_changed,
            foreground_title=c.l1.foreground_title,
            foreground_process_name=c.l1.foreground_process_name,
            current_tick_ms=next_tick_ms,
            actual_sample_interval_ms=(started - self._last_tick_completed_at) * 1000 if self._last_tick_completed_at else None,
            tick_duration_ms=(time.monotonic() - started) * 1000,
            cooldown_remaining_ms=cooldown_remaining,
            last_trigger_at=datetime.fromtimestamp(last_trigger / 1000, timezone.utc).isoformat() if last_trigger > 0 else None,
            active_sampling_enabled=self.config.active_sampling_enabled,
            current_response_score=response.score,
            response_active=response.active,
            response_phase=response.phase,
            decision=c.decision.value,
            reasons=list(c.reasons),
        )

    def _saves_gate_frames(self) -> bool:
        if not self.config.debug_save_gate_frames:
            return False
        fast = self.config.active_sampling_enabled and 0 < self.last_resolved_tick_ms <= FAST_TICK_MS
        return not fast

    async def _write_event(self, candidate: MomentCandidate, capture: CapturedImage):
        await self.sink.append_event(candidate.to_record())
        if not self._saves_gate_frames():
            return
        stamp = file_stamp(candidate.ts)
        await self.sink.save_png(self.sink.frames / f"{stamp}.png", capture.png_bytes())
        for i, box in enumerate(candidate.roi.boxes, 1):
            await self.sink.save_png(self.sink.roi / f"{stamp}_{i}.png", crop_image_to_png(capture, box))

    def summary(self) -> dict:
        return {
            "session_id": self.sink.session_id,
            "tick_count": self.tick_count,
            "trigger_count": self.trigger_count,
            "cooldown_count": self.cooldown_count,
            "companion_trigger_count": self.companion_trigger_count,
            "average_tick_duration_ms": self.tick_duration_total_ms / self.tick_count if self.tick_count else 0,
            "last_tick_duration_ms": self.last_tick_duration_ms,
            "current_tick_ms": self.last_resolved_tick_ms,
            "overrun_count": self.overrun_count,
        }

    async def _write_metrics(self):
        try:
            await self.sink.write_summary(self.summary())
        except Exception:
            logger.exception("Writing attention metrics failed")

    def _find_current_full(self, at_ms: float) -> Optional[CapturedImage]:
        for item in reversed(self._history):
            if abs(item.at_ms - at_ms) <= CURRENT_MATCH_MS and item.full is not None:
                return item.full
        return None

    def _find_historical_full(self, at_ms: float) -> Optional[CapturedImage]:
        target = at_ms - HISTORY_LOOKBACK_MS
        best = None
        for item in self._history:
            if item.at_ms <= target and item.full is not None:
                best = item.full
        return best

    def _global_capture(self, full: CapturedImage, foreground: Optional[ForegroundWindowInfo]) -> Tuple[CapturedImage, str]:
        if self.config.send_foreground_window_only and foreground and foreground.bounds:
            return crop_capture_to_bounds(full, foreground.bounds), "foreground_window_only"
        return full, "full_desktop"

    def _capture_meta(self, capture: CapturedImage, full: CapturedImage, global_capture: CapturedImage,
                      foreground: Optional[ForegroundWindowInfo]) -> dict:
        size = lambda c: {"width": c.width, "height": c.height}
        bounds = foreground.bounds if foreground else None
        return {
            "image_source": "original",
            "gate_capture_size": size(capture),
            "llm_capture_size": size(full),
            "global_capture_size": size(global_capture),
            "foreground_bounds": asdict(bounds) if bounds else None,
        }

    async def _build_trigger_payload(self, candidate: MomentCandidate, now_ms: float, capture: CapturedImage,
                                     foreground: Optional[ForegroundWindowInfo]) -> TriggerPayload:
        stamp = file_stamp(candidate.ts)
        fg_only = self.config.send_foreground_window_only
        full = self._find_current_full(now_ms) or await self.capture.capture_full_resolution()
        global_capture, mode = self._global_capture(full, foreground)
        global_path = await self.sink.save_png(self.sink.llm / f"{stamp}_global.png", global_capture.png_bytes())

        roi_box = candidate.roi.boxes[0] if candidate.roi.boxes else Rect(0, 0, capture.width, capture.height)
        scaled = scale_roi_box_to_capture(roi_box, capture, full)
        current_roi = await self.sink.save_png(self.sink.llm / f"{stamp}_current_roi.png", crop_image_to_png(full, scaled))
        attachments = [Attachment(path=str(current_roi), label="current_roi")]
        if (earlier := self._find_historical_full(now_ms)) is not None:
            earlier_box = scale_roi_box_to_capture(roi_box, capture, earlier)
            earlier_path = await self.sink.save_png(self.sink.llm / f"{stamp}_previous_roi.png", crop_image_to_png(earlier, earlier_box))
            attachments.append(Attachment(path=str(earlier_path), label="previous_roi_original"))
        attachments.append(Attachment(path=str(global_path), label="foreground_window_full" if fg_only else "global_full"))

        await self.sink.write_json(self.sink.llm / f"{stamp}.json", {
            "ts": candidate.ts,
            "decision": candidate.decision.value,
            "final_score": candidate.scores.final_score,
            "reasons": list(candidate.reasons),
            "global_image_mode": mode,
            **self._capture_meta(capture, full, global_capture, foreground),
            "roi_box": asdict(roi_box),
            "scaled_roi_box": asdict(scaled),
            "attachments": [a.model_dump() for a in attachments],
        })
        return TriggerPayload(
            kind="screen_attention",
            content=trigger_content(candidate.ts, candidate.decision.value, candidate.scores.final_score, list(candidate.reasons), fg_only),
            trigger_score=candidate.scores.final_score,
            trigger_reason=",".join(candidate.reasons) or "trigger_ready",
            decision=candidate.decision.value,
            reasons=list(candidate.reasons),
            attachments=attachments,
        )

    async def _build_companion_payload(self, candidate: MomentCandidate, now_ms: float, capture: CapturedImage,
                                       foreground: Optional[ForegroundWindowInfo]) -> TriggerPayload:
        stamp = f"{file_stamp(candidate.ts)}_companion"
        fg_only = self.config.send_foreground_window_only
        full = self._find_current_full(now_ms) or await self.capture.capture_full_resolution()
        global_capture, mode = self._global_capture(full, foreground)
        global_path = await self.sink.save_png(self.sink.llm / f"{stamp}_global.png", global_capture.png_bytes())
        attachments = [Attachment(path=str(global_path), label="companion_foreground_window_full" if fg_only else "companion_global_full")]
        await self.sink.write_json(self.sink.llm / f"{stamp}.json", {
            "ts": candidate.ts,
            "kind": "active_companion",
            "final_score": candidate.scores.final_score,
            "reasons": ["active_companion"],
            "global_image_mode": mode,
            **self._capture_meta(capture, full, global_capture, foreground),
        })
        return TriggerPayload(
            kind="active_companion",
            content=companion_content(candidate.ts),
            trigger_score=candidate.scores.final_score,
            trigger_reason="active_companion",
            decision=candidate.decision.value,
            reasons=["active_companion"],
            attachments=attachments,
        )

    def _spawn_dispatch(self, payload: TriggerPayload, source: str):
        task = asyncio.ensure_future(self._dispatch(payload, source))
        self._dispatches.add(task)
        task.add_done_callback(self._dispatches.discard)

    async def _dispatch(self, payload: TriggerPayload, source: str):
        try:
            await self.callbacks.on_trigger(payload)
            logger.info("%s dispatch completed", source)
        except Exception:
            logger.exception("%s dispatch failed", source)
