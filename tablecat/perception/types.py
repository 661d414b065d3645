"""Value types shared by the attention engine."""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Tuple
import numpy as np

GRID_SIZE = 8
SIGNATURE_BITS = GRID_SIZE * GRID_SIZE

class Decision(str, Enum):
    IDLE = "idle"
    DROP = "drop"
    COOLDOWN = "cooldown"
    TRIGGER = "trigger"

@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int: return self.x + self.width

    @property
    def bottom(self) -> int: return self.y + self.height

    @property
    def area(self) -> int: return self.width * self.height

@dataclass(frozen=True)
class FrameSnapshot:
    width: int
    height: int
    grayscale: np.ndarray = field(repr=False, compare=False)
    grid_energy: Tuple[float, ...]
    signature_bits: str

@dataclass(frozen=True)
class ROIProposal:
    boxes: Tuple[Rect, ...] = ()
    coverage_ratio: float = 0.0
    heatmap_score: float = 0.0

@dataclass(frozen=True)
class L0GateResult:
    visual_delta: float
    hash_distance: int
    input_intensity: float
    cooldown_ok: bool
    passed: bool
    reasons: Tuple[str, ...] = ()

@dataclass(frozen=True)
class L1GateResult:
    foreground_changed: bool
    cluster_score: float
    user_idle_score: float
    audio_peak_score: float
    passed: bool
    reasons: Tuple[str, ...] = ()
    foreground_title: Optional[str] = None
    foreground_process_name: Optional[str] = None

@dataclass(frozen=True)
class AttentionScores:
    excitement_score: float = 0.0
    interrupt_score: float = 0.0
    novelty_score: float = 0.0
    final_score: float = 0.0

@dataclass(frozen=True)
class TriggerMemory:
    at_ms: float
    signature: str

@dataclass(frozen=True)
class QueueDecision:
    decision: Decision
    reasons: Tuple[str, ...]
    novelty_score: float
    cooldown_remaining_ms: float = 0.0

@dataclass(frozen=True)
class AttentionThresholds:
    l0_visual_delta_threshold: float = 0.18
    l0_hash_distance_threshold: int = 6
    l0_input_intensity_threshold: float = 0.1
    l1_cluster_threshold: float = 0.25
    trigger_threshold: float = 0.35

@dataclass(frozen=True)
class TriggerQueueConfig:
    global_cooldown_ms: int = 1000
    same_topic_cooldown_ms: int = 0
    busy_cooldown_ms: int = 0
    recent_cache_size: int = 30

@dataclass(frozen=True)
class ForegroundWindowInfo:
    title: str
    process_name: str
    pid: int
    bounds: Optional[Rect] = None

    @property
    def key(self) -> str:
        return f"{self.process_name}::{self.title}"

@dataclass(frozen=True)
class MomentCandidate:
    """One per completed tick. Never mutated after the tick builds it."""
    ts: str
    l0: L0GateResult
    l1: L1GateResult
    roi: ROIProposal
    scores: AttentionScores
    signature: str
    decision: Decision
    reasons: Tuple[str, ...]

    def to_record(self) -> dict:
        return {
            "ts": self.ts,
            "l0": {**asdict(self.l0), "reasons": list(self.l0.reasons)},
            "l1": {**asdict(self.l1), "reasons": list(self.l1.reasons)},
            "roi": {"boxes": [asdict(b) for b in self.roi.boxes], "coverage_ratio": self.roi.coverage_ratio, "heatmap_score": self.roi.heatmap_score},
            "score": asdict(self.scores),
            "cooldown": {"cooldown_ok": self.l0.cooldown_ok},
            "signature": self.signature,
            "decision": self.decision.value,
            "reasons": list(self.reasons),
        }
