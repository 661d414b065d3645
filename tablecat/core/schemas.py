from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, Literal, List

DecisionName = Literal["idle", "drop", "cooldown", "trigger"]
ResponsePhase = Literal["idle", "inflight", "bubble"]

AttachmentLabel = Literal[
    "current_roi",
    "previous_roi_original",
    "global_full",
    "foreground_window_full",
    "companion_global_full",
    "companion_foreground_window_full",
]

class Attachment(BaseModel):
    path: str
    mime_type: str = "image/png"
    label: AttachmentLabel

class TriggerPayload(BaseModel):
    source: Literal["screen"] = "screen"
    kind: Literal["screen_attention", "active_companion"] = "screen_attention"
    content: str
    trigger_score: float = Field(ge=0.0, le=1.0)
    allow_interrupt: bool = True
    trigger_reason: str
    decision: DecisionName = "trigger"
    reasons: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

class ResponseState(BaseModel):
    active: bool = False
    interruptible: bool = False
    score: float = 0.0
    phase: ResponsePhase = "idle"

class AttentionDebugState(BaseModel):
    ts: str
    active: bool
    final_score: float = 0.0
    excitement_score: float = 0.0
    interrupt_score: float = 0.0
    novelty_score: float = 0.0
    visual_delta: float = 0.0
    hash_distance: int = 0
    cluster_score: float = 0.0
    l0_pass: bool = False
    l1_pass: bool = False
    foreground_changed: bool = False
    foreground_title: Optional[str] = None
    foreground_process_name: Optional[str] = None
    current_tick_ms: Optional[int] = None
    actual_sample_interval_ms: Optional[float] = None
    tick_duration_ms: Optional[float] = None
    cooldown_remaining_ms: Optional[float] = None
    last_trigger_at: Optional[str] = None
    active_sampling_enabled: bool = False
    current_response_score: Optional[float] = None
    response_active: Optional[bool] = None
    response_phase: Optional[ResponsePhase] = None
    decision: DecisionName = "idle"
    reasons: List[str] = Field(default_factory=list)

class SuggestionEvent(BaseModel):
    type: Literal["suggestion"] = "suggestion"
    text: str
    source: Literal["screen_attention", "active_companion", "system"] = "system"
    meta: Optional[Dict[str, Any]] = None
