# tablecat/core/config.py
import os
from pathlib import Path
from typing import Optional
import yaml
from pydantic import BaseModel, Field
from ..perception.types import AttentionThresholds, TriggerQueueConfig

CONFIG_PATH = os.getenv("TABLECAT_CONFIG", "config.yaml")

class ScreenAttentionConfig(BaseModel):
    """Knobs consumed by the attention loop. Immutable for the lifetime of one loop."""
    model_config = {"frozen": True}

    attention_enabled: bool = True
    gate_tick_ms: int = Field(500, ge=1, le=60_000)
    thumb_width: int = Field(160, ge=1, le=4096)
    thumb_height: int = Field(90, ge=1, le=4096)
    active_sampling_enabled: bool = False

    l0_visual_delta_threshold: float = Field(0.18, ge=0.0, le=1.0)
    l0_hash_distance_threshold: int = Field(6, ge=0, le=64)
    l0_input_intensity_threshold: float = Field(0.1, ge=0.0, le=1.0)
    l1_cluster_threshold: float = Field(0.25, ge=0.0, le=1.0)
    trigger_threshold: float = Field(0.35, ge=0.0, le=1.0)

    global_cooldown_sec: int = Field(1, ge=0)
    same_topic_cooldown_sec: int = Field(0, ge=0)
    busy_cooldown_sec: int = Field(0, ge=0)
    recent_cache_size: int = Field(30, ge=1, le=10_000)

    debug_save_gate_frames: bool = True
    send_foreground_window_only: bool = False
    active_companion_enabled: bool = False
    active_companion_interval_min: int = Field(7, ge=0)
    # an app switch alone is enough to clear the L1 cluster bar
    foreground_switch_boosts_cluster: bool = True

    @property
    def base_tick_ms(self) -> int:
        return max(100, self.gate_tick_ms)

    def thresholds(self) -> AttentionThresholds:
        return AttentionThresholds(
            l0_visual_delta_threshold=self.l0_visual_delta_threshold,
            l0_hash_distance_threshold=self.l0_hash_distance_threshold,
            l0_input_intensity_threshold=self.l0_input_intensity_threshold,
            l1_cluster_threshold=self.l1_cluster_threshold,
            trigger_threshold=self.trigger_threshold,
        )

    def trigger_queue_config(self) -> TriggerQueueConfig:
        return TriggerQueueConfig(
            global_cooldown_ms=self.global_cooldown_sec * 1000,
            same_topic_cooldown_ms=self.same_topic_cooldown_sec * 1000,
            busy_cooldown_ms=self.busy_cooldown_sec * 1000,
            recent_cache_size=self.recent_cache_size,
        )

class AssistantConfig(BaseModel):
    bubble_timeout_sec: float = Field(3.0, ge=0.0)

class RelayConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = Field(7862, ge=1, le=65535)

class PathsConfig(BaseModel):
    log_dir: str = "LOG"

class AppConfig(BaseModel):
    screen: ScreenAttentionConfig = Field(default_factory=ScreenAttentionConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)

def load_config(path: Optional[str] = None) -> AppConfig:
    p = Path(path or CONFIG_PATH)
    if not p.exists():
        print(f"{p} not found, using defaults.")
        return AppConfig()
    raw = p.read_text(encoding="utf-8-sig")
    return AppConfig.model_validate(yaml.safe_load(raw) or {})

def ensure_dirs(cfg: AppConfig):
    Path(cfg.paths.log_dir).mkdir(parents=True, exist_ok=True)
