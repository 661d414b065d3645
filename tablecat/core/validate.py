# tablecat/core/validate.py
from pathlib import Path
from .config import AppConfig
from ..perception.types import GRID_SIZE

def validate_config(cfg: AppConfig) -> list[str]:
    """Validate configuration and return list of warnings/errors"""
    issues = []
    screen = cfg.screen

    # Check log directory permissions
    log_dir = Path(cfg.paths.log_dir)
    if not log_dir.exists():
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            issues.append(f"❌ No write permission for log_dir: {log_dir}")

    # Gate frame must cover the analysis grid
    if screen.thumb_width < GRID_SIZE or screen.thumb_height < GRID_SIZE:
        issues.append(f"❌ Gate thumbnail {screen.thumb_width}x{screen.thumb_height} is smaller than the {GRID_SIZE}x{GRID_SIZE} grid")

    if screen.gate_tick_ms < 100:
        issues.append(f"⚠️ gate_tick_ms={screen.gate_tick_ms} is below 100ms and will be raised to 100ms")

    # Best case: full excitement, full interrupt, full novelty
    if screen.trigger_threshold >= 1.0:
        issues.append("⚠️ trigger_threshold of 1.0 is only reachable by a perfect moment")

    if screen.active_companion_enabled and screen.active_companion_interval_min == 0:
        issues.append("⚠️ Active companion interval is 0 - check-ins may fire every calm tick")

    if screen.global_cooldown_sec == 0 and screen.same_topic_cooldown_sec == 0 and screen.busy_cooldown_sec == 0:
        issues.append("⚠️ All trigger cooldowns disabled - trigger rate is bounded only by the tick interval")

    if screen.active_sampling_enabled and screen.debug_save_gate_frames:
        issues.append("⚠️ Gate frames are not saved while sampling at the fast interval")

    return issues
