from .frame_gate import clamp01
from .types import SIGNATURE_BITS, AttentionScores

IDLE_SATURATION_SEC = 15.0

def build_moment_scores(visual_delta: float, hash_distance: int, cluster_score: float,
                        user_idle_score: float, cooldown_ok: bool, novelty_score: float) -> AttentionScores:
    # strongest single signal wins so one sharp change is not averaged away
    excitement = clamp01(max(visual_delta, hash_distance / SIGNATURE_BITS, cluster_score))
    interrupt = clamp01(user_idle_score * 0.7 + (0.3 if cooldown_ok else 0.0))
    final = clamp01(excitement * 0.45 + interrupt * 0.30 + novelty_score * 0.25)
    return AttentionScores(
        excitement_score=excitement,
        interrupt_score=interrupt,
        novelty_score=clamp01(novelty_score),
        final_score=final,
    )

def compute_user_idle_score(idle_seconds: float) -> float:
    return clamp01(idle_seconds / IDLE_SATURATION_SEC)
