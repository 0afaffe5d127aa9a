"""Budget-constrained scene selection.

Greedy, score-first: walk scenes from best to worst, accept each one that
still fits the remaining budget, stop once the budget is used up, then
restore chronological order.
"""
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .cuts import Scene

logger = logging.getLogger(__name__)


@dataclass
class SelectionDecision:
    """Records why a scene was accepted or skipped."""
    scene_start: float
    scene_end: float
    combined_score: float
    action: str  # "accept", "skip_short", "skip_budget", "not_reached"
    reason: str

    def to_dict(self) -> dict:
        return {
            "scene_start": self.scene_start,
            "scene_end": self.scene_end,
            "combined_score": self.combined_score,
            "action": self.action,
            "reason": self.reason,
        }


def compute_budget(total_duration: float, budget_ratio: float = 0.3) -> float:
    """Maximum total pick duration for a video."""
    return total_duration * budget_ratio


def select_picks(
    scenes: List[Scene],
    budget: float,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> Tuple[List[Scene], List[SelectionDecision]]:
    """
    Greedily fill the time budget with the highest-scoring scenes.

    Returns (picks in start order, decisions in ranking order).
    """
    # sorted() is stable, so ties keep their time order
    ranked = sorted(scenes, key=lambda s: s.combined_score, reverse=True)

    picks = []
    decisions = []
    accumulated = 0.0
    stopped_at: Optional[int] = None

    for i, scene in enumerate(ranked):
        if accumulated >= budget:
            stopped_at = i
            break

        if scene.duration < config.min_pick_duration:
            decisions.append(SelectionDecision(
                scene.start, scene.end, scene.combined_score,
                action="skip_short",
                reason=f"Duration {scene.duration:.2f}s < {config.min_pick_duration}s",
            ))
            continue

        if accumulated + scene.duration <= budget:
            picks.append(replace(scene))
            accumulated += scene.duration
            decisions.append(SelectionDecision(
                scene.start, scene.end, scene.combined_score,
                action="accept",
                reason=f"Accumulated {accumulated:.2f}s of {budget:.2f}s",
            ))
        else:
            decisions.append(SelectionDecision(
                scene.start, scene.end, scene.combined_score,
                action="skip_budget",
                reason=f"{accumulated:.2f}s + {scene.duration:.2f}s exceeds budget {budget:.2f}s",
            ))

    if stopped_at is not None:
        for scene in ranked[stopped_at:]:
            decisions.append(SelectionDecision(
                scene.start, scene.end, scene.combined_score,
                action="not_reached",
                reason="Budget already filled",
            ))

    picks.sort(key=lambda s: s.start)
    logger.info(f"Selected {len(picks)} of {len(scenes)} scenes ({accumulated:.1f}s of {budget:.1f}s budget)")
    return picks, decisions


def picks_to_ranges(picks: List[Scene]) -> List[Tuple[float, float]]:
    """Ordered (start_time, duration) pairs for the media assembler."""
    return [(pick.start, pick.duration) for pick in picks]
