"""Scene merging and length normalization."""
import logging
from dataclasses import replace
from typing import List

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .cuts import Scene

logger = logging.getLogger(__name__)


def merge_adjacent_scenes(
    scenes: List[Scene],
    merge_window_sec: float = 3.0,
) -> List[Scene]:
    """
    Collapse scenes that start close to the current merged scene's start.

    The window is measured from the merged scene's start, not its end, so
    several short scenes can chain into one. Scores take the element-wise max.
    """
    if not scenes:
        return []

    ordered = sorted(scenes, key=lambda s: s.start)
    merged = []
    current = replace(ordered[0])

    for scene in ordered[1:]:
        if scene.start - current.start <= merge_window_sec:
            current.end = max(current.end, scene.end)
            current.combined_score = max(current.combined_score, scene.combined_score)
            current.video_score = max(current.video_score, scene.video_score)
            current.audio_score = max(current.audio_score, scene.audio_score)
        else:
            merged.append(current)
            current = replace(scene)

    merged.append(current)
    logger.info(f"Merged {len(scenes)} scenes into {len(merged)}")
    return merged


def length_factor(
    duration: float,
    short_sec: float = 5.0,
    long_sec: float = 30.0,
) -> float:
    """Penalty for scenes that are too short or too long."""
    if duration < short_sec:
        return duration / short_sec
    if duration > long_sec:
        return long_sec / duration
    return 1.0


def apply_length_penalty(
    scenes: List[Scene],
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[Scene]:
    """Scale each scene's combined score by its length factor."""
    return [
        replace(
            scene,
            combined_score=scene.combined_score * length_factor(
                scene.duration, config.short_scene_sec, config.long_scene_sec
            ),
        )
        for scene in scenes
    ]


def merge_and_normalize(
    scenes: List[Scene],
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[Scene]:
    """Run the adjacency merge and then the length penalty."""
    merged = merge_adjacent_scenes(scenes, config.merge_window_sec)
    return apply_length_penalty(merged, config)
