"""Audio-video score fusion."""
import logging
from dataclasses import replace
from typing import List

from .audio_events import AudioKind, AudioSegment
from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .cuts import Scene

logger = logging.getLogger(__name__)


AUDIO_KIND_WEIGHTS = {
    AudioKind.SPEECH: 1.0,
    AudioKind.MUSIC: 0.7,
    AudioKind.LOUD: 0.5,
    AudioKind.SILENCE: 0.1,
}


def overlap_duration(start_a: float, end_a: float, start_b: float, end_b: float) -> float:
    """Length of the intersection of two time ranges."""
    return max(0.0, min(end_a, end_b) - max(start_a, start_b))


def compute_audio_score(
    scene: Scene,
    segments: List[AudioSegment],
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> float:
    """
    Weighted audio coverage of a scene.

    Each overlapping segment adds weight * overlap / duration; the sum is
    divided by the scene duration once more. Scenes with no overlapping
    segment get the no-audio floor.
    """
    duration = scene.duration
    if duration <= 0:
        return config.no_audio_score

    total = 0.0
    matched = False
    for seg in segments:
        overlap = overlap_duration(scene.start, scene.end, seg.start, seg.end)
        if overlap <= 0:
            continue
        matched = True
        total += AUDIO_KIND_WEIGHTS[seg.kind] * (overlap / duration)

    if not matched:
        return config.no_audio_score

    return min(1.0, max(0.0, total / duration))


def fuse_scores(
    scenes: List[Scene],
    segments: List[AudioSegment],
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[Scene]:
    """Attach audio scores and compute the combined score for every scene."""
    fused = []
    for scene in scenes:
        audio_score = compute_audio_score(scene, segments, config)
        combined = config.video_weight * scene.video_score + config.audio_weight * audio_score
        fused.append(replace(scene, audio_score=audio_score, combined_score=combined))

    logger.info(f"Fused audio into {len(fused)} scenes ({len(segments)} audio segments)")
    return fused
