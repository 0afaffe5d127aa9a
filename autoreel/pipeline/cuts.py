"""Scene cut detection.

A debounced threshold scan over the per-frame score stream. A cut is only
committed after a minimum scene length has elapsed since the previous cut and
several consecutive sampled frames have scored above the threshold.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .frame_scores import FeatureExtractionError, FrameScore

logger = logging.getLogger(__name__)


@dataclass
class Scene:
    """A contiguous span of source video treated as one summary candidate."""
    start: float
    end: float
    video_score: float
    audio_score: float = 0.0
    combined_score: float = 0.0

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "video_score": self.video_score,
            "audio_score": self.audio_score,
            "combined_score": self.combined_score,
        }

    def __repr__(self):
        return (
            f"Scene({self.start:.2f}-{self.end:.2f}, "
            f"video={self.video_score:.3f}, combined={self.combined_score:.3f})"
        )


class CutPhase(str, Enum):
    ACCUMULATING = "accumulating"  # Inside the debounce window since the last cut
    WATCHING = "watching"  # Eligible to cut, counting high scores


@dataclass
class CutDetectorState:
    """Running scan state, carried from one sampled frame to the next."""
    frames_since_last_cut: int = 0
    high_score_count: int = 0
    last_cut_time: float = 0.0
    phase: CutPhase = CutPhase.ACCUMULATING


class CutDetector:
    """Debounced cut detector over a stream of sampled frame scores."""

    def __init__(
        self,
        fps: float,
        threshold: float = 0.5,
        config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.fps = fps
        self.threshold = threshold
        self.frame_skip = config.frame_skip
        self.required_high_scores = config.required_high_scores
        self.min_scene_frames = fps * config.min_scene_seconds
        self.state = CutDetectorState()

    def feed(self, index: int, score: float) -> Optional[Scene]:
        """
        Advance the scan by one sampled frame.

        Returns the Scene closed by this frame, if a cut was committed.
        """
        state = self.state
        state.frames_since_last_cut += self.frame_skip

        if state.frames_since_last_cut < self.min_scene_frames:
            state.phase = CutPhase.ACCUMULATING
            return None

        state.phase = CutPhase.WATCHING

        if score <= self.threshold:
            state.high_score_count = 0
            return None

        state.high_score_count += 1
        if state.high_score_count < self.required_high_scores:
            return None

        cut_time = index / self.fps
        scene = Scene(start=state.last_cut_time, end=cut_time, video_score=score)
        logger.debug(f"Cut at frame {index} ({cut_time:.2f}s), score {score:.3f}")

        state.last_cut_time = cut_time
        state.high_score_count = 0
        state.frames_since_last_cut = 0
        state.phase = CutPhase.ACCUMULATING
        return scene

    def finish(self, duration: float) -> Optional[Scene]:
        """Close the trailing scene at the end of the video."""
        if self.state.last_cut_time < duration:
            return Scene(start=self.state.last_cut_time, end=duration, video_score=0.0)
        return None


def detect_scenes(
    frame_scores: Iterable[FrameScore],
    fps: float,
    duration: float,
    threshold: float = 0.5,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[Scene]:
    """
    Run the cut detector over a score stream and return the scene list.

    A FeatureExtractionError from the stream stops the scan; scenes emitted
    so far are kept and the trailing scene is still closed.
    """
    detector = CutDetector(fps, threshold, config)
    scenes = []

    try:
        for frame_score in frame_scores:
            scene = detector.feed(frame_score.index, frame_score.score)
            if scene is not None:
                scenes.append(scene)
    except FeatureExtractionError as e:
        logger.warning(f"Cut scan aborted, keeping {len(scenes)} scenes: {e}")

    trailing = detector.finish(duration)
    if trailing is not None:
        scenes.append(trailing)

    kept = [s for s in scenes if s.duration >= config.min_scene_duration]
    if len(kept) < len(scenes):
        logger.debug(f"Dropped {len(scenes) - len(kept)} scenes shorter than {config.min_scene_duration}s")

    logger.info(f"Detected {len(kept)} scenes")
    return kept
