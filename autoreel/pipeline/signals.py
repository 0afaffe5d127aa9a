"""Optional per-scene visual signals.

These are computed on demand for a single scene and are never part of the
cut scan. Each signal maps (video_source, (start, end)) to a float in [0, 1]
and can be folded into a scene's video score with apply_signals().
"""
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .cuts import Scene
from .frame_scores import (
    FrameFeatureExtractor,
    OpenCVFeatureExtractor,
    histogram_distance,
    prepare_frame,
    read_window_frames,
)

logger = logging.getLogger(__name__)

Window = Tuple[float, float]


class ScoreSignal(Protocol):
    """A scalar visual signal for one time window."""

    name: str

    def __call__(self, video_source: str | Path, window: Window) -> float:
        ...


class _WindowSignal:
    """Shared frame sampling for window signals."""

    name = "signal"

    def __init__(
        self,
        config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
        extractor: Optional[FrameFeatureExtractor] = None,
        frame_reader: Callable = read_window_frames,
    ):
        self.config = config
        self.extractor = extractor or OpenCVFeatureExtractor(
            config.histogram_bins, config.tracked_feature_count
        )
        self._read_frames = frame_reader

    def sample(self, video_source, window: Window) -> List[np.ndarray]:
        start, end = window
        return self._read_frames(video_source, start, end, self.config.signal_sample_count)


class EmotionIntensitySignal(_WindowSignal):
    """Face area per frame, weighted by how often faces are detected."""

    name = "emotion_intensity"

    def __call__(self, video_source, window):
        frames = self.sample(video_source, window)
        if not frames:
            return 0.0

        areas = []
        for frame in frames:
            faces = self.extractor.detect_faces(frame)
            if not faces:
                continue
            frame_area = frame.shape[0] * frame.shape[1]
            face_area = sum(w * h for (_, _, w, h) in faces)
            areas.append(min(1.0, face_area / frame_area))

        if not areas:
            return 0.0

        frequency = len(areas) / len(frames)
        return float(min(1.0, np.mean(areas) * frequency))


class MotionTrajectorySignal(_WindowSignal):
    """Average tracked-point displacement between sampled frames."""

    name = "motion_trajectory"

    def __call__(self, video_source, window):
        frames = [prepare_frame(f, self.config) for f in self.sample(video_source, window)]
        if len(frames) < 2:
            return 0.0

        steps = []
        for prev, curr in zip(frames, frames[1:]):
            points = self.extractor.track_features(prev)
            if points is None or len(points) == 0:
                continue
            new_points, status = self.extractor.track_points(prev, curr, points)
            valid = np.asarray(status).ravel() == 1
            if not np.any(valid):
                continue
            displacement = np.linalg.norm(
                new_points.reshape(-1, 2)[valid] - points.reshape(-1, 2)[valid], axis=1
            )
            steps.append(float(np.mean(displacement)))

        if not steps:
            return 0.0
        return float(min(1.0, np.mean(steps) / self.config.trajectory_norm_px))


class ColorDynamicsSignal(_WindowSignal):
    """Average per-channel histogram distance between sampled frames."""

    name = "color_dynamics"

    def _channel_histograms(self, frame: np.ndarray) -> List[np.ndarray]:
        hists = []
        for channel in range(frame.shape[2] if frame.ndim == 3 else 1):
            hist = cv2.calcHist([frame], [channel], None, [32], [0, 256])
            cv2.normalize(hist, hist)
            hists.append(hist)
        return hists

    def __call__(self, video_source, window):
        frames = self.sample(video_source, window)
        if len(frames) < 2:
            return 0.0

        distances = []
        prev_hists = self._channel_histograms(frames[0])
        for frame in frames[1:]:
            curr_hists = self._channel_histograms(frame)
            per_channel = [histogram_distance(a, b) for a, b in zip(prev_hists, curr_hists)]
            distances.append(float(np.mean(per_channel)))
            prev_hists = curr_hists

        return float(min(1.0, np.mean(distances)))


def apply_signals(
    scene: Scene,
    video_source: str | Path,
    signals: Sequence[ScoreSignal],
    weight: float = 0.5,
) -> Scene:
    """
    Fold the mean of the given signals into the scene's video score.

    A signal that fails is logged and skipped. With no usable signal the
    scene is returned unchanged.
    """
    values = []
    for signal in signals:
        try:
            values.append(float(signal(video_source, (scene.start, scene.end))))
        except Exception as e:
            logger.warning(f"Signal {getattr(signal, 'name', signal)} failed for {scene}: {e}")

    if not values:
        return replace(scene)

    blended = (1 - weight) * scene.video_score + weight * float(np.mean(values))
    return replace(scene, video_score=min(1.0, max(0.0, blended)))
