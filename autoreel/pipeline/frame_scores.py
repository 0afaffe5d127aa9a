"""Per-frame visual dissimilarity scoring.

Drives the frame feature extractor across frames sampled at a fixed stride
and reduces its raw outputs (dense motion field, luma histograms) to a
single score per sampled frame pair.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Protocol, Tuple

import cv2
import numpy as np

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG

logger = logging.getLogger(__name__)


class VideoOpenError(Exception):
    """Source video cannot be opened or has an empty first frame."""
    pass


class FeatureExtractionError(Exception):
    """The frame feature extractor failed on a frame pair."""
    pass


@dataclass
class FrameScore:
    """Visual dissimilarity between a sampled frame and the previous one."""
    index: int
    score: float


class FrameFeatureExtractor(Protocol):
    """Capability that turns decoded frames into raw visual features."""

    def motion_field(self, prev_gray: np.ndarray, curr_gray: np.ndarray) -> np.ndarray:
        ...

    def luma_histograms(
        self, prev_gray: np.ndarray, curr_gray: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        ...

    def detect_faces(self, frame: np.ndarray) -> List[Tuple[int, int, int, int]]:
        ...

    def track_features(self, gray: np.ndarray) -> Optional[np.ndarray]:
        ...

    def track_points(
        self, prev_gray: np.ndarray, curr_gray: np.ndarray, points: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        ...


class OpenCVFeatureExtractor:
    """Frame feature extractor backed by OpenCV."""

    def __init__(self, histogram_bins: int = 256, max_features: int = 100):
        self.histogram_bins = histogram_bins
        self.max_features = max_features
        self._face_cascade = None

    def motion_field(self, prev_gray, curr_gray):
        return cv2.calcOpticalFlowFarneback(
            prev_gray, curr_gray, None, 0.5, 3, 15, 3, 5, 1.2, 0
        )

    def luma_histograms(self, prev_gray, curr_gray):
        bins = self.histogram_bins
        hist_prev = cv2.calcHist([prev_gray], [0], None, [bins], [0, 256])
        hist_curr = cv2.calcHist([curr_gray], [0], None, [bins], [0, 256])
        cv2.normalize(hist_prev, hist_prev)
        cv2.normalize(hist_curr, hist_curr)
        return hist_prev, hist_curr

    def detect_faces(self, frame):
        if self._face_cascade is None:
            self._face_cascade = cv2.CascadeClassifier(
                cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
            )
        gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        faces = self._face_cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5)
        return [tuple(int(v) for v in face) for face in faces]

    def track_features(self, gray):
        return cv2.goodFeaturesToTrack(
            gray, maxCorners=self.max_features, qualityLevel=0.01, minDistance=7
        )

    def track_points(self, prev_gray, curr_gray, points):
        new_points, status, _ = cv2.calcOpticalFlowPyrLK(prev_gray, curr_gray, points, None)
        return new_points, status


def mean_flow_magnitude(flow: np.ndarray) -> float:
    """Average per-pixel magnitude of a dense (dx, dy) motion field."""
    if flow is None or flow.size == 0:
        return 0.0
    return float(np.mean(np.sqrt(flow[..., 0] ** 2 + flow[..., 1] ** 2)))


def histogram_distance(hist_a: np.ndarray, hist_b: np.ndarray) -> float:
    """Bhattacharyya distance between two histograms, clamped to [0, 1]."""
    distance = cv2.compareHist(
        hist_a.astype(np.float32),
        hist_b.astype(np.float32),
        cv2.HISTCMP_BHATTACHARYYA,
    )
    return float(min(1.0, max(0.0, distance)))


def combine_frame_score(
    flow_magnitude: float,
    hist_distance: float,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> float:
    """Blend normalized motion and histogram distance into one score."""
    motion = min(1.0, max(0.0, flow_magnitude / config.flow_norm_factor))
    return config.motion_weight * motion + (1 - config.motion_weight) * hist_distance


def prepare_frame(frame: np.ndarray, config: PipelineConfig = DEFAULT_PIPELINE_CONFIG) -> np.ndarray:
    """Downsample to the processing resolution and convert to grayscale."""
    resized = cv2.resize(frame, (config.processing_width, config.processing_height))
    if resized.ndim == 3:
        return cv2.cvtColor(resized, cv2.COLOR_BGR2GRAY)
    return resized


class FrameSampler:
    """
    Scores sampled frame pairs across a whole video.

    Usage:
        with FrameSampler(path, config) as sampler:
            for frame_score in sampler.iter_scores():
                ...
    """

    def __init__(
        self,
        video_path: str | Path,
        config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
        extractor: Optional[FrameFeatureExtractor] = None,
        capture_factory: Callable = cv2.VideoCapture,
    ):
        self.video_path = Path(video_path)
        self.config = config
        self.extractor = extractor or OpenCVFeatureExtractor(config.histogram_bins)
        self._capture_factory = capture_factory
        self._cap = None
        self._first_frame: Optional[np.ndarray] = None
        self.fps: float = 0.0
        self.frame_count: int = 0
        self.frames_reached: int = 0

    @property
    def duration(self) -> float:
        if self.fps <= 0:
            return 0.0
        return self.frame_count / self.fps

    def open(self) -> "FrameSampler":
        """
        Open the source and read its first frame.

        Raises:
            VideoOpenError: If the video cannot be opened or the first frame is empty
        """
        cap = self._capture_factory(str(self.video_path))
        if not cap.isOpened():
            raise VideoOpenError(f"Cannot open video: {self.video_path}")

        ret, frame = cap.read()
        if not ret or frame is None or frame.size == 0:
            cap.release()
            raise VideoOpenError(f"First frame is empty: {self.video_path}")

        self._cap = cap
        self._first_frame = frame
        self.fps = cap.get(cv2.CAP_PROP_FPS)
        self.frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self.frames_reached = 0

        if self.fps <= 0:
            cap.release()
            self._cap = None
            raise VideoOpenError(f"Invalid frame rate ({self.fps}) for {self.video_path}")

        return self

    def close(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def score_pair(self, prev_gray: np.ndarray, curr_gray: np.ndarray) -> float:
        """Score one pair of prepared frames."""
        flow = self.extractor.motion_field(prev_gray, curr_gray)
        hist_prev, hist_curr = self.extractor.luma_histograms(prev_gray, curr_gray)
        return combine_frame_score(
            mean_flow_magnitude(flow),
            histogram_distance(hist_prev, hist_curr),
            self.config,
        )

    def iter_scores(self) -> Iterator[FrameScore]:
        """
        Yield a FrameScore for every frame_skip-th frame.

        A frame that fails to decode ends the stream; frames_reached records
        the last decoded frame index.

        Raises:
            FeatureExtractionError: If preparing or scoring a frame pair fails
                for any reason (OpenCV errors, extractor errors, malformed
                extractor output)
        """
        if self._cap is None:
            self.open()

        cap = self._cap
        skip = self.config.frame_skip
        prev = prepare_frame(self._first_frame, self.config)
        index = 0

        while True:
            frame = None
            for _ in range(skip):
                ret, frame = cap.read()
                if not ret or frame is None:
                    frame = None
                    break
                index += 1
            self.frames_reached = index

            if frame is None:
                logger.debug(f"Frame stream ended at frame {index}")
                return

            try:
                curr = prepare_frame(frame, self.config)
                score = self.score_pair(prev, curr)
            except FeatureExtractionError:
                raise
            except Exception as e:
                # Any failure on a pair ends the scan
                raise FeatureExtractionError(f"Feature extraction failed at frame {index}: {e}") from e

            yield FrameScore(index=index, score=score)
            prev = curr


def read_window_frames(
    video_path: str | Path,
    start_sec: float,
    end_sec: float,
    count: int,
    capture_factory: Callable = cv2.VideoCapture,
) -> List[np.ndarray]:
    """
    Read up to `count` evenly spaced frames from a time window.

    Frames that fail to decode are skipped.
    """
    cap = capture_factory(str(video_path))
    if not cap.isOpened():
        raise VideoOpenError(f"Cannot open video: {video_path}")

    frames = []
    try:
        for t in np.linspace(start_sec, end_sec, num=max(1, count), endpoint=False):
            cap.set(cv2.CAP_PROP_POS_MSEC, float(t) * 1000.0)
            ret, frame = cap.read()
            if ret and frame is not None:
                frames.append(frame)
    finally:
        cap.release()

    return frames
