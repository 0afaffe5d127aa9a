"""Tests for per-frame visual scoring."""
import cv2
import numpy as np
import pytest

from autoreel.pipeline.config import PipelineConfig
from autoreel.pipeline.cuts import detect_scenes
from autoreel.pipeline.frame_scores import (
    FeatureExtractionError,
    FrameSampler,
    VideoOpenError,
    combine_frame_score,
    histogram_distance,
    mean_flow_magnitude,
    prepare_frame,
    read_window_frames,
)


# =============================================================================
# Fakes
# =============================================================================

class FakeCapture:
    """Stands in for cv2.VideoCapture over an in-memory frame list."""

    def __init__(self, frames, fps=30.0, opened=True):
        self.frames = list(frames)
        self.fps = fps
        self.opened = opened
        self.position = 0
        self.released = False
        self.seeks = []

    def isOpened(self):
        return self.opened

    def read(self):
        if self.position >= len(self.frames):
            return False, None
        frame = self.frames[self.position]
        self.position += 1
        return True, frame

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self.fps
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return len(self.frames)
        return 0.0

    def set(self, prop, value):
        self.seeks.append((prop, value))
        if prop == cv2.CAP_PROP_POS_MSEC:
            self.position = min(len(self.frames), int(value / 1000.0 * self.fps))
        return True

    def release(self):
        self.released = True


class StillExtractor:
    """Extractor reporting no motion and identical histograms."""

    def __init__(self):
        self.calls = 0

    def motion_field(self, prev_gray, curr_gray):
        self.calls += 1
        return np.zeros(prev_gray.shape + (2,), dtype=np.float32)

    def luma_histograms(self, prev_gray, curr_gray):
        hist = np.ones((16, 1), dtype=np.float32)
        return hist, hist.copy()


class BrokenExtractor(StillExtractor):
    def motion_field(self, prev_gray, curr_gray):
        raise cv2.error("incompatible frame buffers")


class ValueErrorExtractor(StillExtractor):
    def motion_field(self, prev_gray, curr_gray):
        raise ValueError("incompatible frame buffers")


class MalformedFlowExtractor(StillExtractor):
    """Returns a single-channel field, so there is no dy component."""

    def motion_field(self, prev_gray, curr_gray):
        return np.zeros(prev_gray.shape + (1,), dtype=np.float32)


def make_frames(count, height=72, width=128, value=0):
    return [np.full((height, width, 3), value, dtype=np.uint8) for _ in range(count)]


@pytest.fixture
def small_config():
    return PipelineConfig(frame_skip=5, processing_width=32, processing_height=18)


# =============================================================================
# Score Helpers
# =============================================================================

class TestScoreHelpers:
    """Tests for the score reduction helpers."""

    def test_mean_flow_magnitude(self):
        flow = np.zeros((4, 4, 2), dtype=np.float32)
        flow[..., 0] = 3.0
        flow[..., 1] = 4.0
        assert mean_flow_magnitude(flow) == pytest.approx(5.0)

    def test_mean_flow_magnitude_empty(self):
        assert mean_flow_magnitude(np.zeros((0, 0, 2))) == 0.0

    def test_histogram_distance_identical(self):
        hist = np.linspace(1, 10, 32, dtype=np.float32).reshape(-1, 1)
        assert histogram_distance(hist, hist.copy()) == pytest.approx(0.0, abs=1e-4)

    def test_histogram_distance_disjoint(self):
        black = np.zeros((256, 1), dtype=np.float32)
        white = np.zeros((256, 1), dtype=np.float32)
        black[0] = 1.0
        white[255] = 1.0
        assert histogram_distance(black, white) == pytest.approx(1.0, abs=1e-4)

    def test_combine_no_change(self):
        assert combine_frame_score(0.0, 0.0) == 0.0

    def test_combine_weights(self):
        # 7.5 / 15 = 0.5 motion
        assert combine_frame_score(7.5, 0.5) == pytest.approx(0.6 * 0.5 + 0.4 * 0.5)

    def test_combine_motion_saturates(self):
        assert combine_frame_score(100.0, 1.0) == pytest.approx(1.0)

    def test_prepare_frame(self, small_config):
        gray = prepare_frame(make_frames(1)[0], small_config)
        assert gray.shape == (18, 32)
        assert gray.ndim == 2


# =============================================================================
# Frame Sampler
# =============================================================================

class TestFrameSampler:
    """Tests for stride sampling over a capture."""

    def test_yields_every_fifth_frame(self, small_config):
        cap = FakeCapture(make_frames(23))
        extractor = StillExtractor()
        sampler = FrameSampler("clip.mp4", small_config, extractor, capture_factory=lambda _: cap)

        with sampler:
            scores = list(sampler.iter_scores())

        assert [s.index for s in scores] == [5, 10, 15, 20]
        assert all(s.score == pytest.approx(0.0, abs=1e-4) for s in scores)
        assert sampler.frames_reached == 22
        assert extractor.calls == 4
        assert cap.released

    def test_reads_fps_and_duration(self, small_config):
        cap = FakeCapture(make_frames(60), fps=30.0)
        sampler = FrameSampler("clip.mp4", small_config, StillExtractor(), capture_factory=lambda _: cap)

        with sampler:
            assert sampler.fps == 30.0
            assert sampler.frame_count == 60
            assert sampler.duration == pytest.approx(2.0)

    def test_unopened_capture(self, small_config):
        cap = FakeCapture([], opened=False)
        sampler = FrameSampler("missing.mp4", small_config, StillExtractor(), capture_factory=lambda _: cap)

        with pytest.raises(VideoOpenError):
            sampler.open()

    def test_empty_first_frame(self, small_config):
        cap = FakeCapture([])
        sampler = FrameSampler("empty.mp4", small_config, StillExtractor(), capture_factory=lambda _: cap)

        with pytest.raises(VideoOpenError):
            sampler.open()
        assert cap.released

    def test_zero_fps(self, small_config):
        cap = FakeCapture(make_frames(10), fps=0.0)
        sampler = FrameSampler("odd.mp4", small_config, StillExtractor(), capture_factory=lambda _: cap)

        with pytest.raises(VideoOpenError):
            sampler.open()

    def test_extractor_failure_raises(self, small_config):
        cap = FakeCapture(make_frames(12))
        sampler = FrameSampler("clip.mp4", small_config, BrokenExtractor(), capture_factory=lambda _: cap)

        with sampler:
            with pytest.raises(FeatureExtractionError):
                list(sampler.iter_scores())

    @pytest.mark.parametrize("extractor_cls", [ValueErrorExtractor, MalformedFlowExtractor])
    def test_any_extractor_failure_is_wrapped(self, small_config, extractor_cls):
        cap = FakeCapture(make_frames(12))
        sampler = FrameSampler("clip.mp4", small_config, extractor_cls(), capture_factory=lambda _: cap)

        with sampler:
            with pytest.raises(FeatureExtractionError):
                list(sampler.iter_scores())

    def test_extractor_failure_keeps_trailing_scene(self, small_config):
        cap = FakeCapture(make_frames(60), fps=30.0)
        sampler = FrameSampler("clip.mp4", small_config, ValueErrorExtractor(), capture_factory=lambda _: cap)

        with sampler:
            scenes = detect_scenes(sampler.iter_scores(), sampler.fps, sampler.duration, 0.5, small_config)

        assert [(s.start, s.end) for s in scenes] == [(0.0, pytest.approx(2.0))]

    def test_short_video_yields_nothing(self, small_config):
        cap = FakeCapture(make_frames(4))
        sampler = FrameSampler("clip.mp4", small_config, StillExtractor(), capture_factory=lambda _: cap)

        with sampler:
            assert list(sampler.iter_scores()) == []
            assert sampler.frames_reached == 3


class TestReadWindowFrames:
    """Tests for time-window frame sampling."""

    def test_evenly_spaced_seeks(self):
        cap = FakeCapture(make_frames(300), fps=30.0)
        frames = read_window_frames("clip.mp4", 2.0, 4.0, 4, capture_factory=lambda _: cap)

        assert len(frames) == 4
        times = [value for prop, value in cap.seeks if prop == cv2.CAP_PROP_POS_MSEC]
        assert times == pytest.approx([2000.0, 2500.0, 3000.0, 3500.0])
        assert cap.released

    def test_skips_undecodable_frames(self):
        cap = FakeCapture(make_frames(30), fps=30.0)
        frames = read_window_frames("clip.mp4", 0.0, 2.0, 4, capture_factory=lambda _: cap)

        # Seeks past the last frame (t >= 1s) decode nothing
        assert len(frames) == 2

    def test_unopened(self):
        with pytest.raises(VideoOpenError):
            read_window_frames("x.mp4", 0.0, 1.0, 3, capture_factory=lambda _: FakeCapture([], opened=False))
