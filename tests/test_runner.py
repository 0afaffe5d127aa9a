"""Tests for the pipeline runner with the media layer faked out."""
import json
from unittest.mock import AsyncMock, patch

import pytest

from autoreel.pipeline.audio_events import AudioEvents, AudioKind, SilenceInterval
from autoreel.pipeline.config import PipelineConfig
from autoreel.pipeline.frame_scores import FrameScore, VideoOpenError
from autoreel.pipeline.runner import PipelineError, run_highlight_pipeline, write_picks_json
from autoreel.utils.ffmpeg import VideoInfo

FPS = 30.0


def burst_scores(bursts, samples=600, frame_skip=5):
    """Zero scores with short high bursts: {sample_number: score}."""
    return [
        FrameScore(index=k * frame_skip, score=bursts.get(k, 0.0))
        for k in range(1, samples + 1)
    ]


def two_cut_stream():
    """Cuts at 40s (score 0.9) and 70s (score 0.6) over a 100s video."""
    bursts = {k: 0.9 for k in (238, 239, 240)}
    bursts.update({k: 0.6 for k in (418, 419, 420)})
    return burst_scores(bursts)


def make_sampler_class(scores, open_error=None):
    class FakeSampler:
        def __init__(self, video_path, config=None, extractor=None):
            self.fps = FPS
            self.duration = 100.0
            self.frames_reached = 0

        def __enter__(self):
            if open_error is not None:
                raise open_error
            return self

        def __exit__(self, exc_type, exc, tb):
            return False

        def iter_scores(self):
            for fs in scores:
                self.frames_reached = fs.index
                yield fs

    return FakeSampler


class RecordingAssembler:
    def __init__(self):
        self.calls = []

    async def assemble(self, source_path, ranges, video_info, output_path):
        self.calls.append((source_path, list(ranges), output_path))
        return output_path


@pytest.fixture
def video_info():
    return VideoInfo(
        duration=100.0, width=1280, height=720, fps=FPS,
        video_codec="h264", audio_codec="aac", format_name="mp4", bit_rate=None,
    )


@pytest.fixture
def media(video_info):
    """Patch probing and audio measurement; yields the audio mock."""
    with patch("autoreel.pipeline.runner.get_video_info", new=AsyncMock(return_value=video_info)), \
         patch("autoreel.pipeline.runner.extract_audio_events", new=AsyncMock(return_value=AudioEvents())) as audio:
        yield audio


class TestRunHighlightPipeline:
    """Tests for the full run."""

    @pytest.mark.asyncio
    async def test_picks_reach_assembler(self, media, tmp_path):
        assembler = RecordingAssembler()
        output = tmp_path / "highlights.mp4"

        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline(
                "match.mp4", tmp_path, output_path=output, assembler=assembler,
            )

        assert [(s.start, s.end) for s in result.raw_scenes] == [(0.0, 40.0), (40.0, 70.0), (70.0, 100.0)]
        assert len(assembler.calls) == 1
        _, ranges, out = assembler.calls[0]
        assert ranges == [(40.0, 30.0)]
        assert out == output
        assert result.output_path == output
        assert result.total_duration <= result.scoring.budget

    @pytest.mark.asyncio
    async def test_writes_debug_json(self, media, tmp_path):
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            await run_highlight_pipeline("match.mp4", tmp_path)

        debug_file = tmp_path / "debug" / "highlight_debug.json"
        assert debug_file.exists()
        data = json.loads(debug_file.read_text())
        assert data["statistics"]["pick_count"] == 1

    @pytest.mark.asyncio
    async def test_no_output_skips_assembly(self, media, tmp_path):
        assembler = RecordingAssembler()
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path, assembler=assembler)

        assert assembler.calls == []
        assert result.output_path is None

    @pytest.mark.asyncio
    async def test_audio_segments_used(self, video_info, tmp_path):
        events = AudioEvents(silences=[SilenceInterval(10.0, 12.0, 2.0), SilenceInterval(15.0, 16.0, 1.0)])
        with patch("autoreel.pipeline.runner.get_video_info", new=AsyncMock(return_value=video_info)), \
             patch("autoreel.pipeline.runner.extract_audio_events", new=AsyncMock(return_value=events)), \
             patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path)

        assert result.audio_segments[0].kind == AudioKind.SPEECH
        assert result.scoring.fused_scenes[0].audio_score != pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_progress_reported(self, media, tmp_path):
        progress = AsyncMock()
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            await run_highlight_pipeline("match.mp4", tmp_path, progress_callback=progress)

        percents = [call.args[0] for call in progress.call_args_list]
        assert percents[0] == 0
        assert percents[-1] == 100

    @pytest.mark.asyncio
    async def test_open_failure_propagates(self, media, tmp_path):
        sampler = make_sampler_class([], open_error=VideoOpenError("Cannot open video"))
        with patch("autoreel.pipeline.runner.FrameSampler", sampler):
            with pytest.raises(VideoOpenError):
                await run_highlight_pipeline("broken.mp4", tmp_path)

    @pytest.mark.asyncio
    async def test_nothing_fits_raises_before_assembly(self, media, tmp_path):
        # No cuts: the single 100s scene exceeds the 30s budget
        assembler = RecordingAssembler()
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(burst_scores({}))):
            with pytest.raises(PipelineError):
                await run_highlight_pipeline(
                    "flat.mp4", tmp_path, output_path=tmp_path / "out.mp4", assembler=assembler,
                )

        assert assembler.calls == []

    @pytest.mark.asyncio
    async def test_threshold_override(self, media, tmp_path):
        # 0.9 bursts still cut at 0.85, 0.6 bursts no longer do
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline(
                "match.mp4", tmp_path, config=PipelineConfig(budget_ratio=0.7), threshold=0.85,
            )

        assert [(s.start, s.end) for s in result.raw_scenes] == [(0.0, 40.0), (40.0, 100.0)]


class FixedSignal:
    name = "fixed"

    def __init__(self, value):
        self.value = value
        self.windows = []

    def __call__(self, video_source, window):
        self.windows.append(window)
        return self.value


class TestSceneSignals:
    """Tests for folding per-scene signals into the run."""

    @pytest.mark.asyncio
    async def test_signal_moves_picked_video_score(self, media, tmp_path):
        signal = FixedSignal(1.0)
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path, signals=[signal])

        # 0.5 * 0.6 + 0.5 * 1.0
        assert [(p.start, p.end) for p in result.picks] == [(40.0, 70.0)]
        assert result.picks[0].video_score == pytest.approx(0.8)
        assert signal.windows == [(0.0, 40.0), (40.0, 70.0), (70.0, 100.0)]

    @pytest.mark.asyncio
    async def test_raw_scenes_keep_scan_scores(self, media, tmp_path):
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path, signals=[FixedSignal(1.0)])

        assert [s.video_score for s in result.raw_scenes] == pytest.approx([0.9, 0.6, 0.0])

    @pytest.mark.asyncio
    async def test_no_signals_leaves_scores(self, media, tmp_path):
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path)

        assert result.picks[0].video_score == pytest.approx(0.6)


class TestWritePicksJson:

    @pytest.mark.asyncio
    async def test_summary(self, media, tmp_path):
        with patch("autoreel.pipeline.runner.FrameSampler", make_sampler_class(two_cut_stream())):
            result = await run_highlight_pipeline("match.mp4", tmp_path)

        path = write_picks_json(result, tmp_path / "highlights.json", "match.mp4")
        data = json.loads(path.read_text())

        assert data["pick_count"] == 1
        assert data["picks"][0]["start_time"] == 40.0
        assert data["budget"] == pytest.approx(30.0)
