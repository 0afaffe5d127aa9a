"""Highlight pipeline runner.

Orchestrates the full scoring and selection pipeline for one video.
Stages run strictly one after another.
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from autoreel.utils.ffmpeg import VideoInfo, extract_audio_events, get_video_info

from .assembly import FFmpegAssembler, MediaAssembler
from .audio_events import AudioSegment, classify_audio_events
from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG
from .cuts import Scene, detect_scenes
from .debug_artifacts import write_debug_json, write_debug_plot
from .frame_scores import FrameFeatureExtractor, FrameSampler
from .fusion import fuse_scores
from .merge import merge_and_normalize
from .selection import SelectionDecision, compute_budget, picks_to_ranges, select_picks
from .signals import ScoreSignal, apply_signals

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """The pipeline produced nothing usable (no scenes or no picks)."""
    pass


@dataclass
class ScoringResult:
    """Output of the scoring and selection stages."""
    fused_scenes: List[Scene]
    merged_scenes: List[Scene]
    picks: List[Scene]
    decisions: List[SelectionDecision]
    budget: float


@dataclass
class HighlightResult:
    """Result from a full pipeline run."""
    picks: List[Scene]
    raw_scenes: List[Scene]
    audio_segments: List[AudioSegment]
    scoring: ScoringResult
    video_info: VideoInfo
    config: PipelineConfig
    output_path: Optional[Path] = None

    @property
    def total_duration(self) -> float:
        return sum(p.duration for p in self.picks)

    def to_clip_list(self) -> List[dict]:
        """Convert picks to a list of clip dictionaries."""
        return [
            {
                "start_time": pick.start,
                "end_time": pick.end,
                "duration": pick.duration,
                "video_score": pick.video_score,
                "audio_score": pick.audio_score,
                "combined_score": pick.combined_score,
            }
            for pick in self.picks
        ]


def score_and_select(
    scenes: List[Scene],
    audio_segments: List[AudioSegment],
    total_duration: float,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> ScoringResult:
    """
    Fuse, merge, normalize and select.

    Raises:
        PipelineError: If no scenes are given or nothing fits the budget
    """
    if not scenes:
        raise PipelineError("No scenes detected")

    fused = fuse_scores(scenes, audio_segments, config)
    normalized = merge_and_normalize(fused, config)

    budget = compute_budget(total_duration, config.budget_ratio)
    picks, decisions = select_picks(normalized, budget, config)

    if not picks:
        raise PipelineError(f"No scenes fit the {budget:.1f}s budget")

    return ScoringResult(
        fused_scenes=fused,
        merged_scenes=normalized,
        picks=picks,
        decisions=decisions,
        budget=budget,
    )


async def run_highlight_pipeline(
    video_path: str | Path,
    work_dir: Path,
    output_path: Optional[Path] = None,
    config: Optional[PipelineConfig] = None,
    threshold: Optional[float] = None,
    assembler: Optional[MediaAssembler] = None,
    extractor: Optional[FrameFeatureExtractor] = None,
    signals: Sequence[ScoreSignal] = (),
    progress_callback: Optional[Callable[[float, str], Awaitable[None]]] = None,
) -> HighlightResult:
    """
    Run the full highlight pipeline.

    Args:
        video_path: Path to a local video file
        work_dir: Directory for debug output and intermediate clips
        output_path: Where to write the assembled video (skipped if None)
        config: Pipeline configuration (uses defaults if not provided)
        threshold: Cut threshold override
        assembler: Media assembler (ffmpeg by default)
        extractor: Frame feature extractor (OpenCV by default)
        signals: Optional per-scene signals folded into each scene's video
            score before fusion
        progress_callback: Optional async callback for progress updates

    Returns:
        HighlightResult with picks and intermediate stages

    Raises:
        VideoOpenError: If the source cannot be opened
        PipelineError: If no scenes or no picks are produced
        FFmpegError: If probing or assembly fails
    """
    video_path = Path(video_path)
    config = config or DEFAULT_PIPELINE_CONFIG
    threshold = config.cut_threshold if threshold is None else threshold

    logger.info(f"Running highlight pipeline on {video_path}")

    async def report_progress(pct: float, msg: str):
        if progress_callback:
            await progress_callback(pct, msg)
        logger.info(f"[{pct:.0f}%] {msg}")

    # Stage 1: Probe
    await report_progress(0, "Probing video...")
    video_info = await get_video_info(video_path)

    # Stage 2: Cut detection
    await report_progress(5, "Scanning for scene cuts...")
    with FrameSampler(video_path, config, extractor) as sampler:
        duration = video_info.duration or sampler.duration
        scenes = detect_scenes(sampler.iter_scores(), sampler.fps, duration, threshold, config)
        frames_reached = sampler.frames_reached
    await report_progress(50, f"Found {len(scenes)} scenes ({frames_reached} frames scanned)")

    if not scenes:
        logger.error("Cut detection produced no scenes")
        raise PipelineError("No scenes detected")

    # Stage 3: Audio classification
    await report_progress(55, "Measuring audio events...")
    events = await extract_audio_events(video_path, duration)
    audio_segments = classify_audio_events(events, config)
    await report_progress(65, f"Classified {len(audio_segments)} audio segments")

    scored_scenes = scenes
    if signals:
        await report_progress(67, f"Applying {len(signals)} scene signals...")
        scored_scenes = [apply_signals(scene, video_path, signals) for scene in scenes]

    # Stage 4: Fusion, merge, selection
    await report_progress(70, "Scoring and selecting scenes...")
    scoring = score_and_select(scored_scenes, audio_segments, duration, config)
    await report_progress(
        80, f"Selected {len(scoring.picks)} picks within a {scoring.budget:.1f}s budget"
    )

    work_dir = Path(work_dir)
    debug_dir = work_dir / "debug"

    if config.write_debug_json:
        write_debug_json(
            debug_dir / "highlight_debug.json", config, video_info.to_dict(),
            scenes, audio_segments, scoring.fused_scenes, scoring.merged_scenes,
            scoring.decisions, scoring.picks, scoring.budget,
        )

    if config.write_debug_plot:
        write_debug_plot(
            debug_dir / "highlight_timeline.png", duration,
            scoring.merged_scenes, audio_segments, scoring.picks,
        )

    result = HighlightResult(
        picks=scoring.picks,
        raw_scenes=scenes,
        audio_segments=audio_segments,
        scoring=scoring,
        video_info=video_info,
        config=config,
    )

    # Stage 5: Assembly
    if output_path is not None:
        await report_progress(85, "Assembling highlights...")
        assembler = assembler or FFmpegAssembler(clips_dir=work_dir / "clips")
        result.output_path = await assembler.assemble(
            video_path, picks_to_ranges(scoring.picks), video_info, Path(output_path)
        )

    await report_progress(100, "Highlight pipeline complete")
    return result


def write_picks_json(result: HighlightResult, output_file: Path, source: str) -> Path:
    """Write the picks summary for a run."""
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, 'w') as f:
        json.dump({
            "source": source,
            "duration": result.video_info.duration,
            "scene_count": len(result.raw_scenes),
            "pick_count": len(result.picks),
            "picked_duration": result.total_duration,
            "budget": result.scoring.budget,
            "picks": result.to_clip_list(),
        }, f, indent=2)
    return output_file
