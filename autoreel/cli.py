"""
CLI to build a highlights reel from a local video or a remote URL.

Usage:
    autoreel <video_or_url> [--output <path>] [--work-dir <dir>]

Example:
    autoreel ~/Videos/match.mp4 --output ./match_highlights.mp4
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from autoreel.config import settings
from autoreel.pipeline.config import PipelineConfig
from autoreel.pipeline.frame_scores import VideoOpenError
from autoreel.pipeline.runner import PipelineError, run_highlight_pipeline, write_picks_json
from autoreel.pipeline.signals import (
    ColorDynamicsSignal,
    EmotionIntensitySignal,
    MotionTrajectorySignal,
    ScoreSignal,
)
from autoreel.utils.ffmpeg import FFmpegError, check_ffmpeg_available, check_ffprobe_available
from autoreel.utils.ytdlp import YtdlpError, check_ytdlp_available, download_video, is_remote_reference

logger = logging.getLogger(__name__)

SIGNALS = {
    "emotion": EmotionIntensitySignal,
    "motion": MotionTrajectorySignal,
    "color": ColorDynamicsSignal,
}


async def build_highlights(
    source: str,
    work_dir: Path,
    output_path: Optional[Path],
    config: PipelineConfig,
    threshold: Optional[float] = None,
    signals: Sequence[ScoreSignal] = (),
):
    """
    Resolve the source, run the pipeline and write the picks summary.

    Args:
        source: Local video path or remote URL
        work_dir: Directory for picks, debug files and intermediate clips
        output_path: Where to write the assembled video (None to skip assembly)
        config: Pipeline configuration
        threshold: Optional cut threshold override
        signals: Optional per-scene signals folded into video scores
    """
    work_dir.mkdir(parents=True, exist_ok=True)

    if is_remote_reference(source):
        logger.info(f"Resolving remote source: {source}")
        video_path = await download_video(source, settings.downloads_dir)
    else:
        video_path = Path(source)
        if not video_path.exists():
            raise FileNotFoundError(f"Video not found: {video_path}")

    async def progress_callback(pct, msg):
        logger.debug(f"[{pct:.0f}%] {msg}")

    result = await run_highlight_pipeline(
        video_path=video_path,
        work_dir=work_dir,
        output_path=output_path,
        config=config,
        threshold=threshold,
        signals=signals,
        progress_callback=progress_callback,
    )

    picks_file = write_picks_json(result, work_dir / "highlights.json", source)
    logger.info(f"Picks written to: {picks_file}")

    for i, pick in enumerate(result.picks):
        logger.info(
            f"  {i+1}. {pick.start:.1f}s - {pick.end:.1f}s "
            f"(score: {pick.combined_score:.3f})"
        )
    logger.info(
        f"Selected {len(result.picks)} picks, {result.total_duration:.1f}s "
        f"of {result.scoring.budget:.1f}s budget"
    )
    if result.output_path:
        logger.info(f"Highlights video: {result.output_path}")

    return result


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Build a budgeted highlights reel from a video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Local file, assembled next to the work directory
    autoreel match.mp4 --output match_highlights.mp4

    # Remote video, picks only
    autoreel https://www.youtube.com/watch?v=... --no-assemble
        """
    )

    parser.add_argument("source", help="Path to a video file or a video URL")
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Output video path (default: <work-dir>/highlights.mp4)"
    )
    parser.add_argument(
        "--work-dir", "-w",
        type=Path,
        default=Path("./autoreel_output"),
        help="Directory for picks, debug files and clips"
    )
    parser.add_argument("--threshold", type=float, default=None, help="Cut threshold (default: 0.5)")
    parser.add_argument("--budget-ratio", type=float, default=None, help="Budget as a fraction of duration")
    parser.add_argument("--no-assemble", action="store_true", help="Only write the picks, skip ffmpeg assembly")
    parser.add_argument(
        "--signal",
        action="append",
        choices=sorted(SIGNALS),
        help="Fold a per-scene signal into video scores (repeatable)"
    )
    parser.add_argument("--debug-plot", action="store_true", help="Write a timeline plot (needs matplotlib)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if (args.verbose or settings.debug) else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    if not (check_ffmpeg_available() and check_ffprobe_available()):
        logger.warning(f"ffmpeg/ffprobe not found ({settings.ffmpeg_path}, {settings.ffprobe_path})")
    if is_remote_reference(args.source) and not check_ytdlp_available():
        logger.warning(f"yt-dlp not found ({settings.ytdlp_path})")

    config = PipelineConfig(write_debug_plot=args.debug_plot)
    if args.budget_ratio is not None:
        config = replace(config, budget_ratio=args.budget_ratio)

    output_path = None
    if not args.no_assemble:
        output_path = args.output or args.work_dir / "highlights.mp4"

    try:
        asyncio.run(build_highlights(
            source=args.source,
            work_dir=args.work_dir,
            output_path=output_path,
            config=config,
            threshold=args.threshold,
            signals=[SIGNALS[name](config) for name in args.signal or ()],
        ))
    except (FileNotFoundError, VideoOpenError, PipelineError, FFmpegError, YtdlpError) as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
