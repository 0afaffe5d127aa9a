"""Media assembly for selected picks.

The assembler trims one clip per pick and concatenates them in order.
Completion is signalled by each ffmpeg process exiting, followed by a
bounded poll for the written artifacts.
"""
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from autoreel.utils.ffmpeg import (
    VideoInfo,
    concat_clips,
    export_clip,
    wait_for_artifacts,
)

logger = logging.getLogger(__name__)


class MediaAssembler(Protocol):
    """Turns ordered (start_time, duration) ranges into a single video."""

    async def assemble(
        self,
        source_path: Path,
        ranges: Sequence[Tuple[float, float]],
        video_info: VideoInfo,
        output_path: Path,
    ) -> Path:
        ...


class FFmpegAssembler:
    """Assembler that exports clips with ffmpeg and joins them with the concat demuxer."""

    def __init__(self, clips_dir: Optional[Path] = None, keep_clips: bool = False):
        self.clips_dir = clips_dir
        self.keep_clips = keep_clips

    async def assemble(self, source_path, ranges, video_info, output_path):
        if not ranges:
            raise ValueError("No ranges to assemble")

        output_path = Path(output_path)
        clips_dir = self.clips_dir or output_path.parent / f"{output_path.stem}_clips"
        clips_dir.mkdir(parents=True, exist_ok=True)
        suffix = output_path.suffix or ".mp4"

        clip_paths: List[Path] = []
        for i, (start, duration) in enumerate(ranges):
            clip_path = clips_dir / f"clip_{i:03d}{suffix}"
            logger.info(f"Exporting clip {i + 1}/{len(ranges)}: {start:.2f}s +{duration:.2f}s")
            await export_clip(source_path, clip_path, start, duration, video_info)
            clip_paths.append(clip_path)

        await wait_for_artifacts(clip_paths)

        if len(clip_paths) == 1:
            clip_paths[0].replace(output_path)
        else:
            await concat_clips(clip_paths, output_path)

        await wait_for_artifacts([output_path])

        if not self.keep_clips:
            for clip in clip_paths:
                clip.unlink(missing_ok=True)

        logger.info(f"Assembled {len(clip_paths)} clips into {output_path}")
        return output_path
