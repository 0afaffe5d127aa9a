"""FFmpeg and ffprobe utilities."""
import asyncio
import json
import logging
import math
import re
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from autoreel.config import settings
from autoreel.pipeline.audio_events import AudioEvents, LoudnessSample, SilenceInterval

logger = logging.getLogger(__name__)


@dataclass
class VideoInfo:
    """Video metadata container."""
    duration: float
    width: int
    height: int
    fps: float
    video_codec: str
    audio_codec: Optional[str]
    format_name: str
    bit_rate: Optional[int]

    def to_dict(self) -> dict:
        return {
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "format_name": self.format_name,
            "bit_rate": self.bit_rate,
        }


class FFmpegError(Exception):
    """FFmpeg related error."""
    pass


# Source codec -> encoder that keeps the output in the same family
ENCODER_FOR_CODEC = {
    "h264": "libx264",
    "hevc": "libx265",
    "vp9": "libvpx-vp9",
    "av1": "libaom-av1",
}

_SILENCE_START_RE = re.compile(r"silence_start:\s*(-?\d+(?:\.\d+)?)")
_SILENCE_END_RE = re.compile(
    r"silence_end:\s*(-?\d+(?:\.\d+)?)\s*\|\s*silence_duration:\s*(-?\d+(?:\.\d+)?)"
)
_EBUR128_RE = re.compile(r"\bt:\s*(\d+(?:\.\d+)?)\s.*?\bM:\s*(-?(?:\d+(?:\.\d+)?|inf|nan))")


def check_ffmpeg_available() -> bool:
    """Check if ffmpeg is available."""
    return shutil.which(settings.ffmpeg_path) is not None


def check_ffprobe_available() -> bool:
    """Check if ffprobe is available."""
    return shutil.which(settings.ffprobe_path) is not None


def parse_frame_rate(fps_str: str) -> float:
    """Parse an ffprobe rate like '30000/1001' or '25'."""
    if "/" in fps_str:
        num, den = fps_str.split("/")
        return float(num) / float(den) if float(den) > 0 else 30.0
    return float(fps_str)


async def get_video_info(video_path: str | Path) -> VideoInfo:
    """
    Get video metadata using ffprobe.

    Args:
        video_path: Path to video file

    Returns:
        VideoInfo with video metadata

    Raises:
        FFmpegError: If ffprobe fails
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FFmpegError(f"Video file not found: {video_path}")

    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(video_path)
    ]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
        stdout, stderr = await proc.communicate()

        if proc.returncode != 0:
            raise FFmpegError(f"ffprobe failed: {stderr.decode()}")

        data = json.loads(stdout.decode())

        video_stream = None
        audio_stream = None
        for stream in data.get("streams", []):
            if stream.get("codec_type") == "video" and video_stream is None:
                video_stream = stream
            elif stream.get("codec_type") == "audio" and audio_stream is None:
                audio_stream = stream

        if not video_stream:
            raise FFmpegError("No video stream found")

        fps = parse_frame_rate(video_stream.get("r_frame_rate", "30/1"))

        duration = float(data.get("format", {}).get("duration", 0))
        if duration == 0:
            duration = float(video_stream.get("duration", 0))

        return VideoInfo(
            duration=duration,
            width=int(video_stream.get("width", 0)),
            height=int(video_stream.get("height", 0)),
            fps=fps,
            video_codec=video_stream.get("codec_name", "unknown"),
            audio_codec=audio_stream.get("codec_name") if audio_stream else None,
            format_name=data.get("format", {}).get("format_name", "unknown"),
            bit_rate=int(data.get("format", {}).get("bit_rate", 0)) or None
        )
    except json.JSONDecodeError as e:
        raise FFmpegError(f"Failed to parse ffprobe output: {e}")
    except Exception as e:
        if isinstance(e, FFmpegError):
            raise
        raise FFmpegError(f"ffprobe error: {e}")


def parse_silencedetect_output(
    lines: Iterable[str],
    duration: Optional[float] = None,
) -> List[SilenceInterval]:
    """
    Parse silence intervals from ffmpeg silencedetect log lines.

    Malformed lines are skipped. A silence still open at the end of the log
    is closed at `duration` when it is known, otherwise dropped.
    """
    silences = []
    pending_start: Optional[float] = None

    for line in lines:
        if "silence_start" in line:
            match = _SILENCE_START_RE.search(line)
            if not match:
                logger.debug(f"Skipping malformed silence line: {line.strip()}")
                continue
            pending_start = max(0.0, float(match.group(1)))

        elif "silence_end" in line:
            match = _SILENCE_END_RE.search(line)
            if not match:
                logger.debug(f"Skipping malformed silence line: {line.strip()}")
                continue
            end = float(match.group(1))
            silence_duration = float(match.group(2))
            start = pending_start if pending_start is not None else max(0.0, end - silence_duration)
            pending_start = None
            if end > start:
                silences.append(SilenceInterval(start, end, silence_duration))

    if pending_start is not None:
        if duration is not None and duration > pending_start:
            silences.append(SilenceInterval(pending_start, duration, duration - pending_start))
        else:
            logger.debug(f"Dropping unterminated silence at {pending_start:.2f}s")

    return silences


def parse_ebur128_output(lines: Iterable[str]) -> List[LoudnessSample]:
    """
    Parse the momentary loudness series from ffmpeg ebur128 log lines.

    Lines without a finite (t, M) pair are skipped.
    """
    samples = []
    for line in lines:
        if "Parsed_ebur128" not in line or " t:" not in line:
            continue
        match = _EBUR128_RE.search(line)
        if not match:
            logger.debug(f"Skipping malformed loudness line: {line.strip()}")
            continue
        t = float(match.group(1))
        lufs = float(match.group(2))
        if not math.isfinite(lufs):
            continue
        samples.append(LoudnessSample(t, lufs))
    return samples


async def extract_audio_events(
    video_path: str | Path,
    duration: Optional[float] = None,
    noise_db: Optional[float] = None,
    min_silence: Optional[float] = None,
) -> AudioEvents:
    """
    Measure silences and loudness with a single ffmpeg pass.

    Any ffmpeg failure degrades to empty measurements.
    """
    noise_db = settings.silence_noise_db if noise_db is None else noise_db
    min_silence = settings.silence_min_duration if min_silence is None else min_silence

    cmd = [
        settings.ffmpeg_path,
        "-nostats",
        "-i", str(video_path),
        "-vn",
        "-af", f"silencedetect=noise={noise_db}dB:d={min_silence},ebur128",
        "-f", "null",
        "-"
    ]

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
    except OSError as e:
        logger.warning(f"Audio event extraction could not start: {e}")
        return AudioEvents()

    if proc.returncode != 0:
        logger.warning(f"Audio event extraction failed: {stderr.decode(errors='ignore')[:500]}")
        return AudioEvents()

    lines = stderr.decode("utf-8", errors="ignore").splitlines()
    events = AudioEvents(
        silences=parse_silencedetect_output(lines, duration),
        loudness=parse_ebur128_output(lines),
    )
    logger.info(
        f"Audio events: {len(events.silences)} silences, {len(events.loudness)} loudness samples"
    )
    return events


def _round_even(value: int) -> int:
    return value - (value % 2)


def build_encoding_args(info: VideoInfo) -> List[str]:
    """
    Encoder arguments compatible with the source's codec, frame rate and size.
    """
    encoder = ENCODER_FOR_CODEC.get(info.video_codec, settings.export_video_codec)
    args = ["-c:v", encoder]

    if encoder in ("libx264", "libx265"):
        args += ["-preset", settings.export_video_preset, "-crf", str(settings.export_video_crf)]

    if info.fps > 0:
        args += ["-r", f"{info.fps:.3f}".rstrip("0").rstrip(".")]

    if info.width and info.height and (info.width % 2 or info.height % 2):
        args += ["-vf", f"scale={_round_even(info.width)}:{_round_even(info.height)}"]

    if info.audio_codec:
        args += ["-c:a", settings.export_audio_codec, "-b:a", settings.export_audio_bitrate]
    else:
        args += ["-an"]

    return args


async def _run_ffmpeg(cmd: List[str], error_prefix: str):
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise FFmpegError(f"{error_prefix}: {stderr.decode(errors='ignore')[-1000:]}")


async def export_clip(
    source_path: str | Path,
    output_path: str | Path,
    start_time: float,
    duration: float,
    video_info: VideoInfo,
) -> Path:
    """
    Export one trimmed clip from the source video.

    Returns once the ffmpeg process has exited successfully.
    """
    source_path = Path(source_path)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        settings.ffmpeg_path,
        "-y",
        "-ss", str(start_time),
        "-i", str(source_path),
        "-t", str(duration),
        *build_encoding_args(video_info),
        "-movflags", "+faststart",
        str(output_path)
    ]

    await _run_ffmpeg(cmd, "Export failed")
    return output_path


async def concat_clips(clip_paths: Sequence[Path], output_path: str | Path) -> Path:
    """
    Concatenate clips in order with the concat demuxer.

    The clips must share encoding parameters (export_clip guarantees this).
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    list_path = output_path.parent / f"{output_path.stem}_concat.txt"

    with open(list_path, "w") as f:
        for clip in clip_paths:
            escaped = str(Path(clip).resolve()).replace("'", "'\\''")
            f.write(f"file '{escaped}'\n")

    cmd = [
        settings.ffmpeg_path,
        "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-c", "copy",
        "-movflags", "+faststart",
        str(output_path)
    ]

    try:
        await _run_ffmpeg(cmd, "Concat failed")
    finally:
        list_path.unlink(missing_ok=True)

    return output_path


async def wait_for_artifacts(
    paths: Sequence[Path],
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
) -> None:
    """
    Poll until every path exists with a non-zero size.

    Raises:
        FFmpegError: If an artifact is still missing when the timeout expires
    """
    timeout = settings.artifact_wait_timeout if timeout is None else timeout
    poll_interval = settings.artifact_poll_interval if poll_interval is None else poll_interval
    deadline = time.monotonic() + timeout

    while True:
        missing = [p for p in paths if not (p.exists() and p.stat().st_size > 0)]
        if not missing:
            return
        if time.monotonic() >= deadline:
            raise FFmpegError(f"Timed out waiting for {len(missing)} artifacts: {missing[0]}")
        await asyncio.sleep(poll_interval)
