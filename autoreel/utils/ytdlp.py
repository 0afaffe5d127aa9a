"""yt-dlp utilities for resolving remote video references."""
import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from autoreel.config import settings

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = ("mp4", "mkv", "webm", "mov")


class YtdlpError(Exception):
    """yt-dlp related error."""
    pass


def check_ytdlp_available() -> bool:
    """Check if yt-dlp is available."""
    return shutil.which(settings.ytdlp_path) is not None


def is_remote_reference(reference: str) -> bool:
    """Check if a video reference is a URL rather than a local path."""
    return re.match(r"^https?://", reference.strip(), re.IGNORECASE) is not None


def find_downloaded_file(output_dir: Path, filename: str) -> Optional[Path]:
    """Locate a finished download, preferring mp4 and ignoring partial files."""
    for ext in VIDEO_EXTENSIONS:
        potential_path = output_dir / f"{filename}.{ext}"
        if potential_path.exists() and potential_path.stat().st_size > 1000:
            return potential_path
    return None


async def download_video(
    url: str,
    output_dir: Path,
    filename: str = "source",
    progress_callback=None
) -> Path:
    """
    Download a remote video with best quality.

    Args:
        url: Video URL
        output_dir: Directory to save the video
        filename: Base filename without extension
        progress_callback: Optional async callback(progress: float, message: str)

    Returns:
        Path to downloaded video file

    Raises:
        YtdlpError: If the download fails or produces no video file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    for partial in output_dir.glob("*.part"):
        partial.unlink(missing_ok=True)

    output_template = str(output_dir / f"{filename}.%(ext)s")

    # bv* requires a video stream, so audio-only formats are never selected
    cmd = [
        settings.ytdlp_path,
        "-f", "bv*[ext=mp4]+ba[ext=m4a]/bv*[ext=mp4]+ba/bv*+ba/bv*",
        "--merge-output-format", "mp4",
        "-o", output_template,
        "--no-playlist",
        "--newline",
        "--force-overwrites",
        url
    ]

    logger.info(f"Running yt-dlp command: {' '.join(cmd)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT
        )
    except OSError as e:
        raise YtdlpError(f"Could not start yt-dlp: {e}")

    merged_path: Optional[Path] = None
    downloaded_path: Optional[Path] = None
    output_lines = []

    while True:
        line = await proc.stdout.readline()
        if not line:
            break

        line_str = line.decode("utf-8", errors="ignore").strip()
        output_lines.append(line_str)

        if progress_callback:
            progress_match = re.search(r"\[download\]\s+(\d+\.?\d*)%", line_str)
            if progress_match:
                progress = float(progress_match.group(1))
                await progress_callback(progress * 0.9, f"Downloading: {progress:.1f}%")

        if "Merging formats into" in line_str:
            merge_match = re.search(r'Merging formats into "(.+)"', line_str)
            if merge_match:
                merged_path = Path(merge_match.group(1))
        elif "Destination:" in line_str:
            dest_match = re.search(r"Destination:\s+(.+)", line_str)
            if dest_match:
                downloaded_path = Path(dest_match.group(1))

    await proc.wait()

    if proc.returncode != 0:
        logger.error("yt-dlp failed with output:\n" + "\n".join(output_lines[-20:]))
        raise YtdlpError("Download failed - check URL and try again")

    if merged_path and merged_path.exists():
        final_path = merged_path
    elif downloaded_path and downloaded_path.exists():
        final_path = downloaded_path
    else:
        final_path = find_downloaded_file(output_dir, filename)

    if not final_path:
        logger.error("Last yt-dlp output:\n" + "\n".join(output_lines[-20:]))
        raise YtdlpError("Download completed but video file not found")

    if progress_callback:
        await progress_callback(100, "Download complete")

    logger.info(f"Downloaded {url} to {final_path}")
    return final_path
