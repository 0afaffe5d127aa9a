"""Application configuration."""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AUTOREEL_",
    )

    debug: bool = False

    # Data directories
    downloads_dir: Path = Path("./data/downloads")

    # FFmpeg settings
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # yt-dlp settings
    ytdlp_path: str = "yt-dlp"

    # Audio event extraction
    silence_noise_db: float = -30.0  # silencedetect noise floor
    silence_min_duration: float = 0.5  # silencedetect minimum silence length

    # Export settings (fallbacks when the source codec has no direct match)
    export_video_codec: str = "libx264"
    export_video_preset: str = "veryfast"
    export_video_crf: int = 18
    export_audio_codec: str = "aac"
    export_audio_bitrate: str = "192k"

    # Seconds to wait for assembled artifacts to appear on disk
    artifact_wait_timeout: float = 30.0
    artifact_poll_interval: float = 0.1


settings = Settings()
