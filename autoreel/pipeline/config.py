"""Highlight pipeline configuration."""
from dataclasses import dataclass


@dataclass
class PipelineConfig:
    """Tunables for the highlight scoring and selection pipeline."""

    # Frame sampling
    frame_skip: int = 5  # Sample every Nth decoded frame
    processing_width: int = 320  # Fixed resolution keeps flow magnitudes comparable
    processing_height: int = 180
    histogram_bins: int = 256

    # Per-frame visual score
    motion_weight: float = 0.6
    flow_norm_factor: float = 15.0

    # Cut detection
    cut_threshold: float = 0.5
    min_scene_seconds: float = 1.5  # min_scene_frames = fps * min_scene_seconds
    required_high_scores: int = 3
    min_scene_duration: float = 1.0  # Drop degenerate scenes below this

    # Audio classification
    speech_max_seconds: float = 10.0  # Non-silence shorter than this is speech
    loudness_threshold_lufs: float = -23.0

    # Fusion
    video_weight: float = 0.6
    audio_weight: float = 0.4
    no_audio_score: float = 0.1

    # Merge and length penalty
    merge_window_sec: float = 3.0
    short_scene_sec: float = 5.0
    long_scene_sec: float = 30.0

    # Selection
    budget_ratio: float = 0.3
    min_pick_duration: float = 1.0

    # Auxiliary signals
    signal_sample_count: int = 10
    trajectory_norm_px: float = 50.0
    tracked_feature_count: int = 100

    # Debug
    write_debug_json: bool = True
    write_debug_plot: bool = False

    def to_dict(self) -> dict:
        """Convert config to dictionary for serialization."""
        return {
            "frame_skip": self.frame_skip,
            "processing_width": self.processing_width,
            "processing_height": self.processing_height,
            "histogram_bins": self.histogram_bins,
            "motion_weight": self.motion_weight,
            "flow_norm_factor": self.flow_norm_factor,
            "cut_threshold": self.cut_threshold,
            "min_scene_seconds": self.min_scene_seconds,
            "required_high_scores": self.required_high_scores,
            "min_scene_duration": self.min_scene_duration,
            "speech_max_seconds": self.speech_max_seconds,
            "loudness_threshold_lufs": self.loudness_threshold_lufs,
            "video_weight": self.video_weight,
            "audio_weight": self.audio_weight,
            "no_audio_score": self.no_audio_score,
            "merge_window_sec": self.merge_window_sec,
            "short_scene_sec": self.short_scene_sec,
            "long_scene_sec": self.long_scene_sec,
            "budget_ratio": self.budget_ratio,
            "min_pick_duration": self.min_pick_duration,
            "signal_sample_count": self.signal_sample_count,
            "trajectory_norm_px": self.trajectory_norm_px,
            "tracked_feature_count": self.tracked_feature_count,
            "write_debug_json": self.write_debug_json,
            "write_debug_plot": self.write_debug_plot,
        }


# Default configuration instance
DEFAULT_PIPELINE_CONFIG = PipelineConfig()
