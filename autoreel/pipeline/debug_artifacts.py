"""Debug artifact generation for the highlight pipeline.

Writes a JSON report explaining every scoring and selection decision.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .audio_events import AudioSegment
from .config import PipelineConfig
from .cuts import Scene
from .selection import SelectionDecision

logger = logging.getLogger(__name__)


def write_debug_json(
    output_path: Path,
    config: PipelineConfig,
    video_info: Optional[dict],
    raw_scenes: List[Scene],
    audio_segments: List[AudioSegment],
    fused_scenes: List[Scene],
    merged_scenes: List[Scene],
    decisions: List[SelectionDecision],
    picks: List[Scene],
    budget: float,
):
    """
    Write comprehensive debug JSON file.
    """
    total_picked = sum(p.duration for p in picks)

    debug_data = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "config": config.to_dict(),
        "video_info": video_info,

        "raw_scenes": [s.to_dict() for s in raw_scenes],
        "audio_segments": [s.to_dict() for s in audio_segments],
        "fused_scenes": [s.to_dict() for s in fused_scenes],
        "merged_scenes": [s.to_dict() for s in merged_scenes],
        "selection_decisions": [d.to_dict() for d in decisions],
        "picks": [p.to_dict() for p in picks],

        "statistics": {
            "raw_scene_count": len(raw_scenes),
            "audio_segment_count": len(audio_segments),
            "merged_scene_count": len(merged_scenes),
            "pick_count": len(picks),
            "budget": budget,
            "picked_duration": total_picked,
            "budget_used": total_picked / budget if budget > 0 else 0,
        }
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        json.dump(debug_data, f, indent=2)

    logger.info(f"Wrote debug JSON to {output_path}")


def write_debug_plot(
    output_path: Path,
    duration: float,
    merged_scenes: List[Scene],
    audio_segments: List[AudioSegment],
    picks: List[Scene],
):
    """
    Generate optional timeline visualization.

    Requires matplotlib (skipped if not available).
    """
    try:
        import matplotlib
        matplotlib.use('Agg')  # Non-interactive backend
        import matplotlib.pyplot as plt
        import matplotlib.patches as patches
    except ImportError:
        logger.warning("matplotlib not available, skipping debug plot")
        return

    kind_colors = {"speech": "green", "music": "purple", "loud": "red", "silence": "gray"}

    fig, axes = plt.subplots(3, 1, figsize=(16, 8), sharex=True)

    # Scene scores
    ax = axes[0]
    for scene in merged_scenes:
        ax.hlines(scene.combined_score, scene.start, scene.end, colors='blue', linewidth=2)
        ax.axvline(x=scene.start, color='orange', alpha=0.3, linewidth=0.5)
    ax.set_ylabel('Combined score')
    ax.set_title('Highlight Pipeline Debug: Scene Timeline')

    # Audio segments
    ax = axes[1]
    ax.set_ylim(0, 1)
    for seg in audio_segments:
        ax.add_patch(patches.Rectangle(
            (seg.start, 0.1), seg.duration, 0.8,
            facecolor=kind_colors.get(seg.kind.value, 'black'), alpha=0.4
        ))
    ax.set_ylabel('Audio')

    # Picks
    ax = axes[2]
    ax.set_ylim(0, 1)
    for pick in picks:
        ax.add_patch(patches.Rectangle(
            (pick.start, 0.1), pick.duration, 0.8,
            linewidth=1, edgecolor='blue', facecolor='blue', alpha=0.3
        ))
    ax.set_ylabel('Picks')
    ax.set_xlabel('Time (seconds)')
    ax.set_xlim(0, duration)

    plt.tight_layout()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=100)
    plt.close(fig)

    logger.info(f"Wrote debug plot to {output_path}")
