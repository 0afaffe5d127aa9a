# Highlight pipeline
"""
Highlight Pipeline: Scene Scoring and Budgeted Selection

Pipeline stages:
1. Cut Detection: Debounced threshold scan over sampled frame scores
2. Audio Classification: Speech, music, loud and silence segments
3. Fusion: Blend visual score with weighted audio coverage
4. Merge & Normalize: Collapse short neighbours, penalize extreme lengths
5. Selection: Greedily fill the time budget, restore chronological order

Signal processing (optical flow, histograms, loudness) is delegated to
OpenCV and ffmpeg; this package only consumes their numbers.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
