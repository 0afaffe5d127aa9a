"""AutoReel: budgeted highlight reels from long videos."""

__version__ = "1.0.0"
