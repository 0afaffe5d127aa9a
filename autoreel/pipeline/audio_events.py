"""Audio segment classification.

Turns raw audio measurements into typed, non-overlapping segments:
- Speech/Music from the gaps between silences
- Loud from threshold crossings of the loudness series
- Silence from the silence intervals themselves
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional

from .config import PipelineConfig, DEFAULT_PIPELINE_CONFIG

logger = logging.getLogger(__name__)


class AudioKind(str, Enum):
    """Audio segment type."""
    SPEECH = "speech"
    MUSIC = "music"
    LOUD = "loud"
    SILENCE = "silence"


# Higher wins when two segments overlap
KIND_PRIORITY = {
    AudioKind.SPEECH: 3,
    AudioKind.MUSIC: 2,
    AudioKind.LOUD: 1,
    AudioKind.SILENCE: 0,
}


class SilenceInterval(NamedTuple):
    """A raw silence measurement."""
    start: float
    end: float
    duration: float


class LoudnessSample(NamedTuple):
    """A raw loudness measurement at time t."""
    t: float
    lufs: float


@dataclass
class AudioEvents:
    """Raw measurements from the audio event extractor."""
    silences: List[SilenceInterval] = field(default_factory=list)
    loudness: List[LoudnessSample] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.silences and not self.loudness


@dataclass
class AudioSegment:
    """A classified span of audio."""
    start: float
    end: float
    kind: AudioKind
    value: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "kind": self.kind.value,
            "value": self.value,
        }

    def __repr__(self):
        return f"AudioSegment({self.kind.value} {self.start:.2f}-{self.end:.2f})"


def non_silence_intervals(silences: List[SilenceInterval]) -> List[tuple]:
    """
    Synthesize the gaps between consecutive silences.

    Returns (start, end) tuples for every positive gap between one silence's
    end and the next silence's start.
    """
    ordered = sorted(silences, key=lambda s: s.start)
    gaps = []
    for prev, nxt in zip(ordered, ordered[1:]):
        if nxt.start > prev.end:
            gaps.append((prev.end, nxt.start))
    return gaps


def classify_non_silence(
    silences: List[SilenceInterval],
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[AudioSegment]:
    """Label each non-silence gap as speech (short) or music (long)."""
    segments = []
    for start, end in non_silence_intervals(silences):
        duration = end - start
        kind = AudioKind.SPEECH if duration < config.speech_max_seconds else AudioKind.MUSIC
        segments.append(AudioSegment(start, end, kind, duration))
    return segments


def detect_loud_segments(
    loudness: List[LoudnessSample],
    threshold: float = -23.0,
) -> List[AudioSegment]:
    """
    Find spans where loudness stays above the threshold.

    A segment opens on the first sample above the threshold and closes on the
    first sample at or below it. A segment still open at the end of the
    series closes at the last sample. Value is the peak LUFS while open.
    """
    segments = []
    open_start: Optional[float] = None
    peak = float("-inf")

    for sample in loudness:
        if sample.lufs > threshold:
            if open_start is None:
                open_start = sample.t
                peak = sample.lufs
            else:
                peak = max(peak, sample.lufs)
        elif open_start is not None:
            if sample.t > open_start:
                segments.append(AudioSegment(open_start, sample.t, AudioKind.LOUD, peak))
            open_start = None

    if open_start is not None and loudness:
        last_t = loudness[-1].t
        if last_t > open_start:
            segments.append(AudioSegment(open_start, last_t, AudioKind.LOUD, peak))
        else:
            logger.debug(f"Dropping zero-length loud segment at {open_start:.2f}s")

    return segments


def silence_segments(silences: List[SilenceInterval]) -> List[AudioSegment]:
    """Convert raw silence intervals into SILENCE segments."""
    return [
        AudioSegment(s.start, s.end, AudioKind.SILENCE, s.duration)
        for s in silences
        if s.end > s.start
    ]


def merge_segments(segments: List[AudioSegment]) -> List[AudioSegment]:
    """
    Merge overlapping or touching segments left to right.

    The higher-priority kind (speech > music > loud > silence) keeps its kind
    and value; the merged end is the max of both ends.
    """
    if not segments:
        return []

    ordered = sorted(segments, key=lambda s: s.start)
    merged = []
    current = AudioSegment(ordered[0].start, ordered[0].end, ordered[0].kind, ordered[0].value)

    for seg in ordered[1:]:
        if seg.start <= current.end:
            if KIND_PRIORITY[seg.kind] > KIND_PRIORITY[current.kind]:
                current.kind = seg.kind
                current.value = seg.value
            current.end = max(current.end, seg.end)
        else:
            merged.append(current)
            current = AudioSegment(seg.start, seg.end, seg.kind, seg.value)

    merged.append(current)
    return merged


def classify_audio_events(
    events: AudioEvents,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> List[AudioSegment]:
    """
    Classify raw audio measurements into sorted, non-overlapping segments.

    This is the main entry point for audio classification.
    """
    if events.is_empty:
        logger.info("No audio measurements available, audio scoring will use the floor")
        return []

    segments = []
    segments.extend(classify_non_silence(events.silences, config))
    segments.extend(detect_loud_segments(events.loudness, config.loudness_threshold_lufs))
    segments.extend(silence_segments(events.silences))

    segments.sort(key=lambda s: s.start)
    merged = merge_segments(segments)

    logger.info(f"Classified {len(segments)} raw audio segments into {len(merged)} merged segments")
    return merged
