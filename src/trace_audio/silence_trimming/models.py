"""Data models for silence trimming and timestamp remapping."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np

from .config import (
    AGGRESSIVE_EDGE_BUFFER,
    AGGRESSIVE_FRAME_DURATION,
    AGGRESSIVE_MIN_SILENCE_DURATION,
    AGGRESSIVE_PRESET_NAME,
    AGGRESSIVE_SILENCE_THRESHOLD_SD,
    DEFAULT_EDGE_BUFFER,
    DEFAULT_FRAME_DURATION,
    DEFAULT_MIN_SILENCE_DURATION,
    DEFAULT_PRESET_NAME,
    DEFAULT_SILENCE_THRESHOLD_SD,
    TRIM_TOLERANCE_SECONDS,
)
from .exceptions import ConfigurationError


@dataclass(frozen=True)
class SilenceDetectionConfig:
    """Tuning parameters for energy-based silence detection."""

    frame_duration: float
    silence_threshold_sd: float
    min_silence_duration: float
    edge_buffer: float

    def validate(self) -> None:
        """
        Check the configuration for degenerate values.

        Raises:
            ConfigurationError: If any field is out of range
        """
        if self.frame_duration <= 0:
            raise ConfigurationError(
                f"frame_duration must be positive, got {self.frame_duration}"
            )
        if self.silence_threshold_sd < 0:
            raise ConfigurationError(
                f"silence_threshold_sd must not be negative, got {self.silence_threshold_sd}"
            )
        if self.min_silence_duration < 0:
            raise ConfigurationError(
                f"min_silence_duration must not be negative, got {self.min_silence_duration}"
            )
        if self.edge_buffer < 0:
            raise ConfigurationError(
                f"edge_buffer must not be negative, got {self.edge_buffer}"
            )

    @classmethod
    def default(cls) -> SilenceDetectionConfig:
        """Conservative preset for speech with smooth transitions."""
        return cls(
            frame_duration=DEFAULT_FRAME_DURATION,
            silence_threshold_sd=DEFAULT_SILENCE_THRESHOLD_SD,
            min_silence_duration=DEFAULT_MIN_SILENCE_DURATION,
            edge_buffer=DEFAULT_EDGE_BUFFER,
        )

    @classmethod
    def aggressive(cls) -> SilenceDetectionConfig:
        """Preset that trims shorter pauses with tighter padding."""
        return cls(
            frame_duration=AGGRESSIVE_FRAME_DURATION,
            silence_threshold_sd=AGGRESSIVE_SILENCE_THRESHOLD_SD,
            min_silence_duration=AGGRESSIVE_MIN_SILENCE_DURATION,
            edge_buffer=AGGRESSIVE_EDGE_BUFFER,
        )


PRESETS: dict[str, SilenceDetectionConfig] = {
    DEFAULT_PRESET_NAME: SilenceDetectionConfig.default(),
    AGGRESSIVE_PRESET_NAME: SilenceDetectionConfig.aggressive(),
}


def get_preset(name: str) -> SilenceDetectionConfig:
    """
    Look up a named silence detection preset.

    Args:
        name: Preset name, case-insensitive

    Returns:
        The matching configuration

    Raises:
        ConfigurationError: If no preset has that name
    """
    try:
        return PRESETS[name.strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown silence detection preset: {name!r}. "
            f"Available presets: {', '.join(sorted(PRESETS))}"
        ) from None


@dataclass(frozen=True)
class TimeRange:
    """A span of the original recording, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class Segment:
    """A kept span, positioned in both the compacted and original timelines."""

    compacted_start: float
    original_start: float
    duration: float

    @property
    def compacted_end(self) -> float:
        return self.compacted_start + self.duration

    @property
    def original_end(self) -> float:
        return self.original_start + self.duration


@dataclass(frozen=True)
class SegmentMap:
    """
    Maps positions in the compacted, sped-up audio back to the original recording.

    Segments are laid end to end in the compacted timeline. The speed
    multiplier is applied only when the compacted audio is materialized, so
    playback times reported against that audio are multiplied by it before
    the segment lookup.
    """

    segments: tuple[Segment, ...]
    original_duration: float
    compacted_duration: float
    speed_multiplier: float
    _compacted_starts: tuple[float, ...] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.segments))
        object.__setattr__(
            self,
            "_compacted_starts",
            tuple(segment.compacted_start for segment in self.segments),
        )

    @property
    def compacted_starts(self) -> tuple[float, ...]:
        """Sorted compacted start times, one per segment."""
        return self._compacted_starts

    @property
    def has_trimming(self) -> bool:
        """Whether enough silence was removed to be worth a trimmed export."""
        return abs(self.original_duration - self.compacted_duration) > TRIM_TOLERANCE_SECONDS

    @property
    def silence_trimmed(self) -> float:
        return self.original_duration - self.compacted_duration

    @property
    def playback_duration(self) -> float:
        """Duration of the materialized compacted audio after speed-up."""
        return self.compacted_duration / self.speed_multiplier

    def to_original(self, playback_time: float) -> float:
        """Map a playback time in the compacted audio to the original recording."""
        from .segment_map import remap_to_original

        return remap_to_original(self, playback_time)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for logging and CLI output."""
        return {
            "original_duration": self.original_duration,
            "compacted_duration": self.compacted_duration,
            "speed_multiplier": self.speed_multiplier,
            "playback_duration": self.playback_duration,
            "has_trimming": self.has_trimming,
            "segments": [
                {
                    "compacted_start": segment.compacted_start,
                    "original_start": segment.original_start,
                    "duration": segment.duration,
                }
                for segment in self.segments
            ],
        }


@dataclass(frozen=True, eq=False)
class DecodedAudio:
    """PCM samples decoded for analysis."""

    samples: np.ndarray  # shape (frames,) or (frames, channels), float in [-1, 1]
    sample_rate: int

    @property
    def channels(self) -> int:
        return 1 if self.samples.ndim == 1 else int(self.samples.shape[1])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate


@dataclass(frozen=True)
class TranscribedWord:
    """A word returned by the remote transcription service."""

    text: str
    start: float
    end: float
    speaker_id: str | None = None

    def remapped(self, segment_map: SegmentMap) -> TranscribedWord:
        """Return a copy with both times moved onto the original timeline."""
        return replace(
            self,
            start=segment_map.to_original(self.start),
            end=segment_map.to_original(self.end),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of the analysis pass, before any audio is exported."""

    speech_ranges: tuple[TimeRange, ...]
    segment_map: SegmentMap
    frame_count: int
    speech_frame_count: int
    threshold: float | None


class ExportStatus(Enum):
    """Terminal states of a media pipeline operation."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ExportResult:
    """Result of a media pipeline operation."""

    status: ExportStatus
    output_path: Path | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExportStatus.COMPLETED


@dataclass(frozen=True)
class TrimResult:
    """Compacted audio ready for upload plus the map to invert its timestamps."""

    audio_path: Path
    segment_map: SegmentMap
    speech_ranges: tuple[TimeRange, ...]
    was_trimmed: bool
