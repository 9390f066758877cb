"""Custom exceptions for silence trimming functionality."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SegmentMap, TimeRange


class SilenceTrimmingError(Exception):
    """Base exception for silence trimming errors."""

    pass


class AudioInputError(SilenceTrimmingError):
    """Exception raised for unusable input audio or configuration."""

    pass


class AudioFileNotFoundError(AudioInputError):
    """Exception raised when the source audio file does not exist."""

    pass


class InvalidAudioFormatError(AudioInputError):
    """Exception raised when audio cannot be decoded for analysis."""

    pass


class ConfigurationError(AudioInputError):
    """Exception raised for degenerate silence detection settings."""

    pass


class NoSpeechDetectedError(SilenceTrimmingError):
    """Exception raised when analysis finds no speech to keep.

    Callers are expected to fall back to the original, untrimmed audio.
    """

    pass


class MediaPipelineError(SilenceTrimmingError):
    """Exception raised when exporting or transcoding audio fails.

    The analysis that preceded the failure is kept on the exception so the
    export alone can be retried.
    """

    def __init__(
        self,
        message: str,
        segment_map: SegmentMap | None = None,
        ranges: list[TimeRange] | None = None,
    ) -> None:
        super().__init__(message)
        self.segment_map = segment_map
        self.ranges = ranges or []


class TrimmingCancelledError(SilenceTrimmingError):
    """Exception raised when a trimming pass was cancelled by the caller."""

    pass
