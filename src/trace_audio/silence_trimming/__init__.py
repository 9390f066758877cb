"""Silence trimming and timestamp remapping for recorded speech."""

from .exceptions import (
    AudioFileNotFoundError,
    AudioInputError,
    ConfigurationError,
    InvalidAudioFormatError,
    MediaPipelineError,
    NoSpeechDetectedError,
    SilenceTrimmingError,
    TrimmingCancelledError,
)
from .media_pipeline import FfmpegMediaPipeline
from .models import (
    AnalysisResult,
    DecodedAudio,
    ExportResult,
    ExportStatus,
    Segment,
    SegmentMap,
    SilenceDetectionConfig,
    TimeRange,
    TranscribedWord,
    TrimResult,
    get_preset,
)
from .segment_map import build_segment_map, remap_to_original, remap_words
from .service import SilenceTrimmingService

__all__ = [
    "AnalysisResult",
    "DecodedAudio",
    "ExportResult",
    "ExportStatus",
    "Segment",
    "SegmentMap",
    "SilenceDetectionConfig",
    "TimeRange",
    "TranscribedWord",
    "TrimResult",
    "get_preset",
    "build_segment_map",
    "remap_to_original",
    "remap_words",
    "FfmpegMediaPipeline",
    "SilenceTrimmingService",
    "SilenceTrimmingError",
    "AudioInputError",
    "AudioFileNotFoundError",
    "InvalidAudioFormatError",
    "ConfigurationError",
    "NoSpeechDetectedError",
    "MediaPipelineError",
    "TrimmingCancelledError",
]
