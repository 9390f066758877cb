"""Silence trimming service tying analysis and media export together."""

import asyncio
import threading
from pathlib import Path

from .audio_io import load_audio
from .classifier import classify_frames, compute_speech_threshold
from .config import DEFAULT_SPEED_MULTIPLIER
from .energy import compute_frame_energies, frame_size_for
from .exceptions import (
    AudioFileNotFoundError,
    ConfigurationError,
    MediaPipelineError,
    TrimmingCancelledError,
)
from .logging_utils import get_logger
from .media_pipeline import FfmpegMediaPipeline
from .models import (
    AnalysisResult,
    DecodedAudio,
    ExportResult,
    ExportStatus,
    SegmentMap,
    SilenceDetectionConfig,
    TrimResult,
    get_preset,
)
from .ranges import build_speech_ranges
from .segment_map import build_segment_map

logger = get_logger(__name__)


def resolve_config(config: SilenceDetectionConfig | str | None) -> SilenceDetectionConfig:
    """
    Turn a preset name or None into a validated configuration.

    Args:
        config: Configuration, preset name, or None for the default preset

    Returns:
        Validated SilenceDetectionConfig
    """
    if config is None:
        resolved = SilenceDetectionConfig.default()
    elif isinstance(config, str):
        resolved = get_preset(config)
    else:
        resolved = config
    resolved.validate()
    return resolved


class SilenceTrimmingService:
    """
    Removes silence from recordings before they are sent for transcription.

    The service keeps no per-recording state: every call starts from the
    source audio, so one instance can serve concurrent recordings. Callers
    must not run two passes for the same recording at once.
    """

    def __init__(
        self,
        media_pipeline: FfmpegMediaPipeline | None = None,
        speed_multiplier: float = DEFAULT_SPEED_MULTIPLIER,
    ) -> None:
        """
        Initialize the silence trimming service.

        Args:
            media_pipeline: Pipeline used to materialize audio (default: ffmpeg in temp dir)
            speed_multiplier: Playback speed of the audio sent for transcription

        Raises:
            ConfigurationError: If speed_multiplier is not positive
        """
        if speed_multiplier <= 0:
            raise ConfigurationError(
                f"speed_multiplier must be positive, got {speed_multiplier}"
            )
        self._media_pipeline = media_pipeline or FfmpegMediaPipeline()
        self._speed_multiplier = speed_multiplier

    @property
    def speed_multiplier(self) -> float:
        return self._speed_multiplier

    @property
    def media_pipeline(self) -> FfmpegMediaPipeline:
        return self._media_pipeline

    def analyze(
        self,
        audio: DecodedAudio,
        config: SilenceDetectionConfig | str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisResult:
        """
        Find the speech to keep and build the segment map.

        Args:
            audio: Decoded source audio
            config: Detection configuration or preset name
            cancel_event: Optional signal that stops the analysis early

        Returns:
            AnalysisResult with speech ranges and segment map

        Raises:
            ConfigurationError: If the configuration is degenerate
            NoSpeechDetectedError: If no speech was found
            TrimmingCancelledError: If cancel_event was set
        """
        settings = resolve_config(config)
        frame_size = frame_size_for(audio.sample_rate, settings.frame_duration)
        frame_duration = frame_size / audio.sample_rate

        energies = compute_frame_energies(
            audio.samples,
            audio.sample_rate,
            settings.frame_duration,
            cancel_event=cancel_event,
        )
        threshold = compute_speech_threshold(energies, settings.silence_threshold_sd)
        labels = classify_frames(energies, settings.silence_threshold_sd)

        speech_ranges = build_speech_ranges(
            labels,
            frame_duration=frame_duration,
            total_duration=audio.duration,
            min_silence_duration=settings.min_silence_duration,
            edge_buffer=settings.edge_buffer,
        )
        if cancel_event is not None and cancel_event.is_set():
            raise TrimmingCancelledError("Silence analysis was cancelled")

        segment_map = build_segment_map(
            speech_ranges, audio.duration, speed_multiplier=self._speed_multiplier
        )
        self._log_trim_statistics(segment_map)

        return AnalysisResult(
            speech_ranges=tuple(speech_ranges),
            segment_map=segment_map,
            frame_count=int(energies.size),
            speech_frame_count=int(labels.sum()),
            threshold=threshold,
        )

    def analyze_file(
        self,
        path: str | Path,
        config: SilenceDetectionConfig | str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> AnalysisResult:
        """Decode an audio file and analyze it."""
        settings = resolve_config(config)
        logger.debug(f"✂️ Analyzing {path}")
        audio = load_audio(path)
        return self.analyze(audio, settings, cancel_event=cancel_event)

    async def trim_silence(
        self,
        path: str | Path,
        config: SilenceDetectionConfig | str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> TrimResult:
        """
        Produce compacted, sped-up audio and the map to invert its timestamps.

        When the analysis finds nothing worth removing, the audio is only
        sped up; TrimResult.was_trimmed reports which path was taken.

        Args:
            path: Original recording
            config: Detection configuration or preset name
            cancel_event: Optional external cancellation signal

        Returns:
            TrimResult with a caller-owned audio file

        Raises:
            AudioInputError: If the source or configuration is unusable
            NoSpeechDetectedError: If no speech was found
            MediaPipelineError: If exporting the audio failed
            TrimmingCancelledError: If cancel_event was set
            asyncio.CancelledError: If the awaiting task was cancelled
        """
        source = Path(path)
        settings = resolve_config(config)
        if cancel_event is None:
            cancel_event = threading.Event()

        loop = asyncio.get_running_loop()
        try:
            analysis = await loop.run_in_executor(
                None, self.analyze_file, source, settings, cancel_event
            )
        except asyncio.CancelledError:
            # Stops the analysis thread at its next batch
            cancel_event.set()
            logger.info("✂️ Silence trimming cancelled during analysis")
            raise

        if cancel_event.is_set():
            raise TrimmingCancelledError("Silence trimming was cancelled")

        segment_map = analysis.segment_map
        ranges = list(analysis.speech_ranges)
        if segment_map.has_trimming:
            result = await self._media_pipeline.export_trimmed(
                source, ranges, self._speed_multiplier, cancel_event=cancel_event
            )
        else:
            logger.info("✂️ No significant silence detected, applying speed-up only")
            result = await self._media_pipeline.export_sped_up(
                source, self._speed_multiplier, cancel_event=cancel_event
            )

        output_path = self._check_export(result, segment_map, ranges)
        if cancel_event.is_set():
            self._media_pipeline.release(output_path)
            logger.info("✂️ Silence trimming cancelled during export")
            raise TrimmingCancelledError("Silence trimming was cancelled")

        total_reduction = segment_map.original_duration - segment_map.playback_duration
        logger.info(
            f"✂️ Speed multiplier: {segment_map.speed_multiplier}x, "
            f"final audio duration: {segment_map.playback_duration:.1f}s, "
            f"total reduction: {total_reduction:.1f}s "
            f"({_percent(total_reduction, segment_map.original_duration):.1f}%)"
        )

        return TrimResult(
            audio_path=output_path,
            segment_map=segment_map,
            speech_ranges=analysis.speech_ranges,
            was_trimmed=segment_map.has_trimming,
        )

    async def compress_for_upload(
        self, path: str | Path, cancel_event: threading.Event | None = None
    ) -> Path:
        """
        Re-encode audio as a small mono file for upload.

        The timeline is unchanged, so no remapping is needed.

        Args:
            path: Audio file to compress
            cancel_event: Optional external cancellation signal

        Returns:
            Path of the caller-owned compressed file

        Raises:
            AudioFileNotFoundError: If the source does not exist
            MediaPipelineError: If transcoding failed
            TrimmingCancelledError: If the export was cancelled
        """
        source = Path(path)
        if not source.is_file():
            raise AudioFileNotFoundError(f"Audio file not found: {source}")
        result = await self._media_pipeline.compress_for_upload(
            source, cancel_event=cancel_event
        )
        return self._check_export(result)

    def cleanup_trimmed_file(self, path: str | Path) -> bool:
        """Delete a temporary file produced by this service."""
        return self._media_pipeline.release(Path(path))

    @staticmethod
    def _check_export(
        result: ExportResult,
        segment_map: SegmentMap | None = None,
        ranges: list | None = None,
    ) -> Path:
        if result.status is ExportStatus.CANCELLED:
            raise TrimmingCancelledError(result.error or "Export cancelled")
        if result.status is ExportStatus.FAILED or result.output_path is None:
            raise MediaPipelineError(
                f"Audio export failed: {result.error or 'unknown error'}",
                segment_map=segment_map,
                ranges=ranges,
            )
        return result.output_path

    @staticmethod
    def _log_trim_statistics(segment_map: SegmentMap) -> None:
        trimmed = segment_map.silence_trimmed
        logger.info(
            f"✂️ Original duration: {segment_map.original_duration:.1f}s, "
            f"after silence removal: {segment_map.compacted_duration:.1f}s, "
            f"silence trimmed: {trimmed:.1f}s "
            f"({_percent(trimmed, segment_map.original_duration):.1f}%)"
        )


def _percent(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0
