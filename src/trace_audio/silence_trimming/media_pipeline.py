"""ffmpeg-backed media pipeline for exporting compacted and upload audio."""

import asyncio
import shutil
import tempfile
import threading
import uuid
from collections.abc import Sequence
from pathlib import Path

from .config import (
    ATEMPO_MAX,
    ATEMPO_MIN,
    CANCEL_POLL_INTERVAL,
    COMPRESSED_FILE_PREFIX,
    EXPORT_AUDIO_BITRATE,
    EXPORT_AUDIO_CODEC,
    EXPORT_SUFFIX,
    FFMPEG_BINARY,
    SPED_UP_FILE_PREFIX,
    STDERR_TAIL_CHARS,
    TRIMMED_FILE_PREFIX,
    UPLOAD_BITRATE,
    UPLOAD_CHANNELS,
    UPLOAD_SAMPLE_RATE,
)
from .logging_utils import get_logger
from .models import ExportResult, ExportStatus, TimeRange

logger = get_logger(__name__)


def atempo_chain(speed: float) -> list[float]:
    """
    Split a speed factor into ffmpeg atempo stages.

    Each atempo filter only accepts factors within [ATEMPO_MIN, ATEMPO_MAX],
    so larger or smaller factors are chained.

    Args:
        speed: Overall speed factor, must be positive

    Returns:
        Stage factors whose product equals speed
    """
    if speed <= 0:
        raise ValueError(f"speed must be positive, got {speed}")
    stages = []
    remaining = speed
    while remaining > ATEMPO_MAX:
        stages.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        stages.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN
    stages.append(remaining)
    return stages


def atempo_filter(speed: float) -> str:
    """Build the atempo filter expression for a speed factor."""
    if speed == 1.0:
        return "anull"
    return ",".join(f"atempo={stage:.8f}" for stage in atempo_chain(speed))


def build_trim_filter_graph(ranges: Sequence[TimeRange], speed_multiplier: float) -> str:
    """
    Build a filter graph that keeps only the given ranges, joins them and speeds them up.

    Args:
        ranges: Ascending ranges of the source to keep
        speed_multiplier: Playback speed of the joined audio

    Returns:
        ffmpeg filter_complex expression with output label [out]
    """
    parts = []
    labels = []
    for index, time_range in enumerate(ranges):
        label = f"[a{index}]"
        parts.append(
            f"[0:a]atrim=start={time_range.start:.6f}:end={time_range.end:.6f},"
            f"asetpts=PTS-STARTPTS{label}"
        )
        labels.append(label)
    parts.append(f"{''.join(labels)}concat=n={len(labels)}:v=0:a=1[joined]")
    parts.append(f"[joined]{atempo_filter(speed_multiplier)}[out]")
    return ";".join(parts)


class FfmpegMediaPipeline:
    """
    Materializes audio assets with the ffmpeg command-line tool.

    Every operation writes a new file into the pipeline's temporary
    directory and reports an ExportResult; the source is never modified.
    Output files belong to the caller, who should hand them back to
    release() once uploaded.
    """

    def __init__(
        self,
        temp_dir: Path | None = None,
        ffmpeg_binary: str = FFMPEG_BINARY,
    ) -> None:
        """
        Initialize the media pipeline.

        Args:
            temp_dir: Directory for output files (default: system temp directory)
            ffmpeg_binary: ffmpeg executable name or path
        """
        self.temp_dir = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
        self.ffmpeg_binary = ffmpeg_binary

    async def export_trimmed(
        self,
        source: Path,
        ranges: Sequence[TimeRange],
        speed_multiplier: float,
        cancel_event: threading.Event | None = None,
    ) -> ExportResult:
        """
        Export only the kept ranges, joined without gaps, then sped up.

        Args:
            source: Original audio file
            ranges: Ascending ranges to keep
            speed_multiplier: Playback speed of the result
            cancel_event: Optional signal that stops ffmpeg and yields CANCELLED

        Returns:
            ExportResult with the new file on success
        """
        if not ranges:
            return ExportResult(status=ExportStatus.FAILED, error="No ranges to export")

        output_path = self._make_output_path(TRIMMED_FILE_PREFIX)
        args = [
            "-i", str(source),
            "-filter_complex", build_trim_filter_graph(ranges, speed_multiplier),
            "-map", "[out]",
            "-vn",
            "-c:a", EXPORT_AUDIO_CODEC,
            "-b:a", EXPORT_AUDIO_BITRATE,
        ]
        logger.debug(
            f"✂️ Exporting {len(ranges)} ranges of {Path(source).name} at {speed_multiplier}x"
        )
        return await self._run_ffmpeg(args, output_path, cancel_event)

    async def export_sped_up(
        self,
        source: Path,
        speed_multiplier: float,
        cancel_event: threading.Event | None = None,
    ) -> ExportResult:
        """
        Export the whole source, only time-scaled.

        Args:
            source: Original audio file
            speed_multiplier: Playback speed of the result
            cancel_event: Optional signal that stops ffmpeg and yields CANCELLED

        Returns:
            ExportResult with the new file on success
        """
        output_path = self._make_output_path(SPED_UP_FILE_PREFIX)
        args = [
            "-i", str(source),
            "-vn",
            "-filter:a", atempo_filter(speed_multiplier),
            "-c:a", EXPORT_AUDIO_CODEC,
            "-b:a", EXPORT_AUDIO_BITRATE,
        ]
        logger.debug(f"⏩ Exporting {Path(source).name} sped up {speed_multiplier}x")
        return await self._run_ffmpeg(args, output_path, cancel_event)

    async def compress_for_upload(
        self, source: Path, cancel_event: threading.Event | None = None
    ) -> ExportResult:
        """
        Re-encode at a low sample rate and bitrate for upload.

        Speech stays intelligible at 16kHz mono. The timeline is unchanged,
        so timestamps from this file need no remapping.

        Args:
            source: Audio file to compress
            cancel_event: Optional signal that stops ffmpeg and yields CANCELLED

        Returns:
            ExportResult with the new file on success
        """
        output_path = self._make_output_path(COMPRESSED_FILE_PREFIX)
        args = [
            "-i", str(source),
            "-vn",
            "-ac", str(UPLOAD_CHANNELS),
            "-ar", str(UPLOAD_SAMPLE_RATE),
            "-c:a", EXPORT_AUDIO_CODEC,
            "-b:a", str(UPLOAD_BITRATE),
        ]
        result = await self._run_ffmpeg(args, output_path, cancel_event)
        if result.succeeded:
            self._log_compression_ratio(Path(source), output_path)
        return result

    def release(self, path: Path) -> bool:
        """
        Delete a file produced by this pipeline.

        Files outside the pipeline's temporary directory are left alone.

        Args:
            path: File returned in an ExportResult

        Returns:
            True if a file was deleted
        """
        target = Path(path).resolve()
        if not target.is_relative_to(self.temp_dir.resolve()):
            logger.warning(f"Refusing to delete file outside temp directory: {target}")
            return False
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"🗑️ Released temporary audio file: {target}")
        return True

    def _make_output_path(self, prefix: str) -> Path:
        return self.temp_dir / f"{prefix}{uuid.uuid4()}{EXPORT_SUFFIX}"

    async def _run_ffmpeg(
        self,
        args: list[str],
        output_path: Path,
        cancel_event: threading.Event | None = None,
    ) -> ExportResult:
        """
        Run ffmpeg to completion, writing output_path.

        Setting cancel_event stops ffmpeg and returns a CANCELLED result.
        Cancelling the awaiting task stops ffmpeg too, then re-raises
        asyncio.CancelledError. The partial output is deleted in both cases.
        """
        binary = shutil.which(self.ffmpeg_binary)
        if binary is None:
            logger.error(f"ffmpeg not found: {self.ffmpeg_binary}")
            return ExportResult(
                status=ExportStatus.FAILED,
                error=f"missing dependency: {self.ffmpeg_binary}",
            )

        cmd = [binary, "-y", "-hide_banner", "-loglevel", "error", *args, str(output_path)]
        logger.trace(f"CMD: {' '.join(cmd)}")

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stderr = await self._communicate(process, cancel_event)
        except asyncio.CancelledError:
            logger.debug(f"Export task cancelled, stopping ffmpeg: {output_path.name}")
            await self._stop(process, output_path)
            raise

        if stderr is None:
            logger.debug(f"Export cancelled, stopping ffmpeg: {output_path.name}")
            await self._stop(process, output_path)
            return ExportResult(status=ExportStatus.CANCELLED, error="Export cancelled")

        if process.returncode != 0 or not output_path.is_file():
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            logger.error(f"ffmpeg export failed ({process.returncode}): {stderr_text}")
            output_path.unlink(missing_ok=True)
            return ExportResult(
                status=ExportStatus.FAILED,
                error=stderr_text[-STDERR_TAIL_CHARS:] or f"ffmpeg exited with {process.returncode}",
            )

        return ExportResult(status=ExportStatus.COMPLETED, output_path=output_path)

    @staticmethod
    async def _communicate(
        process: asyncio.subprocess.Process, cancel_event: threading.Event | None
    ) -> bytes | None:
        """Wait for ffmpeg and return its stderr, or None if cancel_event was set."""
        communicate = asyncio.ensure_future(process.communicate())
        try:
            while cancel_event is not None:
                done, _ = await asyncio.wait({communicate}, timeout=CANCEL_POLL_INTERVAL)
                if done:
                    break
                if cancel_event.is_set():
                    communicate.cancel()
                    await asyncio.wait({communicate})
                    return None
            _, stderr = await communicate
            return stderr
        except asyncio.CancelledError:
            communicate.cancel()
            raise

    @staticmethod
    async def _stop(process: asyncio.subprocess.Process, output_path: Path) -> None:
        if process.returncode is None:
            process.kill()
            await process.wait()
        output_path.unlink(missing_ok=True)

    @staticmethod
    def _log_compression_ratio(source: Path, output: Path) -> None:
        try:
            source_size = source.stat().st_size
            output_size = output.stat().st_size
        except OSError:
            return
        ratio = source_size / max(output_size, 1)
        logger.info(
            f"🗜️ Compressed {source_size // 1024}KB -> {output_size // 1024}KB "
            f"({ratio:.1f}x smaller)"
        )
