"""Conversion of frame labels into padded speech time ranges."""

from collections.abc import Iterable

import numpy as np

from .exceptions import NoSpeechDetectedError
from .logging_utils import get_logger
from .models import TimeRange

logger = get_logger(__name__)


def frames_to_ranges(
    labels: np.ndarray, frame_duration: float, total_duration: float
) -> list[TimeRange]:
    """
    Turn each maximal run of speech frames into a time range.

    A run still open at the last frame extends to total_duration so trailing
    speech in the dropped partial frame is kept.

    Args:
        labels: Speech label series (True = speech)
        frame_duration: Duration of one frame in seconds
        total_duration: Duration of the whole recording in seconds

    Returns:
        Ascending, non-overlapping candidate ranges
    """
    mask = np.asarray(labels, dtype=bool)
    if mask.size == 0 or not mask.any():
        return []

    # Run-length encode the speech mask
    diff = np.diff(mask.astype(np.int8))
    run_starts = np.where(diff == 1)[0] + 1
    run_ends = np.where(diff == -1)[0] + 1
    if mask[0]:
        run_starts = np.r_[0, run_starts]
    open_at_end = bool(mask[-1])
    if open_at_end:
        run_ends = np.r_[run_ends, mask.size]

    ranges = []
    for start_idx, end_idx in zip(run_starts, run_ends):
        start = int(start_idx) * frame_duration
        end = int(end_idx) * frame_duration
        if open_at_end and int(end_idx) == mask.size:
            end = total_duration
        if end > start:
            ranges.append(TimeRange(start=start, end=end))
    return ranges


def merge_ranges(ranges: Iterable[TimeRange], min_gap: float) -> list[TimeRange]:
    """
    Fuse ranges separated by a gap strictly shorter than min_gap.

    Args:
        ranges: Ascending ranges
        min_gap: Gaps shorter than this are not worth trimming

    Returns:
        Ascending, non-overlapping ranges
    """
    merged: list[TimeRange] = []
    for current in ranges:
        if merged and current.start - merged[-1].end < min_gap:
            previous = merged[-1]
            merged[-1] = TimeRange(start=previous.start, end=max(previous.end, current.end))
        else:
            merged.append(current)
    return merged


def apply_edge_buffer(
    ranges: Iterable[TimeRange], edge_buffer: float, total_duration: float
) -> list[TimeRange]:
    """
    Pad each range on both sides and clamp it to the recording.

    Padding can make two neighbouring ranges overlap or touch; those are
    fused so the result stays non-overlapping.

    Args:
        ranges: Ascending, non-overlapping ranges
        edge_buffer: Padding in seconds
        total_duration: Duration of the whole recording in seconds

    Returns:
        Ascending, non-overlapping padded ranges
    """
    buffered: list[TimeRange] = []
    for current in ranges:
        start = max(0.0, current.start - edge_buffer)
        end = min(total_duration, current.end + edge_buffer)
        if end <= start:
            continue
        if buffered and start <= buffered[-1].end:
            previous = buffered[-1]
            logger.trace(
                f"Fusing padded ranges {previous.start:.3f}-{previous.end:.3f} "
                f"and {start:.3f}-{end:.3f}"
            )
            buffered[-1] = TimeRange(start=previous.start, end=max(previous.end, end))
        else:
            buffered.append(TimeRange(start=start, end=end))
    return buffered


def build_speech_ranges(
    labels: np.ndarray,
    frame_duration: float,
    total_duration: float,
    min_silence_duration: float,
    edge_buffer: float,
) -> list[TimeRange]:
    """
    Build the final list of speech ranges to keep.

    Args:
        labels: Speech label series
        frame_duration: Duration of one frame in seconds
        total_duration: Duration of the whole recording in seconds
        min_silence_duration: Shorter silences are kept
        edge_buffer: Padding around each kept range in seconds

    Returns:
        Ascending, non-overlapping ranges within [0, total_duration]

    Raises:
        NoSpeechDetectedError: If no speech range survives
    """
    candidates = frames_to_ranges(labels, frame_duration, total_duration)
    merged = merge_ranges(candidates, min_silence_duration)
    buffered = apply_edge_buffer(merged, edge_buffer, total_duration)

    logger.debug(
        f"Speech ranges: {len(candidates)} candidates -> {len(merged)} merged "
        f"-> {len(buffered)} buffered"
    )

    if not buffered:
        raise NoSpeechDetectedError("No speech detected in audio")
    return buffered
