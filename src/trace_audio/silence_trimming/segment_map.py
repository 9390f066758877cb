"""Segment map construction and compacted-to-original timestamp remapping."""

from bisect import bisect_right
from collections.abc import Iterable, Sequence

from .config import DEFAULT_SPEED_MULTIPLIER, REMAP_BOUNDARY_TOLERANCE
from .exceptions import ConfigurationError, NoSpeechDetectedError
from .logging_utils import get_logger
from .models import Segment, SegmentMap, TimeRange, TranscribedWord

logger = get_logger(__name__)


def build_segment_map(
    ranges: Sequence[TimeRange],
    original_duration: float,
    speed_multiplier: float = DEFAULT_SPEED_MULTIPLIER,
) -> SegmentMap:
    """
    Lay the kept ranges end to end in a compacted timeline.

    The speed multiplier is stored as metadata only; it is applied when the
    compacted audio is materialized.

    Args:
        ranges: Ascending, non-overlapping speech ranges
        original_duration: Duration of the original recording in seconds
        speed_multiplier: Playback speed of the materialized compacted audio

    Returns:
        Immutable SegmentMap

    Raises:
        ConfigurationError: If speed_multiplier is not positive
        NoSpeechDetectedError: If ranges is empty
    """
    if speed_multiplier <= 0:
        raise ConfigurationError(
            f"speed_multiplier must be positive, got {speed_multiplier}"
        )
    if not ranges:
        raise NoSpeechDetectedError("Cannot build a segment map without speech ranges")

    segments = []
    position = 0.0
    for time_range in ranges:
        duration = time_range.end - time_range.start
        if duration <= 0:
            continue
        segments.append(
            Segment(
                compacted_start=position,
                original_start=time_range.start,
                duration=duration,
            )
        )
        position = position + duration

    if not segments:
        raise NoSpeechDetectedError("All speech ranges were empty")

    segment_map = SegmentMap(
        segments=tuple(segments),
        original_duration=original_duration,
        compacted_duration=position,
        speed_multiplier=speed_multiplier,
    )
    logger.debug(
        f"Built segment map: {len(segments)} segments, "
        f"{original_duration:.2f}s -> {position:.2f}s at {speed_multiplier}x"
    )
    return segment_map


def remap_to_original(segment_map: SegmentMap, playback_time: float) -> float:
    """
    Map a time in the sped-up compacted audio back to the original recording.

    Never fails: times past the last segment are extrapolated linearly from
    its end, and negative times or an empty map return the compacted time.

    Args:
        segment_map: Map produced for the compacted audio
        playback_time: Time reported against the sped-up compacted audio

    Returns:
        Time in the original recording, in seconds
    """
    compacted_time = playback_time * segment_map.speed_multiplier
    segments = segment_map.segments
    if not segments or compacted_time < 0:
        return compacted_time

    starts = segment_map.compacted_starts
    index = bisect_right(starts, compacted_time) - 1
    if index < 0:
        return compacted_time

    # Undo float drift from the speed multiplier right before a boundary
    next_index = index + 1
    if (
        next_index < len(segments)
        and starts[next_index] - compacted_time <= REMAP_BOUNDARY_TOLERANCE
    ):
        index = next_index

    segment = segments[index]
    if compacted_time < segment.compacted_end:
        return segment.original_start + (compacted_time - segment.compacted_start)

    # At or past the end of the last segment
    return segment.original_end + (compacted_time - segment.compacted_end)


def remap_words(
    segment_map: SegmentMap, words: Iterable[TranscribedWord]
) -> list[TranscribedWord]:
    """
    Move a batch of transcribed words onto the original timeline.

    Args:
        segment_map: Map produced for the compacted audio
        words: Words timed against the compacted audio

    Returns:
        New words with remapped start and end times
    """
    remapped = [word.remapped(segment_map) for word in words]
    logger.trace(f"Remapped {len(remapped)} word timestamps")
    return remapped
