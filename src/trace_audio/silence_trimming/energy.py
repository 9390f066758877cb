"""Short-time RMS energy analysis of recorded speech."""

import threading

import numpy as np

from .config import ANALYSIS_BATCH_FRAMES
from .exceptions import ConfigurationError, TrimmingCancelledError
from .logging_utils import get_logger

logger = get_logger(__name__)


def to_mono(samples: np.ndarray) -> np.ndarray:
    """
    Downmix samples to a single channel.

    Channels are averaged sample by sample (arithmetic mean, not power weighted).

    Args:
        samples: Array of shape (frames,) or (frames, channels)

    Returns:
        1-D float64 array of mono samples
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim == 1:
        return data
    if data.ndim != 2:
        raise ValueError(f"Expected 1-D or 2-D samples, got shape {data.shape}")
    if data.shape[1] == 1:
        return data[:, 0]
    return data.mean(axis=1)


def frame_size_for(sample_rate: int, frame_duration: float) -> int:
    """
    Number of samples in one analysis frame.

    Args:
        sample_rate: Sample rate in Hz
        frame_duration: Frame duration in seconds

    Returns:
        round(sample_rate * frame_duration)

    Raises:
        ConfigurationError: If a frame would hold less than one sample
    """
    if frame_duration <= 0 or sample_rate <= 0 or frame_duration * sample_rate < 1:
        raise ConfigurationError(
            f"Frame duration {frame_duration}s at {sample_rate}Hz "
            f"is shorter than one sample"
        )
    return int(round(sample_rate * frame_duration))


def compute_frame_energies(
    samples: np.ndarray,
    sample_rate: int,
    frame_duration: float,
    cancel_event: threading.Event | None = None,
) -> np.ndarray:
    """
    Compute the RMS energy of each fixed-duration frame.

    The trailing partial frame, if any, is dropped.

    Args:
        samples: Amplitudes in [-1, 1], mono or (frames, channels)
        sample_rate: Sample rate in Hz
        frame_duration: Frame duration in seconds
        cancel_event: Optional signal checked before each batch of frames

    Returns:
        1-D array with one non-negative energy per whole frame

    Raises:
        ConfigurationError: If the frame duration is degenerate
        TrimmingCancelledError: If cancel_event is set during analysis
    """
    frame_size = frame_size_for(sample_rate, frame_duration)
    mono = to_mono(samples)
    frame_count = len(mono) // frame_size

    if frame_count == 0:
        logger.debug(
            f"Audio shorter than one frame: {len(mono)} samples < {frame_size}"
        )
        return np.zeros(0, dtype=np.float64)

    frames = mono[: frame_count * frame_size].reshape(frame_count, frame_size)
    energies = np.empty(frame_count, dtype=np.float64)

    for batch_start in range(0, frame_count, ANALYSIS_BATCH_FRAMES):
        if cancel_event is not None and cancel_event.is_set():
            logger.debug(f"Energy analysis cancelled at frame {batch_start}/{frame_count}")
            raise TrimmingCancelledError("Energy analysis was cancelled")

        batch_end = min(batch_start + ANALYSIS_BATCH_FRAMES, frame_count)
        batch = frames[batch_start:batch_end]
        energies[batch_start:batch_end] = np.sqrt(np.mean(batch**2, axis=1))
        logger.trace(f"Analyzed frames {batch_start}-{batch_end} of {frame_count}")

    dropped = len(mono) - frame_count * frame_size
    logger.debug(
        f"🔊 Computed {frame_count} frame energies "
        f"(frame_size={frame_size} samples, dropped {dropped} trailing samples)"
    )
    return energies
