"""Statistical speech/silence classification of frame energies."""

import numpy as np

from .config import ENERGY_EPSILON
from .logging_utils import get_logger

logger = get_logger(__name__)


def compute_speech_threshold(energies: np.ndarray, threshold_sd: float) -> float | None:
    """
    Derive a single energy threshold for the whole clip.

    Frames at or below ENERGY_EPSILON are digital silence (muted capture
    gaps) and are left out of the statistics.

    Args:
        energies: Frame energy series
        threshold_sd: Standard deviations below the mean energy

    Returns:
        max(0, mean - threshold_sd * std), or None when every frame is
        digital silence
    """
    energies = np.asarray(energies, dtype=np.float64)
    population = energies[energies > ENERGY_EPSILON]
    if population.size == 0:
        return None

    mean = float(np.mean(population))
    std = float(np.std(population))
    threshold = max(0.0, mean - threshold_sd * std)
    logger.debug(
        f"Energy stats over {population.size}/{energies.size} frames: "
        f"mean={mean:.5f}, std={std:.5f}, threshold={threshold:.5f}"
    )
    return threshold


def classify_frames(energies: np.ndarray, threshold_sd: float) -> np.ndarray:
    """
    Label each frame as speech (True) or silence (False).

    Args:
        energies: Frame energy series
        threshold_sd: Standard deviations below the mean energy

    Returns:
        Boolean array parallel to energies
    """
    energies = np.asarray(energies, dtype=np.float64)
    threshold = compute_speech_threshold(energies, threshold_sd)
    if threshold is None:
        logger.debug("All frames are digital silence, no speech frames")
        return np.zeros(energies.shape, dtype=bool)
    return energies >= threshold
