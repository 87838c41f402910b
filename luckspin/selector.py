"""
Weighted winner selection.

Weights are unnormalized masses: they are never rescaled to 100, a sector with
weight 30 next to one with weight 70 simply wins 30% of the time.
"""
import logging
import random

from luckspin.errors import ConfigurationWarning, InvalidConfiguration

logger = logging.getLogger(__name__)

PERCENT_TOLERANCE = 0.01


def total_weight(sectors):
    return sum(s.weight for s in sectors)


def _check_sectors(sectors):
    if not sectors:
        raise InvalidConfiguration("Cannot draw: the sector list is empty")
    for i, sector in enumerate(sectors):
        if sector.weight < 0:
            raise InvalidConfiguration(f"Sector {i} ('{sector.name}') has a negative weight")


def pick_index(weights, r):
    """
    Walk the cumulative distribution and return the first index whose running
    sum reaches r. A draw landing exactly on a boundary goes to the earlier
    sector; falls back to the last index if float error leaves r past the end.
    """
    cumulative = 0
    for i, weight in enumerate(weights):
        cumulative += weight
        if cumulative >= r:
            return i
    return len(weights) - 1


def rigged_index(sectors):
    """Lowest weight wins; ties go to the lowest index."""
    return min(range(len(sectors)), key=lambda i: (sectors[i].weight, i))


def select(sectors, rigged=False, rng=None):
    """Return the index of the winning sector."""
    _check_sectors(sectors)

    if rigged:
        index = rigged_index(sectors)
        logger.info(f"🎯 Rigged draw -> sector {index} ('{sectors[index].name}')")
        return index

    total = total_weight(sectors)
    if total <= 0:
        logger.warning("⚠️ All sector weights are zero, defaulting to sector 0")
        return 0

    rng = rng or random
    r = rng.random() * total
    index = pick_index([s.weight for s in sectors], r)
    logger.debug(f"Winner calculation: {r:.3f}/{total:.3f} -> sector {index}")
    return index


def weight_warning(sectors):
    """
    Advisory check used by the admin surface. Returns a ConfigurationWarning
    when the weights do not add up to 100, otherwise None. Never blocks a draw.
    """
    total = total_weight(sectors)
    if abs(total - 100) < PERCENT_TOLERANCE:
        return None
    return ConfigurationWarning(f"Total probability is {total:.2f}%, expected 100%")
