"""
LAMA - Drop Weights via Maximum Likelihood

Combines observed drop counts across every dataset of a category into one
point estimate per item:

    weight_i = (count_i + eps) / sum_j (count_j + eps)

The additive eps keeps never-observed items strictly positive: no
observation is weak evidence of rarity, not proof of impossibility.
Pure Python, deterministic, O(items x datasets).
"""

import logging
from typing import Dict, List, Sequence, Tuple

from config import MLE_EPSILON
from dataset_records import DatasetRecord
from errors import InsufficientDataError

logger = logging.getLogger(__name__)


def combine_counts(datasets: Sequence[DatasetRecord]) -> Tuple[List[str], Dict[str, int]]:
    """Union of all populations (first-seen order) and per-item count totals.

    Raises InsufficientDataError for zero datasets or an empty population.
    """
    if not datasets:
        raise InsufficientDataError("Datasets array cannot be empty")

    order: List[str] = []
    totals: Dict[str, int] = {}
    for ds in datasets:
        for item_id in ds.population:
            if item_id not in totals:
                totals[item_id] = 0
                order.append(item_id)
        for item_id, count in ds.counts.items():
            if item_id not in totals:
                totals[item_id] = 0
                order.append(item_id)
            totals[item_id] += count

    if not order:
        raise InsufficientDataError("Combined item population is empty")
    return order, totals


def estimate_weights_mle(datasets: Sequence[DatasetRecord],
                         epsilon: float = MLE_EPSILON) -> Dict[str, float]:
    """Smoothed maximum-likelihood weight per item. Values sum to 1."""
    if epsilon <= 0:
        raise ValueError("epsilon must be positive")

    order, totals = combine_counts(datasets)
    if len(order) == 1:
        return {order[0]: 1.0}

    smoothed = {item_id: totals[item_id] + epsilon for item_id in order}
    denom = sum(sorted(smoothed.values(), reverse=True))
    weights = {item_id: smoothed[item_id] / denom for item_id in order}

    logger.debug(f"MLE over {len(datasets)} datasets: {len(order)} items, "
                 f"{sum(totals.values())} observations")
    return weights
