"""Summary statistics over per-item posterior samples."""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np

from config import CREDIBLE_INTERVAL, MIN_SUMMARY_SAMPLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PosteriorSummary:
    mean: float
    median: float
    ci_low: float
    ci_high: float

    def to_dict(self) -> dict:
        return {
            "mean": self.mean,
            "median": self.median,
            "ciLow": self.ci_low,
            "ciHigh": self.ci_high,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PosteriorSummary":
        return cls(
            mean=float(data["mean"]),
            median=float(data["median"]),
            ci_low=float(data["ciLow"]),
            ci_high=float(data["ciHigh"]),
        )


def _as_array(samples: Sequence[float]) -> np.ndarray:
    arr = np.asarray(samples, dtype=float)
    if arr.size == 0:
        raise ValueError("Samples array cannot be empty")
    return arr


def compute_median(samples: Sequence[float]) -> float:
    return float(np.median(_as_array(samples)))


def compute_credible_interval(samples: Sequence[float],
                              level: float = 0.95) -> Tuple[float, float]:
    """Equal-tailed interval holding `level` of the posterior mass."""
    if not 0 < level < 1:
        raise ValueError("Level must be between 0 and 1")
    tail = (1 - level) / 2 * 100
    lo, hi = np.percentile(_as_array(samples), [tail, 100 - tail])
    return float(lo), float(hi)


def summarize(samples: Sequence[float],
              percentiles: Tuple[float, float] = CREDIBLE_INTERVAL) -> PosteriorSummary:
    arr = _as_array(samples)
    lo, hi = np.percentile(arr, list(percentiles))
    return PosteriorSummary(
        mean=float(arr.mean()),
        median=float(np.median(arr)),
        ci_low=float(lo),
        ci_high=float(hi),
    )


def compute_statistics(posterior_samples: Dict[str, Sequence[float]],
                       percentiles: Tuple[float, float] = CREDIBLE_INTERVAL
                       ) -> Dict[str, PosteriorSummary]:
    """Summaries for every item with at least one sample."""
    if not posterior_samples:
        raise ValueError("Posterior samples cannot be empty")

    stats = {}
    for item_id, samples in posterior_samples.items():
        if len(samples) == 0:
            continue
        if len(samples) < MIN_SUMMARY_SAMPLES:
            logger.warning(f"Insufficient samples for {item_id}: {len(samples)} "
                           f"(minimum: {MIN_SUMMARY_SAMPLES})")
        stats[item_id] = summarize(samples, percentiles)
    return stats
