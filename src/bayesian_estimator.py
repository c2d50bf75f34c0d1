"""
LAMA - Bayesian Drop Weights (Dirichlet-multinomial)

Combined per-item counts are treated as one multinomial observation over
the category's item population, with a symmetric Dirichlet(alpha) prior.
Dirichlet is conjugate to the multinomial, so the posterior is exactly

    Dirichlet(alpha + count_1, ..., alpha + count_k)

and no iterative sampler is needed. Each posterior draw is k independent
Gamma(alpha + count_i, 1) variates normalized to sum to 1.

"Convergence" diagnostics here are data-adequacy checks, not MCMC
diagnostics: draws are i.i.d., so the effective sample size is the
sample count itself.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from config import (
    CREDIBLE_INTERVAL,
    DEFAULT_SAMPLE_COUNT,
    DIRICHLET_ALPHA,
    MIN_ADEQUATE_OBSERVATIONS,
)
from dataset_records import DatasetRecord
from posterior_stats import PosteriorSummary, compute_statistics
from weight_estimator import combine_counts

logger = logging.getLogger(__name__)


def describe_model(alpha: float = DIRICHLET_ALPHA,
                   percentiles: Tuple[float, float] = CREDIBLE_INTERVAL) -> str:
    """Fixed model description stored with every result.

    Consumers compare it to detect that a cached result came from a
    different prior or interval definition.
    """
    lo, hi = percentiles
    return (
        f"Dirichlet-multinomial model; symmetric Dirichlet(alpha={alpha:g}) prior; "
        f"datasets pooled as independent, exchangeable multinomial observations; "
        f"exact conjugate posterior sampled i.i.d. via gamma ratios "
        f"(effective sample size = sample count); "
        f"credible interval from {lo:g}/{hi:g} marginal percentiles"
    )


@dataclass
class ConvergenceDiagnostics:
    adequate: bool
    effective_samples: int
    total_observations: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "adequate": self.adequate,
            "effectiveSamples": self.effective_samples,
            "totalObservations": self.total_observations,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConvergenceDiagnostics":
        return cls(
            adequate=bool(data["adequate"]),
            effective_samples=int(data["effectiveSamples"]),
            total_observations=int(data.get("totalObservations", 0)),
            warnings=list(data.get("warnings", [])),
        )


@dataclass
class BayesianResult:
    """Posterior over one category's weight vector."""

    weights: Dict[str, float]
    posterior_samples: Dict[str, List[float]]
    summary_statistics: Dict[str, PosteriorSummary]
    convergence_diagnostics: ConvergenceDiagnostics
    model_assumptions: str

    @property
    def sample_count(self) -> int:
        return max((len(s) for s in self.posterior_samples.values()), default=0)

    def to_dict(self) -> dict:
        return {
            "weights": dict(self.weights),
            "posteriorSamples": {k: list(v) for k, v in self.posterior_samples.items()},
            "summaryStatistics": {
                k: s.to_dict() for k, s in self.summary_statistics.items()
            },
            "convergenceDiagnostics": self.convergence_diagnostics.to_dict(),
            "modelAssumptions": self.model_assumptions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BayesianResult":
        """Inverse of to_dict. posteriorSamples may be absent (summary-only)."""
        return cls(
            weights={k: float(v) for k, v in data["weights"].items()},
            posterior_samples={
                k: [float(x) for x in v]
                for k, v in (data.get("posteriorSamples") or {}).items()
            },
            summary_statistics={
                k: PosteriorSummary.from_dict(v)
                for k, v in data["summaryStatistics"].items()
            },
            convergence_diagnostics=ConvergenceDiagnostics.from_dict(
                data["convergenceDiagnostics"]
            ),
            model_assumptions=str(data["modelAssumptions"]),
        )


# ── Sampling ────────────────────────────────────────────────

def sample_dirichlet(concentration: np.ndarray, sample_count: int,
                     rng: np.random.Generator) -> np.ndarray:
    """Draw `sample_count` Dirichlet vectors, shape (sample_count, k)."""
    gammas = rng.gamma(shape=concentration, scale=1.0,
                       size=(sample_count, concentration.size))
    # Sum largest-first so tiny components don't vanish against big ones
    totals = np.sort(gammas, axis=1)[:, ::-1].sum(axis=1)
    k = concentration.size
    out = np.empty_like(gammas)
    ok = totals > 0
    out[ok] = gammas[ok] / totals[ok, None]
    # All-underflow rows only happen with very small alpha and zero counts
    out[~ok] = 1.0 / k
    return out


def _diagnose(total_observations: int, sample_count: int,
              min_observations: int) -> ConvergenceDiagnostics:
    warnings = []
    if total_observations < min_observations:
        warnings.append(
            f"Only {total_observations} total observations "
            f"(recommended: >= {min_observations}); estimates are low-confidence"
        )
    return ConvergenceDiagnostics(
        adequate=not warnings,
        effective_samples=sample_count,
        total_observations=total_observations,
        warnings=warnings,
    )


def estimate_weights_bayesian(datasets: Sequence[DatasetRecord],
                              sample_count: int = DEFAULT_SAMPLE_COUNT,
                              alpha: float = DIRICHLET_ALPHA,
                              percentiles: Tuple[float, float] = CREDIBLE_INTERVAL,
                              min_observations: int = MIN_ADEQUATE_OBSERVATIONS,
                              seed: Optional[int] = None) -> BayesianResult:
    """Posterior samples, per-item summaries and adequacy diagnostics.

    Raises InsufficientDataError for zero datasets or an empty population.
    """
    if alpha <= 0:
        raise ValueError("alpha must be positive")
    if sample_count < 1:
        raise ValueError("sample_count must be at least 1")
    lo, hi = percentiles
    if not 0 <= lo < hi <= 100:
        raise ValueError("percentiles must satisfy 0 <= low < high <= 100")

    order, totals = combine_counts(datasets)
    counts = np.array([totals[i] for i in order], dtype=float)
    rng = np.random.default_rng(seed)

    draws = sample_dirichlet(counts + alpha, sample_count, rng)
    posterior_samples = {
        item_id: draws[:, j].tolist() for j, item_id in enumerate(order)
    }
    summary = compute_statistics(posterior_samples, percentiles)
    weights = {item_id: summary[item_id].mean for item_id in order}

    total_obs = int(counts.sum())
    diagnostics = _diagnose(total_obs, sample_count, min_observations)
    for w in diagnostics.warnings:
        logger.info(w)
    logger.debug(f"Bayesian over {len(datasets)} datasets: {len(order)} items, "
                 f"{total_obs} observations, {sample_count} draws")

    return BayesianResult(
        weights=weights,
        posterior_samples=posterior_samples,
        summary_statistics=summary,
        convergence_diagnostics=diagnostics,
        model_assumptions=describe_model(alpha, percentiles),
    )
