"""
EngineConfig — every tunable the weight engine needs, as one dataclass.

Consumers build an EngineConfig (via a factory like create_poe1_config)
and pass it to WeightEngine, which hands the values to the estimators and
the cache instead of letting them read config.py directly.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Tuple


@dataclass
class EngineConfig:
    """Complete configuration for one game's weight engine."""

    # ── Identity ────────────────────────────────────────────
    game_id: str                          # e.g. "poe1"
    cache_dir: Path                       # on-disk result cache
    categories: FrozenSet[str] = field(default_factory=frozenset)

    # ── Model assumptions ───────────────────────────────────
    mle_epsilon: float = 1.0              # additive smoothing per item
    dirichlet_alpha: float = 1.0          # symmetric prior concentration
    sample_count: int = 2000              # posterior draws per run
    credible_interval: Tuple[float, float] = (2.5, 97.5)
    min_adequate_observations: int = 100
    seed: Optional[int] = None            # fixed seed for reproducible draws

    # ── Result cache ────────────────────────────────────────
    use_cache: bool = True
    cache_quota_bytes: Optional[int] = 5 * 1024 * 1024
    cache_key_prefix: str = "lama:weightCache:"
    downsample_target: int = 200          # posterior samples kept per item

    def __post_init__(self):
        if self.mle_epsilon <= 0:
            raise ValueError("mle_epsilon must be positive")
        if self.dirichlet_alpha <= 0:
            raise ValueError("dirichlet_alpha must be positive")
        if self.sample_count < 1:
            raise ValueError("sample_count must be at least 1")
        lo, hi = self.credible_interval
        if not 0 <= lo < hi <= 100:
            raise ValueError("credible_interval must satisfy 0 <= low < high <= 100")
