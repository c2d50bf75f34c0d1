"""
WeightEngine — facade over the estimators and the result cache.

Single entry point: the caller hands over a category id, its dataset
records and the live manifest; the engine answers from the cache when it
can, otherwise runs the requested estimator and writes the result back.

Usage:
    from core import WeightEngine
    from games.poe1 import create_poe1_config

    engine = WeightEngine(create_poe1_config())
    engine.initialize()
    outcome = asyncio.run(engine.estimate("catalysts", records, manifest))
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from core.engine_config import EngineConfig

logger = logging.getLogger(__name__)

CANNOT_ESTIMATE = "cannot estimate weights"


@dataclass
class EstimateOutcome:
    """What a category view needs: the weights, or why there are none."""

    category: str
    mode: str
    ok: bool
    value: Any = None                     # Dict[str, float] or BayesianResult
    from_cache: bool = False
    cache_write: Any = None               # PutOutcome when a write was attempted
    message: str = ""


class WeightEngine:
    """Cache-first weight estimation for one game's loot categories."""

    def __init__(self, config: EngineConfig, cache=None):
        self.config = config
        self._cache = cache
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def cache(self):
        return self._cache

    def initialize(self) -> bool:
        """Open the on-disk cache unless one was injected or caching is off.

        A cache that cannot be opened is logged and skipped: estimates are
        still produced, just never cached.
        """
        if self._cache is None and self.config.use_cache:
            try:
                from cache_storage import DiskStorage
                from weight_cache import WeightCache
                storage = DiskStorage(self.config.cache_dir,
                                      quota_bytes=self.config.cache_quota_bytes)
                self._cache = WeightCache(
                    storage,
                    downsample_target=self.config.downsample_target,
                    key_prefix=self.config.cache_key_prefix,
                )
            except OSError as e:
                logger.warning(f"Weight cache unavailable ({e}), continuing without it")
                self._cache = None
        self._ready = True
        logger.info(f"WeightEngine initialized (game={self.config.game_id}, "
                    f"cache={'on' if self._cache is not None else 'off'})")
        return self._ready

    # ── Public API ──────────────────────────────────────────

    def compute(self, datasets: Sequence, mode: str):
        """Run the estimator for `mode` directly, bypassing the cache.

        Raises InsufficientDataError when there is nothing to estimate from.
        """
        from weight_cache import MODE_BAYESIAN, MODE_MLE

        cfg = self.config
        if mode == MODE_MLE:
            from weight_estimator import estimate_weights_mle
            return estimate_weights_mle(datasets, epsilon=cfg.mle_epsilon)
        if mode == MODE_BAYESIAN:
            from bayesian_estimator import estimate_weights_bayesian
            return estimate_weights_bayesian(
                datasets,
                sample_count=cfg.sample_count,
                alpha=cfg.dirichlet_alpha,
                percentiles=cfg.credible_interval,
                min_observations=cfg.min_adequate_observations,
                seed=cfg.seed,
            )
        raise ValueError(f"Unknown estimation mode: {mode!r}")

    def model_description(self, mode: str) -> str:
        """Every parameter that shapes a `mode` result, as one string.

        Stored with cached results so a change of parameters is a miss.
        """
        from weight_cache import MODE_BAYESIAN

        cfg = self.config
        if mode == MODE_BAYESIAN:
            from bayesian_estimator import describe_model
            return (f"{describe_model(cfg.dirichlet_alpha, cfg.credible_interval)}; "
                    f"samples={cfg.sample_count}; "
                    f"min_observations={cfg.min_adequate_observations}")
        return f"smoothed MLE; epsilon={cfg.mle_epsilon!r}"

    async def estimate(self, category: str, datasets: Sequence, manifest,
                       mode: str = "mle") -> EstimateOutcome:
        """Weights for one category, from cache or freshly computed."""
        from errors import InsufficientDataError
        from weight_cache import CacheHit

        model = self.model_description(mode)
        if self._cache is not None:
            cached = await self._cache.get(category, None, manifest, mode, model)
            if isinstance(cached, CacheHit):
                logger.debug(f"Cache hit for {category} ({mode})")
                return EstimateOutcome(category=category, mode=mode, ok=True,
                                       value=cached.value, from_cache=True)
            logger.debug(f"Cache miss for {category} ({mode}): {cached.reason}")

        try:
            value = self.compute(datasets, mode)
        except InsufficientDataError as e:
            logger.warning(f"{CANNOT_ESTIMATE} for {category}: {e}")
            return EstimateOutcome(category=category, mode=mode, ok=False,
                                   message=f"{CANNOT_ESTIMATE}: {e}")

        write = None
        if self._cache is not None:
            write = await self._cache.put(category, None, manifest, mode, value, model)
        return EstimateOutcome(category=category, mode=mode, ok=True,
                               value=value, cache_write=write)

    async def estimate_directory(self, directory: Path, category: Optional[str] = None,
                                 mode: str = "mle") -> EstimateOutcome:
        """Load index.json + datasets from a local category directory and estimate.

        Invalid dataset files propagate as InvalidDatasetError.
        """
        from dataset_records import load_category

        directory = Path(directory)
        category = category or directory.name
        if self.config.categories and category not in self.config.categories:
            logger.warning(f"Category {category!r} is not a known {self.config.game_id} category")
        manifest, records = load_category(directory)
        return await self.estimate(category, records, manifest, mode)
