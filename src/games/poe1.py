"""
Path of Exile loot-weight configuration factory.

Creates an EngineConfig populated from config.py so the CLI and any
embedding application share one set of model assumptions.
"""

from pathlib import Path
from typing import Optional

from core.engine_config import EngineConfig


def create_poe1_config(
    cache_dir: Optional[Path] = None,
    sample_count: Optional[int] = None,
    seed: Optional[int] = None,
    use_cache: bool = True,
) -> EngineConfig:
    """Create an EngineConfig for Path of Exile drop datasets.

    Args:
        cache_dir: Override cache directory. Defaults to config.CACHE_DIR.
        sample_count: Override posterior draws. Defaults to config.DEFAULT_SAMPLE_COUNT.
        seed: Fix the posterior sampler seed.
        use_cache: Disable the on-disk result cache when False.

    Returns:
        Fully populated EngineConfig.
    """
    from config import (
        CACHE_DIR,
        CACHE_KEY_PREFIX,
        CACHE_QUOTA_BYTES,
        CREDIBLE_INTERVAL,
        DEFAULT_SAMPLE_COUNT,
        DIRICHLET_ALPHA,
        DOWNSAMPLE_TARGET,
        KNOWN_CATEGORIES,
        MIN_ADEQUATE_OBSERVATIONS,
        MLE_EPSILON,
    )

    return EngineConfig(
        game_id="poe1",
        cache_dir=Path(cache_dir) if cache_dir else CACHE_DIR,
        categories=KNOWN_CATEGORIES,
        mle_epsilon=MLE_EPSILON,
        dirichlet_alpha=DIRICHLET_ALPHA,
        sample_count=sample_count if sample_count is not None else DEFAULT_SAMPLE_COUNT,
        credible_interval=CREDIBLE_INTERVAL,
        min_adequate_observations=MIN_ADEQUATE_OBSERVATIONS,
        seed=seed,
        use_cache=use_cache,
        cache_quota_bytes=CACHE_QUOTA_BYTES,
        cache_key_prefix=CACHE_KEY_PREFIX,
        downsample_target=DOWNSAMPLE_TARGET,
    )
