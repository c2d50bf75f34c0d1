"""
LAMA Core — game-agnostic weight estimation engine.

Usage:
    from core import WeightEngine, EngineConfig
    from games.poe1 import create_poe1_config

    engine = WeightEngine(create_poe1_config())
    engine.initialize()
    outcome = asyncio.run(engine.estimate_directory(path, mode="bayesian"))
"""

from core.engine_config import EngineConfig
from core.weight_engine import EstimateOutcome, WeightEngine

__all__ = [
    "WeightEngine",
    "EngineConfig",
    "EstimateOutcome",
]
