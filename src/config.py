"""
LAMA Drop Weights - Configuration
All tunable constants in one place.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

# ─────────────────────────────────────────────
# Version
# ─────────────────────────────────────────────
_version_file = Path(__file__).resolve().parent.parent / "resources" / "VERSION"
APP_VERSION = _version_file.read_text().strip() if _version_file.exists() else "dev"

# ─────────────────────────────────────────────
# MLE Estimator
# ─────────────────────────────────────────────
# Additive smoothing added to every item's combined count before
# normalizing. Unobserved != impossible.
MLE_EPSILON = 1.0

# ─────────────────────────────────────────────
# Bayesian Estimator
# ─────────────────────────────────────────────
# Symmetric Dirichlet prior concentration (must be > 0)
DIRICHLET_ALPHA = 1.0

# Posterior draws per inference run
DEFAULT_SAMPLE_COUNT = 2000

# Marginal percentiles used for the credible interval
CREDIBLE_INTERVAL = (2.5, 97.5)

# Below this many combined observations the result is flagged low-confidence
MIN_ADEQUATE_OBSERVATIONS = 100

# Summary statistics are unreliable with fewer draws than this
MIN_SUMMARY_SAMPLES = 100

# ─────────────────────────────────────────────
# Result Cache
# ─────────────────────────────────────────────
CACHE_KEY_PREFIX = "lama:weightCache:"

# Posterior samples kept per item when a Bayesian result is persisted
DOWNSAMPLE_TARGET = 200

# Local cache directory
CACHE_DIR = Path(os.environ.get(
    "LAMA_WEIGHTS_CACHE_DIR",
    Path(os.path.expanduser("~")) / ".lama-weights" / "cache",
))

# Byte quota for the on-disk store (roughly a browser LocalStorage budget)
CACHE_QUOTA_BYTES = int(os.environ.get("LAMA_WEIGHTS_CACHE_QUOTA", 5 * 1024 * 1024))

# ─────────────────────────────────────────────
# Dataset files
# ─────────────────────────────────────────────
# Loot categories with submitted drop datasets
KNOWN_CATEGORIES = frozenset({
    "scarabs", "divination-cards", "catalysts", "essences", "fossils",
    "oils", "tattoos", "delirium-orbs", "breach", "legion",
})

MANIFEST_FILENAME = "index.json"
DATASET_NAME_MAX_LENGTH = 200

# ─────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────
LOG_LEVEL = "INFO"
LOG_FILE = Path(os.path.expanduser("~")) / ".lama-weights" / "weights.log"
