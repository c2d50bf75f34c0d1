"""
LAMA Drop Weights - Command-line entry point
Estimates per-item drop weights for a loot category from local datasets:
    index.json + datasetN.json → cache lookup → MLE / Bayesian estimate → table

Usage:
    python main.py data/catalysts                  # MLE weights
    python main.py data/catalysts --bayesian       # Posterior summaries
    python main.py --stats                         # Cache statistics
    python main.py --clear-cache                   # Drop every cached result
"""

import sys
import os
import asyncio
import logging
import argparse
from pathlib import Path

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import APP_VERSION, LOG_FILE, LOG_LEVEL
from core import WeightEngine
from errors import InvalidDatasetError
from games.poe1 import create_poe1_config
from weight_cache import MODE_BAYESIAN, MODE_MLE

logger = logging.getLogger("lama-weights")


# ─── Output ──────────────────────────────────────────

def print_weights(outcome):
    source = "cache" if outcome.from_cache else "computed"
    print(f"\n{outcome.category} ({outcome.mode}, {source})")
    print("=" * 60)

    if outcome.mode == MODE_MLE:
        for item_id, w in sorted(outcome.value.items(), key=lambda kv: -kv[1]):
            print(f"  {item_id:36s} {w * 100:8.3f}%")
        return

    result = outcome.value
    for item_id, w in sorted(result.weights.items(), key=lambda kv: -kv[1]):
        s = result.summary_statistics.get(item_id)
        if s is None:
            print(f"  {item_id:36s} {w * 100:8.3f}%")
            continue
        print(f"  {item_id:36s} {s.mean * 100:8.3f}%  "
              f"[{s.ci_low * 100:.3f} - {s.ci_high * 100:.3f}]")
    diag = result.convergence_diagnostics
    print("-" * 60)
    print(f"  Observations: {diag.total_observations}   "
          f"Effective samples: {diag.effective_samples}   "
          f"Adequate: {'yes' if diag.adequate else 'NO'}")
    for w in diag.warnings:
        print(f"  ! {w}")


def print_stats(stats):
    print("\nWeight cache")
    print("=" * 40)
    print(f"  Entries:    {stats.total_entries}")
    print(f"  Size:       {stats.total_size / 1024:.1f} KB")
    for mode, n in sorted(stats.entries_by_mode.items()):
        print(f"  {mode:11s} {n}")
    for cat, n in sorted(stats.entries_by_category.items()):
        print(f"  - {cat}: {n}")


# ─── Entry Point ─────────────────────────────────────

def setup_logging(debug: bool = False):
    """Configure logging.

    Console shows INFO+ only so the weight table stays readable.
    File gets DEBUG when --debug is used.
    """
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(
        "%(asctime)s %(message)s",
        datefmt="%H:%M:%S"
    ))

    file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG if debug else getattr(logging, LOG_LEVEL))
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.addHandler(console)
    root_logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"LAMA Drop Weights {APP_VERSION} - loot weight estimation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py data/catalysts                       # MLE weights
  python main.py data/catalysts --bayesian --seed 7   # Reproducible posterior
  python main.py data/scarabs --no-cache --debug      # Always recompute
        """
    )
    parser.add_argument(
        "directory", nargs="?", type=Path,
        help="Category directory holding index.json and dataset files"
    )
    parser.add_argument(
        "--category",
        help="Category id (default: directory name)"
    )
    parser.add_argument(
        "--bayesian", "-b",
        action="store_true",
        help="Bayesian posterior instead of the MLE point estimate"
    )
    parser.add_argument(
        "--samples", "-n",
        type=int, default=None,
        help="Posterior draws for --bayesian"
    )
    parser.add_argument(
        "--seed",
        type=int, default=None,
        help="Seed the posterior sampler"
    )
    parser.add_argument(
        "--cache-dir",
        type=Path, default=None,
        help="Result cache directory"
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Skip the result cache entirely"
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete every cached result and exit"
    )
    parser.add_argument(
        "--invalidate",
        metavar="CATEGORY",
        help="Delete cached results for one category and exit"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print cache statistics and exit"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    return parser


async def run(args) -> int:
    engine = WeightEngine(create_poe1_config(
        cache_dir=args.cache_dir,
        sample_count=args.samples,
        seed=args.seed,
        use_cache=not args.no_cache,
    ))
    engine.initialize()

    if args.clear_cache or args.invalidate or args.stats:
        if engine.cache is None:
            print("Cache is disabled")
            return 1
        if args.clear_cache:
            print(f"Cleared {await engine.cache.clear()} cache entries")
        if args.invalidate:
            n = await engine.cache.invalidate(args.invalidate)
            print(f"Invalidated {n} cache entries for {args.invalidate}")
        if args.stats:
            print_stats(await engine.cache.stats())
        return 0

    if args.directory is None:
        print("A category directory is required (see --help)")
        return 2

    mode = MODE_BAYESIAN if args.bayesian else MODE_MLE
    outcome = await engine.estimate_directory(args.directory, args.category, mode)
    if not outcome.ok:
        print(outcome.message)
        return 1
    print_weights(outcome)
    return 0


def main():
    args = build_parser().parse_args()
    setup_logging(debug=args.debug)

    try:
        sys.exit(asyncio.run(run(args)))
    except (InvalidDatasetError, FileNotFoundError) as e:
        logger.error(f"Could not load datasets: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
