#!/usr/bin/env python3
"""Run Monte Carlo replicates for a salmon_popdyn configuration.

Loads a base YAML config (optionally merged with a scenario override),
runs the replicates and prints a per-CU summary: mean final spawners,
probability of ending at or below the extinction floor, and mean
realized harvest rate.

Usage:
    python scripts/run_scenario.py configs/central_coast_chum.yaml
    python scripts/run_scenario.py configs/central_coast_chum.yaml \
        --scenario configs/scenarios/high_constant_harvest.yaml --workers 4
"""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from salmon_popdyn.config import load_config
from salmon_popdyn.model import ReplicateSummary, run_replicates


def format_summary(summary: ReplicateSummary) -> str:
    """Per-CU table of replicate outcomes."""
    width = max(len(n) for n in summary.names) + 2
    lines = [
        f"{'CU':<{width}} {'Final S (mean)':>16} {'P(extinct)':>11} {'Mean h':>8}",
        f"{'-' * width} {'-' * 16} {'-' * 11} {'-' * 8}",
    ]
    mean_h = summary.harvest_rate.mean(axis=(0, 1))
    for i, name in enumerate(summary.names):
        lines.append(
            f"{name:<{width}} {summary.mean_final_spawners[i]:>16,.0f} "
            f"{summary.prob_extinct[i]:>11.3f} {mean_h[i]:>8.3f}"
        )
    return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════

def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Run stochastic stock-recruit replicates from a YAML config.",
        epilog="Example: python scripts/run_scenario.py configs/central_coast_chum.yaml",
    )
    parser.add_argument("config", help="Base configuration YAML")
    parser.add_argument(
        "--scenario", type=str, default=None,
        help="Scenario YAML merged over the base config",
    )
    parser.add_argument(
        "--replicates", type=int, default=None,
        help="Number of replicates (default: from config)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Master seed (default: from config)",
    )
    parser.add_argument(
        "--workers", type=int, default=None,
        help="Parallel worker threads (default: from config)",
    )
    parser.add_argument(
        "--quiet", action="store_true",
        help="Suppress progress output",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.replicates is not None:
        overrides.setdefault('simulation', {})['n_replicates'] = args.replicates
    if args.seed is not None:
        overrides.setdefault('simulation', {})['seed'] = args.seed
    if args.workers is not None:
        overrides.setdefault('simulation', {})['parallel_workers'] = args.workers

    config = load_config(args.config, scenario_path=args.scenario, overrides=overrides)
    summary = run_replicates(config)

    print("=" * 60)
    print(f"{summary.n_replicates} replicates x {config.simulation.n_years} years "
          f"(seed {summary.seed}, {summary.elapsed_s:.2f}s)")
    print("=" * 60)
    print(format_summary(summary))
    if not np.all(np.isfinite(summary.spawners)):
        print("\nWarning: non-finite spawner abundances in some replicates.")
    return summary


if __name__ == "__main__":
    main()
