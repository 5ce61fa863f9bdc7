"""Seeded RNG streams and correlated process-error draws.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between Monte Carlo replicates
  - Bit-exact replay with the same master seed
  - Adding replicates doesn't affect existing replicates' streams
  - Within a replicate, recruitment, age and harvest draws come from
    separate streams, so switching e.g. the harvest error distribution
    leaves the recruitment deviations unchanged
"""

from __future__ import annotations

from typing import Dict, List, Union

import numpy as np

STREAM_NAMES = ('recruitment', 'ages', 'harvest')


def create_replicate_streams(
    master_seed: int,
    n_replicates: int,
) -> List[Dict[str, np.random.Generator]]:
    """Create independent RNG streams for each replicate.

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_replicates: Number of Monte Carlo replicates.

    Returns:
        List (one entry per replicate) of dicts mapping each name in
        STREAM_NAMES to a numpy Generator.

    Example:
        >>> streams = create_replicate_streams(42, n_replicates=10)
        >>> streams[3]['recruitment'].random()  # reproducible
    """
    ss = np.random.SeedSequence(master_seed)
    replicate_seeds = ss.spawn(n_replicates)

    streams = []
    for rep_seed in replicate_seeds:
        children = rep_seed.spawn(len(STREAM_NAMES))
        streams.append({
            name: np.random.Generator(np.random.PCG64(child))
            for name, child in zip(STREAM_NAMES, children)
        })
    return streams


def get_replicate_rngs(
    streams: List[Dict[str, np.random.Generator]],
    replicate: int,
) -> Dict[str, np.random.Generator]:
    """Get the stream dict for a specific replicate.

    Raises:
        KeyError: If the replicate index has no streams.
    """
    if not 0 <= replicate < len(streams):
        raise KeyError(
            f"No RNG streams for replicate {replicate}. "
            f"Available replicates: 0–{len(streams) - 1}"
        )
    return streams[replicate]


# ═══════════════════════════════════════════════════════════════════════
# CORRELATED PROCESS ERROR
# ═══════════════════════════════════════════════════════════════════════

def process_error_covariance(
    sigma: np.ndarray,
    correlation: Union[float, np.ndarray] = 0.0,
) -> np.ndarray:
    """Covariance matrix of recruitment deviations among CUs.

    Args:
        sigma: (n_cu,) process-error SDs.
        correlation: Shared off-diagonal correlation, or a full (n_cu, n_cu)
            correlation matrix.

    Returns:
        (n_cu, n_cu) covariance, Sigma_ij = corr_ij * sigma_i * sigma_j.
    """
    sigma = np.atleast_1d(np.asarray(sigma, dtype=np.float64))
    n = sigma.shape[0]
    if np.ndim(correlation) == 0:
        corr = np.full((n, n), float(correlation))
        np.fill_diagonal(corr, 1.0)
    else:
        corr = np.asarray(correlation, dtype=np.float64)
        if corr.shape != (n, n):
            raise ValueError(
                f"correlation matrix must be ({n}, {n}), got {corr.shape}"
            )
    return corr * np.outer(sigma, sigma)


def process_error_draw(
    rng: np.random.Generator,
    sigma: np.ndarray,
    correlation: Union[float, np.ndarray] = 0.0,
) -> np.ndarray:
    """One year of multivariate-normal recruitment deviations.

    Returns:
        (n_cu,) draw with mean 0 and covariance from process_error_covariance.
    """
    cov = process_error_covariance(sigma, correlation)
    return rng.multivariate_normal(np.zeros(cov.shape[0]), cov)


# ═══════════════════════════════════════════════════════════════════════
# CHECKPOINTING
# ═══════════════════════════════════════════════════════════════════════

def rng_state_snapshot(
    rngs: Dict[str, np.random.Generator],
) -> Dict[str, dict]:
    """Bit-generator state of every stream in one replicate's dict."""
    return {name: rngs[name].bit_generator.state for name in STREAM_NAMES}


def restore_rng_state(states: Dict[str, dict]) -> Dict[str, np.random.Generator]:
    """Rebuild a replicate's stream dict from rng_state_snapshot().

    The rebuilt generators continue exactly where the snapshot was taken.

    Raises:
        KeyError: If states is missing a stream or names an unknown one.
    """
    unknown = set(states) - set(STREAM_NAMES)
    if unknown:
        raise KeyError(f"Unknown RNG stream(s) in saved state: {sorted(unknown)}")
    missing = [name for name in STREAM_NAMES if name not in states]
    if missing:
        raise KeyError(f"Saved RNG state has no entry for stream(s): {missing}")

    rngs = {}
    for name in STREAM_NAMES:
        bit_generator = np.random.PCG64()
        bit_generator.state = states[name]
        rngs[name] = np.random.Generator(bit_generator)
    return rngs
