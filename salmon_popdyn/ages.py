"""Return-age proportions with multivariate logistic error.

Each brood year's recruits return over several ages. Interannual variation
in the age composition is generated by perturbing the mean proportions on
the log scale and renormalizing (Schnute & Richards 1995, eqns S.9-S.10):

    p_dum[y, k] = ppn_age[k] * exp(omega * eps[y, k])
    p[y, k]     = p_dum[y, k] / sum_k p_dum[y, k]

omega = 0 returns the mean proportions unchanged in every row.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
from scipy.stats import norm

from salmon_popdyn.types import TAIL_CUTOFF


def ppn_age_error(
    ppn_age: Sequence[float],
    omega: float,
    n_years: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Draw age proportions for n_years with logistic-normal variation.

    Args:
        ppn_age: Mean proportion returning at each age (length n_ages).
            NaN entries (e.g. 0/0 upstream) are treated as 0.
        omega: Interannual variability in proportions (>= 0).
        n_years: Number of rows to draw.
        rng: Random generator; a fresh default_rng() if None.

    Returns:
        Array (n_years, n_ages). Rows sum to 1 and are non-negative.
        If every mean proportion is 0, rows are 0/0 = nan; callers must
        not pass all-zero means.
    """
    if rng is None:
        rng = np.random.default_rng()

    ppn = np.array(ppn_age, dtype=np.float64)
    ppn[np.isnan(ppn)] = 0.0
    n_ages = ppn.shape[0]

    eps = norm.ppf(rng.uniform(TAIL_CUTOFF, 1.0 - TAIL_CUTOFF, size=(n_years, n_ages)))

    p_dum = ppn[np.newaxis, :] * np.exp(omega * eps)
    return p_dum / p_dum.sum(axis=1, keepdims=True)


def distribute_recruits(
    recruits: np.ndarray,
    proportions: np.ndarray,
    ages: Sequence[int],
    brood_year: int,
    returns: np.ndarray,
) -> None:
    """Add one brood year's recruits to future return years by age.

    Fish of age k return in year brood_year + k. Returns beyond the last
    row of the horizon are dropped.

    Args:
        recruits: (n_cu,) recruits from brood_year.
        proportions: (n_cu, n_ages) age proportions for each CU.
        ages: Return ages, aligned with the proportion columns.
        brood_year: Index of the brood year (may be negative for
            pre-simulation brood years).
        returns: (horizon, n_cu) return array, modified in place.
    """
    horizon = returns.shape[0]
    for k, age in enumerate(ages):
        year = brood_year + int(age)
        if 0 <= year < horizon:
            returns[year] += recruits * proportions[:, k]
