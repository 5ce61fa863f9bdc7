"""Harvest control rule and realized harvest rates.

Target rates come from a saturating exponential harvest control rule (HCR)
fit offline to exploitation-rate vs. total-return data:

    h_target = max(min_rate, hmax * (1 - exp(d * (m - N))))

Realized rates add outcome uncertainty around the target, either as a beta
distribution (method of moments) or as normal error with out-of-range draws
resampled (Holt et al. 2018, eqn F19).

References:
  - Holt et al. (2018) CSAS Res. Doc. 2018/011, Appendix F
"""

from __future__ import annotations

import warnings
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from scipy.stats import norm

from salmon_popdyn.exceptions import InvalidArgumentError, ResampleExhaustedError
from salmon_popdyn.types import TAIL_CUTOFF, ErrorType

ArrayLike = Union[float, np.ndarray]

# Default bound on rejection passes for normal error. None = unbounded.
DEFAULT_MAX_RESAMPLE = 10_000


# ═══════════════════════════════════════════════════════════════════════
# HARVEST CONTROL RULE
# ═══════════════════════════════════════════════════════════════════════

def harvest_control_rule(
    total_return: ArrayLike,
    hmax: float,
    d: float,
    m: float,
    min_rate: float = 0.0,
) -> ArrayLike:
    """Target exploitation rate for a given total return.

    Args:
        total_return: Returning abundance (escapement + harvest).
        hmax: Asymptotic maximum harvest rate.
        d: Rate at which the target approaches hmax.
        m: Return size below which the curve is negative (floored).
        min_rate: Floor on the target rate.

    Returns:
        Target rate(s); float for scalar input.
    """
    N = np.asarray(total_return, dtype=np.float64)
    h = np.maximum(min_rate, hmax * (1.0 - np.exp(d * (m - N))))
    return float(h) if h.ndim == 0 else h


# ═══════════════════════════════════════════════════════════════════════
# REALIZED HARVEST RATE
# ═══════════════════════════════════════════════════════════════════════

def beta_shape_params(mean: ArrayLike, sd: float) -> Tuple[ArrayLike, ArrayLike]:
    """Beta shape parameters matching a mean and standard deviation.

    Positive only when sd**2 < mean * (1 - mean).
    """
    mean = np.asarray(mean, dtype=np.float64)
    var = sd ** 2
    shape1 = (mean ** 2 - mean ** 3 - var * mean) / var
    shape2 = (mean * (1.0 - mean) ** 2 - var * (1.0 - mean)) / var
    if shape1.ndim == 0:
        return float(shape1), float(shape2)
    return shape1, shape2


def _normal_draw(rng: np.random.Generator, n: int, sigma: float) -> np.ndarray:
    """Normal(0, sigma) deviates via inverse CDF of trimmed uniforms."""
    if sigma == 0:
        # scipy returns nan for scale=0; a zero-width error is no error
        rng.uniform(size=n)
        return np.zeros(n)
    return norm.ppf(rng.uniform(TAIL_CUTOFF, 1.0 - TAIL_CUTOFF, size=n), 0.0, sigma)


def realized_harvest_rate(
    target_harvest: Union[float, Sequence[float], np.ndarray],
    sigma_harvest: float,
    n_years: Optional[int] = None,
    error_type: Union[str, ErrorType] = ErrorType.BETA,
    rng: Optional[np.random.Generator] = None,
    max_iter: Optional[int] = DEFAULT_MAX_RESAMPLE,
) -> np.ndarray:
    """Draw realized harvest rates in [0, 1] around a target.

    Args:
        target_harvest: Single target rate, or one per year.
        sigma_harvest: SD of realized rate around target.
        n_years: Number of rates to return. Defaults to len(target_harvest).
            Must equal len(target_harvest) when a series is given.
        error_type: 'beta' or 'normal'.
        rng: Random generator; a fresh default_rng() if None.
        max_iter: Maximum resampling passes for normal error before
            giving up. None loops until every rate is in range.

    Returns:
        Array (n_years,) of realized rates. Beta draws with non-positive
        shape parameters are nan (a RuntimeWarning is issued). With
        sigma_harvest = 0 both error types return the target unchanged.

    Raises:
        InvalidArgumentError: Unknown error_type, or a target series whose
            length differs from n_years.
        ResampleExhaustedError: Normal error still out of range after
            max_iter passes.
    """
    try:
        error_type = ErrorType(error_type)
    except ValueError:
        raise InvalidArgumentError(
            f"Unknown error distribution '{error_type}'. Must be beta or normal."
        ) from None

    target = np.atleast_1d(np.asarray(target_harvest, dtype=np.float64))
    if n_years is None:
        n_years = target.shape[0]
    if target.shape[0] > 1 and target.shape[0] != n_years:
        raise InvalidArgumentError(
            f"If len(target_harvest) > 1 it must equal n_years; "
            f"got {target.shape[0]} targets for {n_years} years"
        )

    if rng is None:
        rng = np.random.default_rng()

    if error_type is ErrorType.BETA:
        return _beta_harvest(target, sigma_harvest, n_years, rng)
    return _normal_harvest(target, sigma_harvest, n_years, rng, max_iter)


def _beta_harvest(
    target: np.ndarray,
    sigma: float,
    n_years: int,
    rng: np.random.Generator,
) -> np.ndarray:
    if sigma == 0:
        # Shapes diverge as sd -> 0; the limiting beta is a point mass at the mean
        return np.broadcast_to(target, (n_years,)).astype(np.float64)
    shape1, shape2 = beta_shape_params(target, sigma)
    shape1 = np.broadcast_to(shape1, (n_years,))
    shape2 = np.broadcast_to(shape2, (n_years,))

    rates = np.full(n_years, np.nan)
    valid = (shape1 > 0) & (shape2 > 0)
    if not valid.all():
        warnings.warn(
            f"Beta shape parameters are non-positive for {int((~valid).sum())} of "
            f"{n_years} years (sigma_harvest={sigma} too large for target); "
            f"returning nan for those years.",
            RuntimeWarning,
            stacklevel=3,
        )
    if valid.any():
        rates[valid] = rng.beta(shape1[valid], shape2[valid])
    return rates


def _normal_harvest(
    target: np.ndarray,
    sigma: float,
    n_years: int,
    rng: np.random.Generator,
    max_iter: Optional[int],
) -> np.ndarray:
    target = np.broadcast_to(target, (n_years,))
    rates = target + _normal_draw(rng, n_years, sigma)

    n_pass = 0
    out = (rates < 0.0) | (rates > 1.0)
    while out.any():
        if max_iter is not None and n_pass >= max_iter:
            raise ResampleExhaustedError(
                f"{int(out.sum())} harvest rate(s) still outside [0, 1] after "
                f"{max_iter} resampling passes (sigma_harvest={sigma})"
            )
        rates[out] = target[out] + _normal_draw(rng, int(out.sum()), sigma)
        out = (rates < 0.0) | (rates > 1.0)
        n_pass += 1
    return rates
