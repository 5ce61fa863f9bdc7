"""Ricker stock-recruitment with AR(1) process error.

Recruitment follows the Ricker curve with autocorrelated log-normal
deviations (Peterman et al. 2003 parameterization):

    phi_t = rho * phi_{t-1} + error_t
    R_t   = S_t * exp(a - b*S_t) * exp(phi_t)

The error term is drawn OUTSIDE this module (see rng.process_error_draw)
so recruitment is deterministic given its inputs and among-CU correlation
is set entirely by the caller's covariance matrix. With rho = 0 and
phi_last = 0 this reduces to a standard memoryless Ricker model.

References:
  - Peterman, Pyper & MacGregor (2003) CJFAS 60: 809-824
  - Holt et al. (2018) CSAS Res. Doc. 2018/011, Appendix F
"""

from __future__ import annotations

from typing import Optional, Tuple, Union

import numpy as np

ArrayLike = Union[float, np.ndarray]


# ═══════════════════════════════════════════════════════════════════════
# RICKER MODEL
# ═══════════════════════════════════════════════════════════════════════

def ricker_model(
    S: ArrayLike,
    a: ArrayLike,
    b: ArrayLike,
    error: ArrayLike,
    rho: ArrayLike = 0.0,
    phi_last: ArrayLike = 0.0,
    recruit_cap: Optional[float] = None,
    extinction_threshold: float = 0.0,
) -> Tuple[ArrayLike, ArrayLike]:
    """Recruits from spawners via Ricker curve with AR(1) deviation.

    All array arguments broadcast elementwise (one entry per CU). The
    extinction floor and the recruitment cap are applied after the Ricker
    formula, in that order, as index-wise overrides.

    Args:
        S: Spawner abundance.
        a: Productivity (log recruits per spawner at low abundance).
        b: Density dependence.
        error: Process-error draw for this brood year.
        rho: AR(1) coefficient.
        phi_last: Deviation from the previous brood year.
        recruit_cap: Hard ceiling on recruits; None = unbounded.
        extinction_threshold: R is set to 0 wherever S <= this value.

    Returns:
        (R, phi). Floats when every input is scalar, otherwise arrays of the
        broadcast shape. phi is returned for extinct entries as well.

    Note:
        Overflow in exp() is not trapped; inf/nan propagate to the caller.

    Example:
        >>> R, phi = ricker_model(S=1.1, a=1.8, b=1.2, error=0.3)
        >>> round(R, 3), phi
        (2.4, 0.3)
    """
    scalar = all(np.ndim(x) == 0 for x in (S, a, b, error, rho, phi_last))

    S_arr = np.asarray(S, dtype=np.float64)
    phi = np.asarray(rho, dtype=np.float64) * np.asarray(phi_last, dtype=np.float64) \
        + np.asarray(error, dtype=np.float64)

    R = S_arr * np.exp(np.asarray(a, dtype=np.float64)
                       - np.asarray(b, dtype=np.float64) * S_arr) * np.exp(phi)
    R = np.array(R, dtype=np.float64, ndmin=1)

    extinct = np.broadcast_to(np.atleast_1d(S_arr), R.shape) <= extinction_threshold
    R[extinct] = 0.0

    if recruit_cap is not None:
        R[R > recruit_cap] = recruit_cap

    if scalar:
        return float(R[0]), float(phi)
    shape = np.broadcast(S_arr, phi, np.asarray(a), np.asarray(b)).shape
    return R.reshape(shape), np.broadcast_to(phi, shape).copy()


def ricker_deterministic(S: ArrayLike, a: ArrayLike, b: ArrayLike) -> ArrayLike:
    """Expected recruits without process error, S * exp(a - b*S)."""
    R = np.asarray(S, dtype=np.float64) * np.exp(a - np.asarray(b) * np.asarray(S))
    return float(R) if np.ndim(R) == 0 else R
