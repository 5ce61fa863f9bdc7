"""Core data types for salmon_popdyn.

Value objects passed between the recruitment, age and harvest components.
None of them hold hidden state: the AR(1) deviation (phi) and spawner
history are carried forward explicitly by the year loop in model.py.

  - ErrorType: outcome-error distribution for realized harvest rates
  - StockRecruitParameters: Ricker a/b, process error and floors per CU
  - SubpopulationState: one CU's spawners, recruits and phi for one year
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class ErrorType(str, Enum):
    """Distribution of realized harvest rate around its target."""
    BETA = "beta"       # Method-of-moments beta; bounded in [0, 1]
    NORMAL = "normal"   # Normal with rejection resampling outside [0, 1]


# Minimum uniform quantile for inverse-CDF normal deviates. Draws are taken
# from U(TAIL_CUTOFF, 1 - TAIL_CUTOFF) so norm.ppf never returns ±inf.
TAIL_CUTOFF = 0.0001


# ═══════════════════════════════════════════════════════════════════════
# STOCK-RECRUIT PARAMETERS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class StockRecruitParameters:
    """Ricker stock-recruit parameters for one conservation unit.

    R = S * exp(a - b*S) * exp(phi),  phi_t = rho * phi_{t-1} + error_t
    """
    name: str = "CU"
    a: float = 1.0                          # Log-scale productivity
    b: float = 1.0                          # Density dependence (1 / abundance)
    sigma: float = 0.5                      # Process error SD (log scale)
    rho: float = 0.0                        # AR(1) coefficient
    recruit_cap: Optional[float] = None     # Hard ceiling on R (None = unbounded)
    extinction_threshold: float = 0.0       # S <= threshold -> R = 0
    initial_recruits: Optional[float] = None  # Pre-simulation brood recruits (None = a/b)

    @property
    def equilibrium_spawners(self) -> float:
        """Unfished equilibrium S* = a / b (no process error)."""
        return self.a / self.b

    @property
    def spawners_at_max_recruitment(self) -> float:
        """Spawner abundance maximizing deterministic recruitment, 1 / b."""
        return 1.0 / self.b


def stack_parameters(params: Sequence[StockRecruitParameters]) -> dict:
    """Column-stack per-CU parameters into arrays for vectorized calls.

    recruit_cap is collapsed to a single scalar (the CUs must agree, or all
    be None) because the Ricker cap is applied as one post-hoc threshold.
    Extinction thresholds must agree for the same reason.

    Returns:
        Dict with 'a', 'b', 'sigma', 'rho' arrays of shape (n_cu,) and
        'recruit_cap', 'extinction_threshold' scalars.

    Raises:
        ValueError: If the CUs disagree on recruit_cap or extinction_threshold.
    """
    caps = {p.recruit_cap for p in params}
    thresholds = {p.extinction_threshold for p in params}
    if len(caps) > 1:
        raise ValueError(f"recruit_cap must be shared by all CUs, got {sorted(caps, key=str)}")
    if len(thresholds) > 1:
        raise ValueError(
            f"extinction_threshold must be shared by all CUs, got {sorted(thresholds)}"
        )
    return {
        'a': np.array([p.a for p in params], dtype=np.float64),
        'b': np.array([p.b for p in params], dtype=np.float64),
        'sigma': np.array([p.sigma for p in params], dtype=np.float64),
        'rho': np.array([p.rho for p in params], dtype=np.float64),
        'recruit_cap': caps.pop(),
        'extinction_threshold': thresholds.pop(),
    }


# ═══════════════════════════════════════════════════════════════════════
# PER-YEAR STATE
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SubpopulationState:
    """State of one CU after one simulated year.

    phi becomes the phi_last input of the following year's Ricker call.
    It keeps its value through extinction (not reset). A CU is extinct when
    its spawners are at or below the extinction threshold, the same floor
    that zeroes its recruits.
    """
    name: str
    spawners: float
    recruits: float
    phi: float
    extinction_threshold: float = 0.0

    @property
    def extinct(self) -> bool:
        return self.spawners <= self.extinction_threshold


def states_from_arrays(
    names: Sequence[str],
    spawners: np.ndarray,
    recruits: np.ndarray,
    phi: np.ndarray,
    extinction_threshold: float = 0.0,
) -> List[SubpopulationState]:
    """Split per-CU arrays for one year into SubpopulationState records."""
    return [
        SubpopulationState(name=n, spawners=float(s), recruits=float(r), phi=float(f),
                           extinction_threshold=extinction_threshold)
        for n, s, r, f in zip(names, spawners, recruits, phi)
    ]
