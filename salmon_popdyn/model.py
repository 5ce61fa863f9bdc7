"""Year-stepped simulation of salmon conservation units (CUs).

Each simulated year t:
  1. Total return N_t (fish from earlier brood years) is known per CU
  2. Target harvest rate from the control rule (or fixed), per CU or from
     the aggregate return
  3. Realized harvest rate drawn around the target
  4. Spawners S_t = N_t * (1 - h_t); catch = N_t * h_t
  5. Correlated process error -> Ricker recruits R_t, carrying phi_t
  6. Age proportions drawn per CU; R_t returns in years t + age

The first max(age) years of returns come from pre-simulation brood years
recruiting at `initial_recruits` (default a/b) with mean age proportions.

Replicates draw from independent SeedSequence streams (rng.py) and can be
run in a thread pool; results do not depend on the number of workers.
Each SimResult records its streams' starting state so replay_simulation()
can rerun that one replicate.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from salmon_popdyn.ages import distribute_recruits, ppn_age_error
from salmon_popdyn.config import HarvestSection, SimulationConfig
from salmon_popdyn.harvest import harvest_control_rule, realized_harvest_rate
from salmon_popdyn.recruitment import ricker_model
from salmon_popdyn.rng import (
    create_replicate_streams,
    get_replicate_rngs,
    process_error_draw,
    restore_rng_state,
    rng_state_snapshot,
)
from salmon_popdyn.types import (
    StockRecruitParameters,
    SubpopulationState,
    stack_parameters,
    states_from_arrays,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION RESULT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimResult:
    """Trajectories from one replicate. Arrays are (n_years, n_cu).

    recruits[t] are recruits PRODUCED by brood year t (returning later);
    returns[t] are fish RETURNING in year t.
    """
    names: List[str] = field(default_factory=list)
    returns: Optional[np.ndarray] = None
    spawners: Optional[np.ndarray] = None
    catch: Optional[np.ndarray] = None
    recruits: Optional[np.ndarray] = None
    phi: Optional[np.ndarray] = None
    target_harvest: Optional[np.ndarray] = None
    harvest_rate: Optional[np.ndarray] = None
    extinction_threshold: float = 0.0
    rng_state: Optional[Dict[str, dict]] = None   # Streams at replicate start

    @property
    def n_years(self) -> int:
        return 0 if self.spawners is None else self.spawners.shape[0]

    @property
    def n_cu(self) -> int:
        return len(self.names)

    @property
    def final_spawners(self) -> np.ndarray:
        return self.spawners[-1]

    @property
    def extinct(self) -> np.ndarray:
        """(n_cu,) bool: final-year spawners at or below the extinction floor."""
        return self.spawners[-1] <= self.extinction_threshold

    def states(self, year: int) -> List[SubpopulationState]:
        """Per-CU state records for one simulated year."""
        return states_from_arrays(
            self.names, self.spawners[year], self.recruits[year], self.phi[year],
            extinction_threshold=self.extinction_threshold,
        )


# ═══════════════════════════════════════════════════════════════════════
# YEAR-STEP COMPONENTS
# ═══════════════════════════════════════════════════════════════════════

def initial_returns(
    initial_recruits: np.ndarray,
    ppn_age: Sequence[float],
    ages: Sequence[int],
    n_years: int,
) -> np.ndarray:
    """Returns seeded by max(ages) pre-simulation brood years.

    Args:
        initial_recruits: (n_cu,) recruits per pre-simulation brood year.
        ppn_age: Mean age proportions (renormalized here).
        ages: Return ages.
        n_years: Simulation horizon.

    Returns:
        (n_years, n_cu) returns array; only years < max(ages) are non-zero.
    """
    initial_recruits = np.asarray(initial_recruits, dtype=np.float64)
    n_cu = initial_recruits.shape[0]
    ppn = np.nan_to_num(np.asarray(ppn_age, dtype=np.float64))
    ppn = np.tile(ppn / ppn.sum(), (n_cu, 1))

    returns = np.zeros((n_years, n_cu))
    for brood_year in range(-max(ages), 0):
        distribute_recruits(initial_recruits, ppn, ages, brood_year, returns)
    return returns


def target_harvest_rate(returns_t: np.ndarray, harvest: HarvestSection) -> np.ndarray:
    """Target rate for each CU this year.

    With basis="aggregate" every CU gets the rate computed from the summed
    return; with basis="subpopulation" each CU's own return is used.
    """
    n_cu = returns_t.shape[0]
    if harvest.strategy == "fixed":
        return np.full(n_cu, harvest.target_rate)
    abundance = returns_t.sum() if harvest.basis == "aggregate" else returns_t
    h = harvest_control_rule(abundance, harvest.hmax, harvest.d, harvest.m, harvest.min_rate)
    return np.broadcast_to(h, (n_cu,)).astype(np.float64)


def draw_harvest_rate(
    target: np.ndarray,
    harvest: HarvestSection,
    rng: np.random.Generator,
    max_iter: Optional[int],
) -> np.ndarray:
    """Realized rate per CU: one shared draw for an aggregate fishery,
    independent draws per CU otherwise."""
    if harvest.basis == "aggregate":
        h = realized_harvest_rate(
            target[0], harvest.sigma, n_years=1,
            error_type=harvest.error_type, rng=rng, max_iter=max_iter,
        )
        return np.full(target.shape[0], h[0])
    return realized_harvest_rate(
        target, harvest.sigma, n_years=target.shape[0],
        error_type=harvest.error_type, rng=rng, max_iter=max_iter,
    )


def step_year(
    returns_t: np.ndarray,
    phi_last: np.ndarray,
    sr: Dict[str, np.ndarray],
    harvest_rate: np.ndarray,
    error: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Harvest then recruitment for one year. Pure given its inputs.

    Args:
        returns_t: (n_cu,) total return.
        phi_last: (n_cu,) AR(1) deviation from the previous brood year.
        sr: Stacked stock-recruit parameters (types.stack_parameters).
        harvest_rate: (n_cu,) realized harvest rate.
        error: (n_cu,) process-error draw.

    Returns:
        (spawners, catch, recruits, phi)
    """
    catch = returns_t * harvest_rate
    spawners = returns_t - catch
    recruits, phi = ricker_model(
        spawners, sr['a'], sr['b'], error,
        rho=sr['rho'], phi_last=phi_last,
        recruit_cap=sr['recruit_cap'],
        extinction_threshold=sr['extinction_threshold'],
    )
    return spawners, catch, recruits, phi


def _initial_recruits(params: Sequence[StockRecruitParameters]) -> np.ndarray:
    return np.array([
        p.initial_recruits if p.initial_recruits is not None else p.equilibrium_spawners
        for p in params
    ], dtype=np.float64)


# ═══════════════════════════════════════════════════════════════════════
# SINGLE REPLICATE
# ═══════════════════════════════════════════════════════════════════════

def run_simulation(
    config: SimulationConfig,
    rngs: Optional[Dict[str, np.random.Generator]] = None,
    seed: Optional[int] = None,
) -> SimResult:
    """Run one stochastic replicate.

    Args:
        config: Validated configuration.
        rngs: Stream dict for this replicate (rng.create_replicate_streams).
            If None, replicate 0 of `seed` (default config seed) is used.
        seed: Master seed when rngs is None.

    Returns:
        SimResult with (n_years, n_cu) trajectories.
    """
    if rngs is None:
        master = config.simulation.seed if seed is None else seed
        rngs = create_replicate_streams(master, 1)[0]
    start_state = rng_state_snapshot(rngs)

    params = config.subpopulations
    sr = stack_parameters(params)
    n_years = config.simulation.n_years
    n_cu = len(params)
    ages = config.ages.ages
    max_iter = config.simulation.max_resample_iter

    returns = initial_returns(
        _initial_recruits(params), config.ages.mean_proportions, ages, n_years,
    )
    spawners = np.zeros((n_years, n_cu))
    catch = np.zeros((n_years, n_cu))
    recruits = np.zeros((n_years, n_cu))
    phi = np.zeros((n_years, n_cu))
    target = np.zeros((n_years, n_cu))
    realized = np.zeros((n_years, n_cu))

    phi_last = np.zeros(n_cu)
    for t in range(n_years):
        target[t] = target_harvest_rate(returns[t], config.harvest)
        realized[t] = draw_harvest_rate(target[t], config.harvest, rngs['harvest'], max_iter)

        error = process_error_draw(rngs['recruitment'], sr['sigma'], config.correlation)
        spawners[t], catch[t], recruits[t], phi[t] = step_year(
            returns[t], phi_last, sr, realized[t], error,
        )
        phi_last = phi[t]

        ppn = ppn_age_error(config.ages.mean_proportions, config.ages.omega, n_cu, rngs['ages'])
        distribute_recruits(recruits[t], ppn, ages, t, returns)

    return SimResult(
        names=config.names,
        returns=returns,
        spawners=spawners,
        catch=catch,
        recruits=recruits,
        phi=phi,
        target_harvest=target,
        harvest_rate=realized,
        extinction_threshold=sr['extinction_threshold'],
        rng_state=start_state,
    )


def replay_simulation(config: SimulationConfig, result: SimResult) -> SimResult:
    """Re-run one replicate from the stream state recorded in its result.

    Lets a single replicate out of a large run_replicates() batch be
    reproduced, e.g. to inspect an extinction trajectory, without
    regenerating the others. config must match the original run.

    Raises:
        ValueError: If result carries no recorded RNG state.
    """
    if result.rng_state is None:
        raise ValueError("SimResult has no recorded RNG state to replay from")
    return run_simulation(config, restore_rng_state(result.rng_state))


# ═══════════════════════════════════════════════════════════════════════
# MONTE CARLO REPLICATES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ReplicateSummary:
    """Results from a set of replicates, in replicate order."""
    names: List[str] = field(default_factory=list)
    results: List[SimResult] = field(default_factory=list)
    seed: int = 0
    elapsed_s: float = 0.0

    @property
    def n_replicates(self) -> int:
        return len(self.results)

    @property
    def spawners(self) -> np.ndarray:
        """(n_replicates, n_years, n_cu)."""
        return np.stack([r.spawners for r in self.results])

    @property
    def returns(self) -> np.ndarray:
        return np.stack([r.returns for r in self.results])

    @property
    def harvest_rate(self) -> np.ndarray:
        return np.stack([r.harvest_rate for r in self.results])

    @property
    def prob_extinct(self) -> np.ndarray:
        """(n_cu,) fraction of replicates ending at or below the extinction floor."""
        return np.mean([r.extinct for r in self.results], axis=0)

    @property
    def mean_final_spawners(self) -> np.ndarray:
        return np.mean([r.final_spawners for r in self.results], axis=0)


def run_replicates(
    config: SimulationConfig,
    n_replicates: Optional[int] = None,
    seed: Optional[int] = None,
    parallel_workers: Optional[int] = None,
) -> ReplicateSummary:
    """Run independent replicates, serially or in a thread pool.

    Each replicate gets its own SeedSequence-spawned streams, so the output
    for a given seed is identical whatever the number of workers.

    Args:
        config: Validated configuration.
        n_replicates: Overrides config.simulation.n_replicates.
        seed: Overrides config.simulation.seed.
        parallel_workers: Overrides config.simulation.parallel_workers.
    """
    n_rep = config.simulation.n_replicates if n_replicates is None else n_replicates
    master = config.simulation.seed if seed is None else seed
    workers = config.simulation.parallel_workers if parallel_workers is None else parallel_workers

    streams = create_replicate_streams(master, n_rep)

    def _one(rep: int) -> SimResult:
        return run_simulation(config, get_replicate_rngs(streams, rep))

    logger.info(
        "Running %d replicate(s) of %d years for %d CU(s) (seed=%d, workers=%d)",
        n_rep, config.simulation.n_years, len(config.subpopulations), master, workers,
    )
    t0 = time.perf_counter()
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(_one, range(n_rep)))
    else:
        results = [_one(rep) for rep in range(n_rep)]
    elapsed = time.perf_counter() - t0
    logger.info("Finished %d replicate(s) in %.2fs", n_rep, elapsed)

    return ReplicateSummary(
        names=config.names,
        results=results,
        seed=master,
        elapsed_s=elapsed,
    )
