"""Configuration system for salmon_popdyn.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Stock-recruit and harvest control rule parameters are estimated offline
(arima / nls fits); this module only carries the resolved numbers.
"""

from __future__ import annotations

import copy
import dataclasses
import typing
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import yaml

from salmon_popdyn.harvest import DEFAULT_MAX_RESAMPLE, beta_shape_params
from salmon_popdyn.types import ErrorType, StockRecruitParameters


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run length, replication and execution control."""
    n_years: int = 50
    n_replicates: int = 100
    seed: int = 42
    parallel_workers: int = 1                       # >1 = threaded replicates
    max_resample_iter: Optional[int] = DEFAULT_MAX_RESAMPLE  # None = unbounded


@dataclass
class AgeSection:
    """Return-age structure (chum salmon defaults: mostly age 4)."""
    ages: List[int] = field(default_factory=lambda: [3, 4, 5, 6])
    mean_proportions: List[float] = field(
        default_factory=lambda: [0.2, 0.4, 0.3, 0.1]
    )
    omega: float = 0.8            # Interannual variability in proportions


@dataclass
class HarvestSection:
    """Harvest strategy and outcome uncertainty.

    strategy: "hcr"   — target from the saturating control rule
              "fixed" — constant target_rate every year
    basis:    "aggregate"     — one rate from the summed return of all CUs
              "subpopulation" — a rate per CU from its own return
    """
    strategy: str = "hcr"
    target_rate: float = 0.6      # Used when strategy = "fixed"
    hmax: float = 0.72            # HCR asymptote
    d: float = 1.2e-6             # HCR rate (1 / fish)
    m: float = 1.0e5              # HCR x-intercept (fish)
    min_rate: float = 0.05        # Floor on target rate
    sigma: float = 0.1            # SD of realized around target
    error_type: str = "beta"
    basis: str = "aggregate"


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level
    keys; `subpopulations` is a list of StockRecruitParameters mappings and
    `correlation` the shared among-CU process-error correlation.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    subpopulations: List[StockRecruitParameters] = field(
        default_factory=lambda: [
            StockRecruitParameters(name="CU_1", a=1.8, b=1.2e-6, sigma=0.6, rho=0.3),
            StockRecruitParameters(name="CU_2", a=1.4, b=2.0e-6, sigma=0.6, rho=0.3),
        ]
    )
    correlation: float = 0.5
    ages: AgeSection = field(default_factory=AgeSection)
    harvest: HarvestSection = field(default_factory=HarvestSection)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.subpopulations]


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists such as subpopulations) are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _coerce_number(key: str, hint: Any, value: Any) -> Any:
    """Cast a YAML scalar to an int/float field type.

    PyYAML (YAML 1.1) reads exponents without a sign, e.g. `1.0e5`, as
    strings, so numeric fields are cast here rather than trusted.
    """
    if value is None:
        return None
    args = typing.get_args(hint)
    if typing.get_origin(hint) is Union and type(None) in args:
        hint = next(a for a in args if a is not type(None))
    if typing.get_origin(hint) is list and isinstance(value, list):
        (item,) = typing.get_args(hint)
        return [_coerce_number(f"{key}[{i}]", item, v) for i, v in enumerate(value)]
    if hint not in (int, float) or isinstance(value, bool):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None
    if hint is int:
        if not number.is_integer():
            raise ValueError(f"{key} must be an integer, got {value!r}")
        return int(number)
    return number


def _dict_to_section(section_cls, data: Dict, prefix: str = "") -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys.

    Numeric fields are cast to their annotated type.
    """
    hints = typing.get_type_hints(section_cls)
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {
        k: _coerce_number(f"{prefix}.{k}" if prefix else k, hints[k], v)
        for k, v in data.items() if k in valid_fields
    }
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    defaults = SimulationConfig()
    sections: Dict[str, Any] = {}
    section_map = {
        'simulation': SimulationSection,
        'ages': AgeSection,
        'harvest': HarvestSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key], prefix=key)
        else:
            sections[key] = cls()

    if isinstance(data.get('subpopulations'), list):
        sections['subpopulations'] = [
            _dict_to_section(StockRecruitParameters, dict(sp), prefix=f"subpopulations[{i}]")
            for i, sp in enumerate(data['subpopulations'])
            if isinstance(sp, dict)
        ]
    else:
        sections['subpopulations'] = copy.deepcopy(defaults.subpopulations)

    sections['correlation'] = _coerce_number(
        'correlation', float, data.get('correlation', defaults.correlation),
    )
    return SimulationConfig(**sections)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Run control is positive
      - Subpopulations are present, uniquely named, with sane Ricker terms
      - Age classes and mean proportions line up
      - Harvest options are recognised and rates lie in [0, 1]
    """
    sim = config.simulation
    if sim.n_years < 1:
        raise ValueError(f"simulation.n_years must be >= 1, got {sim.n_years}")
    if sim.n_replicates < 1:
        raise ValueError(f"simulation.n_replicates must be >= 1, got {sim.n_replicates}")
    if sim.parallel_workers < 1:
        raise ValueError(
            f"simulation.parallel_workers must be >= 1, got {sim.parallel_workers}"
        )
    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.max_resample_iter is not None and sim.max_resample_iter < 1:
        raise ValueError(
            f"simulation.max_resample_iter must be >= 1 or null, "
            f"got {sim.max_resample_iter}"
        )

    # Subpopulations
    if len(config.subpopulations) == 0:
        raise ValueError("at least one subpopulation is required")
    names = config.names
    if len(set(names)) != len(names):
        raise ValueError(f"subpopulation names must be unique, got {names}")
    for i, sp in enumerate(config.subpopulations):
        if sp.b < 0:
            raise ValueError(f"subpopulations[{i}] ({sp.name}).b must be >= 0, got {sp.b}")
        if sp.b == 0 and sp.initial_recruits is None:
            raise ValueError(
                f"subpopulations[{i}] ({sp.name}): initial_recruits is required "
                f"when b = 0 (no equilibrium a/b)"
            )
        if sp.sigma < 0:
            raise ValueError(
                f"subpopulations[{i}] ({sp.name}).sigma must be >= 0, got {sp.sigma}"
            )
        if sp.recruit_cap is not None and sp.recruit_cap < 0:
            raise ValueError(
                f"subpopulations[{i}] ({sp.name}).recruit_cap must be >= 0, "
                f"got {sp.recruit_cap}"
            )
        if sp.initial_recruits is not None and sp.initial_recruits < 0:
            raise ValueError(
                f"subpopulations[{i}] ({sp.name}).initial_recruits must be >= 0, "
                f"got {sp.initial_recruits}"
            )
        if abs(sp.rho) >= 1:
            warnings.warn(
                f"subpopulations[{i}] ({sp.name}).rho = {sp.rho} gives a "
                f"non-stationary AR(1) process.",
                UserWarning,
                stacklevel=2,
            )
    if len({sp.recruit_cap for sp in config.subpopulations}) > 1:
        raise ValueError("recruit_cap must be the same for all subpopulations")
    if len({sp.extinction_threshold for sp in config.subpopulations}) > 1:
        raise ValueError("extinction_threshold must be the same for all subpopulations")

    if not -1.0 < config.correlation < 1.0:
        raise ValueError(f"correlation must be in (-1, 1), got {config.correlation}")

    # Ages
    ag = config.ages
    if len(ag.ages) == 0:
        raise ValueError("ages.ages must not be empty")
    if len(ag.ages) != len(ag.mean_proportions):
        raise ValueError(
            f"ages.ages ({len(ag.ages)}) and ages.mean_proportions "
            f"({len(ag.mean_proportions)}) must have the same length"
        )
    if any(int(a) != a or a < 1 for a in ag.ages) or list(ag.ages) != sorted(set(ag.ages)):
        raise ValueError(
            f"ages.ages must be strictly increasing positive integers, got {ag.ages}"
        )
    ppn = np.asarray(ag.mean_proportions, dtype=np.float64)
    if np.any(ppn < 0) or not np.nansum(ppn) > 0:
        raise ValueError(
            f"ages.mean_proportions must be non-negative with a positive sum, "
            f"got {ag.mean_proportions}"
        )
    if not np.isclose(np.nansum(ppn), 1.0):
        warnings.warn(
            f"ages.mean_proportions sum to {np.nansum(ppn):.4f}, not 1; "
            f"they will be renormalized each year.",
            UserWarning,
            stacklevel=2,
        )
    if ag.omega < 0:
        raise ValueError(f"ages.omega must be >= 0, got {ag.omega}")

    # Harvest
    h = config.harvest
    valid_strategies = {"hcr", "fixed"}
    if h.strategy not in valid_strategies:
        raise ValueError(
            f"harvest.strategy must be one of {valid_strategies}, got '{h.strategy}'"
        )
    valid_bases = {"aggregate", "subpopulation"}
    if h.basis not in valid_bases:
        raise ValueError(
            f"harvest.basis must be one of {valid_bases}, got '{h.basis}'"
        )
    valid_errors = {e.value for e in ErrorType}
    if h.error_type not in valid_errors:
        raise ValueError(
            f"harvest.error_type must be one of {valid_errors}, got '{h.error_type}'"
        )
    for name in ('target_rate', 'hmax', 'min_rate'):
        value = getattr(h, name)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"harvest.{name} must be in [0, 1], got {value}")
    if h.d < 0:
        raise ValueError(f"harvest.d must be >= 0, got {h.d}")
    if h.sigma < 0:
        raise ValueError(f"harvest.sigma must be >= 0, got {h.sigma}")
    if h.error_type == "beta" and h.sigma > 0:
        # HCR targets span [min_rate, max(hmax, min_rate)]; both ends must work
        if h.strategy == "fixed":
            targets = [h.target_rate]
        else:
            targets = sorted({h.min_rate, max(h.hmax, h.min_rate)})
        bad = [t for t in targets if min(beta_shape_params(t, h.sigma)) <= 0]
        if bad:
            warnings.warn(
                f"harvest.sigma = {h.sigma} gives non-positive beta shape "
                f"parameters at target(s) {bad}; realized rates will be nan "
                f"in those years.",
                UserWarning,
                stacklevel=2,
            )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
