"""salmon_popdyn: Stochastic stock-recruit simulator for salmon conservation units.

A year-stepped population model coupling:
  - Ricker stock-recruitment with AR(1) log-scale process error
  - Among-CU correlated recruitment deviations
  - Multivariate logistic variation in return-age proportions
  - Harvest control rule targets with beta or truncated-normal outcome error

Each stochastic component is a pure function of its inputs and an explicit
numpy Generator; the carried AR(1) state is threaded by the caller.
"""

__version__ = "0.1.0"
