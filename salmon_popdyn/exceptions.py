"""Exceptions raised by salmon_popdyn.

Only argument errors and the bounded rejection loop are signalled. Numeric
degeneracies (overflowing Ricker output, invalid beta shapes, all-zero age
proportions) propagate as non-finite values instead.
"""


class InvalidArgumentError(ValueError):
    """Raised for an unknown error distribution or a target-harvest series
    whose length does not match the requested number of years.
    """
    pass


class ResampleExhaustedError(RuntimeError):
    """Raised when normal-error harvest rates still fall outside [0, 1]
    after the maximum number of resampling passes.
    """
    pass
