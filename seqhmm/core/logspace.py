"""
Log-space probability arithmetic.

Probabilities are stored as natural logarithms throughout SeqHMM. log_add is
the scalar building block of the forward/backward kernels and is compiled
with numba so the kernels can call it in nopython mode.
"""

import numpy as np
from numba import jit
from scipy.special import logsumexp  # noqa: F401  (vectorised reductions)

# exp(x) underflows to zero in double precision below this
LOG_UNDERFLOW = -709.0


@jit(nopython=True, cache=False)
def log_add(a, b):
    """
    Return log(exp(a) + exp(b)) without leaving log space.

    The larger argument is factored out, so the result is
    max + log1p(exp(min - max)). When min is -inf (zero probability) or the
    gap is past the underflow boundary the larger argument is returned as is.
    """
    if a >= b:
        hi = a
        lo = b
    else:
        hi = b
        lo = a
    if lo == -np.inf:
        return hi
    diff = lo - hi
    if diff < LOG_UNDERFLOW:
        return hi
    return hi + np.log1p(np.exp(diff))


@jit(nopython=True, cache=False)
def log_sum(values):
    """Fold log_add over a 1-D array. Empty input gives -inf."""
    total = -np.inf
    for i in range(values.shape[0]):
        total = log_add(total, values[i])
    return total


def to_log(probs) -> np.ndarray:
    """Convert probabilities to log space (log(0) -> -inf)."""
    with np.errstate(divide='ignore'):  # Handle log(0) gracefully
        return np.log(np.asarray(probs, dtype=np.float64))
