"""
Synthetic data for SeqHMM.

sample_sequence() draws a symbol sequence from an HMM (used to check that
Baum-Welch recovers known parameters); sample_counts() draws read-start
counts from a background distribution (a null model for fall-off
segmentation scores).
"""

import numpy as np
from typing import List, Mapping, Optional, Tuple

from seqhmm.core.params import HMMParams
from seqhmm.errors import InvalidInputError


def _normalized(p: np.ndarray) -> np.ndarray:
    return p / p.sum()


def sample_sequence(params: HMMParams, length: int,
                    rng: Optional[np.random.Generator] = None) -> Tuple[List[str], np.ndarray]:
    """
    Sample a state path and emitted symbols from an HMM.

    Args:
        params: Generating model
        length: Number of positions
        rng: numpy Generator (default: fresh default_rng())

    Returns:
        (symbols, states)
    """
    if length <= 0:
        raise InvalidInputError(f"Length must be positive, got {length}")
    params.validate(atol=1e-6)
    if rng is None:
        rng = np.random.default_rng()

    startprob, transmat, emissionprob = params.to_probabilities()
    k, m = emissionprob.shape

    states = np.empty(length, dtype=np.int64)
    codes = np.empty(length, dtype=np.int64)

    states[0] = rng.choice(k, p=_normalized(startprob))
    codes[0] = rng.choice(m, p=_normalized(emissionprob[states[0]]))
    for t in range(1, length):
        states[t] = rng.choice(k, p=_normalized(transmat[states[t - 1]]))
        codes[t] = rng.choice(m, p=_normalized(emissionprob[states[t]]))

    return params.encoder.decode(codes), states


def sample_counts(frequencies: Mapping[int, float], n: int,
                  rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Draw n read counts from a categorical distribution over count categories.

    Args:
        frequencies: {count category: probability}
        n: Number of positions
        rng: numpy Generator

    Returns:
        (n,) int64 counts
    """
    if n < 0:
        raise InvalidInputError(f"Number of positions must be non-negative, got {n}")
    if rng is None:
        rng = np.random.default_rng()

    categories = np.array(sorted(frequencies), dtype=np.int64)
    probs = np.array([frequencies[c] for c in categories], dtype=np.float64)
    if np.any(probs < 0) or probs.sum() <= 0:
        raise InvalidInputError("Count frequencies must be non-negative and not all zero")

    return rng.choice(categories, size=n, p=_normalized(probs))
