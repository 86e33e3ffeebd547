"""
Default model priors and thresholds.

These are the hand-specified seeds used by the command-line tools. Library
functions never read them implicitly; callers pass them in.
"""

from enum import IntEnum


class GCState(IntEnum):
    """States of the base-composition model."""
    AT_RICH = 0
    GC_RICH = 1


class ConservationState(IntEnum):
    """States of the alignment conservation model."""
    NEUTRAL = 0
    CONSERVED = 1


# Baum-Welch convergence (absolute change in log-likelihood) and safety cap
DEFAULT_TOL = 0.1
DEFAULT_MAX_ITER = 1000

# Base-composition model seed (seqhmm-train)
GC_START_PROBS = [0.996, 0.004]
GC_TRANSITION_PROBS = [
    [0.999, 0.001],
    [0.01, 0.99],
]
GC_EMISSION_TABLES = [
    {'A': 0.3, 'C': 0.2, 'G': 0.2, 'T': 0.3},     # AT-rich
    {'A': 0.15, 'C': 0.35, 'G': 0.35, 'T': 0.15},  # GC-rich
]

# Conservation model (seqhmm-decode); emissions come from count tables
CONSERVATION_START_PROBS = [0.95, 0.05]
CONSERVATION_TRANSITION_PROBS = [
    [0.95, 0.05],
    [0.10, 0.90],
]
DEFAULT_TOP_SEGMENTS = 10

# Copy-number read-start scoring (seqhmm-segment)
READ_COUNT_CAP = 3
DEFAULT_READ_SCORES = {
    0: -0.1077,
    1: 0.4772,
    2: 1.0622,
    3: 1.6748,  # >= 3
}
DEFAULT_FALLOFF = 20.0
DEFAULT_RESCAN_FALLOFF = 5.0
SCORE_HISTOGRAM_THRESHOLDS = list(range(5, 31))
