"""Plain-text reports printed by the SeqHMM command-line tools.

States are printed 1-based.
"""

from typing import Dict, Mapping, Optional, Sequence

from seqhmm.core.hmm import TrainingMonitor
from seqhmm.core.params import HMMParams
from seqhmm.inference.engine import Segment


def _count_label(category: int, cap: Optional[int]) -> str:
    return f">={category}" if cap is not None and category == cap else f"{category}"


def print_training(monitor: TrainingMonitor) -> None:
    print("\nIterations for Convergence:")
    print(monitor.iterations)
    print("\nLog Likelihood:")
    print(f"{monitor.history[-1]:.3f}")


def print_parameters(params: HMMParams, fmt: str = '.3e') -> None:
    """Start, transition and emission tables in probability space."""
    startprob, transmat, _ = params.to_probabilities()
    k = params.n_states

    print("\nInitial State Probabilities:")
    for i in range(k):
        print(f"{i + 1}={startprob[i]:{fmt}}")

    print("\nTransition Probabilities:")
    for i in range(k):
        for j in range(k):
            print(f"{i + 1},{j + 1}={transmat[i, j]:{fmt}}")

    print("\nEmission Probabilities:")
    for i in range(k):
        for sym, p in sorted(params.emission_table(i).items()):
            print(f"{i + 1},{sym}={p:{fmt}}")


def print_state_histograms(positions: Mapping[int, int], segments: Mapping[int, int]) -> None:
    print("\nState Histogram:")
    for state in sorted(positions):
        print(f"{state + 1}={positions[state]}")

    print("\nSegment Histogram:")
    for state in sorted(segments):
        print(f"{state + 1}={segments[state]}")


def print_segment_list(title: str, segments: Sequence[Segment],
                       offset: int = 0, with_score: bool = False) -> None:
    """One 'start end [score]' line per segment, shifted by offset."""
    print(f"\n{title}:")
    for seg in segments:
        line = f"{seg.start + offset} {seg.end + offset}"
        if with_score:
            line += f" {seg.score:.2f}"
        print(line)


def print_annotations(segments: Sequence[Segment]) -> None:
    print("\nAnnotations:")
    for seg in segments:
        print(f"\nStart: {seg.start}")
        print(f"End: {seg.end}")


def print_count_histogram(title: str, hist: Mapping[int, float],
                          cap: Optional[int] = None, fmt: str = '') -> None:
    """Counts or frequencies per read-count category; the cap prints as '>=cap'."""
    print(f"\n{title}:")
    for category in sorted(hist):
        print(f"{_count_label(category, cap)}={hist[category]:{fmt}}")


def print_score_histogram(hist: Dict[float, int]) -> None:
    for threshold, count in hist.items():
        print(f"{threshold} {count}")


def print_score_ratios(ratios: Dict[float, float], thresholds: Sequence[float]) -> None:
    for prev, t in zip(thresholds[:-1], thresholds[1:]):
        print(f"N_seg({prev})/N_seg({t}) {ratios[t]:.2f}")
