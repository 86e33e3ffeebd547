"""SeqHMM segment calling: Viterbi segments and fall-off score segmentation."""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from seqhmm.core.hmm import Observations, SequenceHMM, viterbi
from seqhmm.core.params import HMMParams
from seqhmm.errors import InvalidInputError


@dataclass(frozen=True)
class Segment:
    """A maximal run of one decoded state, or of a scored condition.

    start and end are inclusive. state is None for fall-off segments.
    """
    start: int
    end: int
    score: float
    state: Optional[int] = None

    @property
    def length(self) -> int:
        return self.end - self.start + 1


def states_to_segments(path: np.ndarray,
                       path_scores: Optional[np.ndarray] = None) -> List[Segment]:
    """
    Collapse a state path into maximal constant-state segments.

    Args:
        path: (T,) state sequence
        path_scores: (T,) score of the best path prefix ending at each
            position. A segment's score is what the path gains over it,
            path_scores[end] - path_scores[start - 1]. Without scores every
            segment scores 0.

    Returns:
        Segments in position order
    """
    path = np.asarray(path)
    if len(path) == 0:
        return []

    # Run boundaries: positions where the state differs from the previous one
    change = np.flatnonzero(np.diff(path) != 0) + 1
    starts = np.concatenate([[0], change])
    ends = np.concatenate([change - 1, [len(path) - 1]])

    segments = []
    for s, e in zip(starts, ends):
        score = 0.0
        if path_scores is not None:
            score = float(path_scores[e] - (path_scores[s - 1] if s > 0 else 0.0))
        segments.append(Segment(int(s), int(e), score, int(path[s])))
    return segments


def decode_segments(model: Union[SequenceHMM, HMMParams],
                    X: Observations) -> Tuple[np.ndarray, List[Segment]]:
    """
    Run Viterbi and return the path with its constant-state segments.

    Args:
        model: Fitted SequenceHMM or bare HMMParams
        X: Symbol sequence or code array

    Returns:
        (path, segments)
    """
    params = model._require_params() if isinstance(model, SequenceHMM) else model
    path, delta = viterbi(X, params)
    path_scores = delta[np.arange(len(path)), path]
    return path, states_to_segments(path, path_scores)


def scan_segments(scores: Sequence[float], falloff: float, floor: float,
                  positions: Optional[Sequence[int]] = None) -> List[Segment]:
    """
    Local-maximum segmentation of a scalar score stream.

    A running cumulative score is kept, with its maximum and the position
    of that maximum. The open segment is closed when the cumulative score
    drops to 0 or below, when it falls at least `falloff` below the running
    maximum, or at the last position. A closed segment is reported if its
    peak reaches `floor`; then the cumulative score and maximum reset to 0
    and the next segment opens after the current position.

    Args:
        scores: Per-position scores
        falloff: Allowed drop below the running maximum (positive)
        floor: Minimum peak score for a segment to be reported
        positions: External coordinate of each score (default: index)

    Returns:
        Non-overlapping segments in position order; start/end are taken
        from positions, score is the segment's peak cumulative score
    """
    scores = np.asarray(scores, dtype=np.float64)
    n = len(scores)
    if falloff <= 0:
        raise InvalidInputError(f"Fall-off must be positive, got {falloff}")
    if positions is None:
        positions = np.arange(n)
    elif len(positions) != n:
        raise InvalidInputError(
            f"Got {len(positions)} positions for {n} scores")
    if np.any(~np.isfinite(scores)):
        raise InvalidInputError("Scores must be finite")

    segments = []
    cum = 0.0
    peak = 0.0
    start = 0
    end = 0

    for i in range(n):
        cum += scores[i]
        if cum >= peak:
            peak = cum
            end = i

        if cum <= 0 or cum <= peak - falloff or i == n - 1:
            if peak >= floor and peak > 0:
                segments.append(Segment(int(positions[start]), int(positions[end]), float(peak)))
            cum = 0.0
            peak = 0.0
            start = i + 1
            end = i + 1

    return segments


def segment_mask(n: int, segments: Sequence[Segment]) -> np.ndarray:
    """Boolean (n,) mask of the index positions covered by segments."""
    mask = np.zeros(n, dtype=bool)
    for seg in segments:
        mask[seg.start:seg.end + 1] = True
    return mask
