"""
Read-count scoring schemes for copy-number segmentation.

Per-position read-start counts are capped (counts >= cap share one
category) and mapped to log-odds scores; the resulting stream is what
scan_segments() segments.
"""

import numpy as np
from typing import Dict, Mapping, Optional, Sequence, Tuple

from seqhmm.defaults import DEFAULT_READ_SCORES, READ_COUNT_CAP
from seqhmm.errors import InvalidInputError
from seqhmm.inference.engine import Segment, segment_mask


def cap_counts(counts: Sequence[int], cap: int = READ_COUNT_CAP) -> np.ndarray:
    """Clip read counts to [0, cap]."""
    counts = np.asarray(counts)
    if np.any(counts < 0):
        raise InvalidInputError("Read counts must be non-negative")
    return np.minimum(counts, cap).astype(np.int64)


class ReadCountScorer:
    """
    Maps capped read counts to per-position scores.

    Args:
        scores: {count category: score}; must cover 0..cap
        cap: Highest category; counts >= cap use scores[cap]
    """

    def __init__(self, scores: Optional[Mapping[int, float]] = None,
                 cap: int = READ_COUNT_CAP):
        scores = dict(DEFAULT_READ_SCORES if scores is None else scores)
        missing = [c for c in range(cap + 1) if c not in scores]
        if missing:
            raise InvalidInputError(f"Scoring scheme has no score for counts {missing}")
        self.cap = cap
        self.scores: Dict[int, float] = {c: float(scores[c]) for c in range(cap + 1)}
        self._table = np.array([self.scores[c] for c in range(cap + 1)])

    @classmethod
    def from_frequencies(cls, target: Mapping[int, float],
                         background: Mapping[int, float],
                         cap: int = READ_COUNT_CAP) -> 'ReadCountScorer':
        """Log2-odds scores: log2(target[c]) - log2(background[c])."""
        scores = {}
        for c in range(cap + 1):
            t = target.get(c, 0.0)
            b = background.get(c, 0.0)
            if t <= 0 or b <= 0:
                raise InvalidInputError(
                    f"Count category {c} has zero frequency (target={t}, background={b})")
            scores[c] = float(np.log2(t) - np.log2(b))
        return cls(scores, cap=cap)

    def score(self, counts: Sequence[int]) -> np.ndarray:
        """Per-position scores for raw read counts."""
        return self._table[cap_counts(counts, self.cap)]


def count_histogram(counts: Sequence[int], cap: int = READ_COUNT_CAP,
                    mask: Optional[np.ndarray] = None) -> Dict[int, int]:
    """Number of positions in each capped count category (optionally masked)."""
    capped = cap_counts(counts, cap)
    if mask is not None:
        capped = capped[mask]
    hist = np.bincount(capped, minlength=cap + 1)
    return {c: int(hist[c]) for c in range(cap + 1)}


def count_frequencies(counts: Sequence[int], cap: int = READ_COUNT_CAP,
                      mask: Optional[np.ndarray] = None,
                      offset: Optional[Mapping[int, int]] = None) -> Dict[int, float]:
    """
    Normalised frequencies of capped count categories.

    Args:
        counts: Raw read counts
        cap: Highest category
        mask: Restrict to these positions
        offset: Per-category counts to subtract first (e.g. positions of an
            unsequenced region that inflate category 0)

    Returns:
        {category: frequency}
    """
    hist = count_histogram(counts, cap, mask)
    if offset:
        for c, n in offset.items():
            hist[c] = hist.get(c, 0) - n
        if any(v < 0 for v in hist.values()):
            raise InvalidInputError("Count offset exceeds observed counts")
    total = sum(hist.values())
    if total <= 0:
        raise InvalidInputError("No positions to compute frequencies from")
    return {c: hist[c] / total for c in hist}


def segment_count_histograms(counts: Sequence[int], segments: Sequence[Segment],
                             cap: int = READ_COUNT_CAP) -> Tuple[Dict[int, int], Dict[int, int]]:
    """
    Count histograms inside and outside segments.

    Segment coordinates must be indices into counts.

    Returns:
        (inside, outside)
    """
    mask = segment_mask(len(counts), segments)
    return count_histogram(counts, cap, mask), count_histogram(counts, cap, ~mask)
