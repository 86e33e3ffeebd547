"""SeqHMM segment statistics."""

import numpy as np
from typing import Dict, Iterable, List, Optional, Sequence

from seqhmm.inference.engine import Segment


class SegmentStats:
    """Collects segments and summarises them per state and by score."""

    def __init__(self, n_states: Optional[int] = None):
        self.n_states = n_states
        self.segments: List[Segment] = []

    def add_segments(self, segments: Iterable[Segment]) -> None:
        self.segments.extend(segments)

    def _states(self) -> List[int]:
        if self.n_states is not None:
            return list(range(self.n_states))
        return sorted({seg.state for seg in self.segments if seg.state is not None})

    def state_histogram(self) -> Dict[int, int]:
        """Total positions decoded in each state."""
        hist = {s: 0 for s in self._states()}
        for seg in self.segments:
            if seg.state is not None:
                hist[seg.state] = hist.get(seg.state, 0) + seg.length
        return hist

    def segment_histogram(self) -> Dict[int, int]:
        """Number of segments in each state."""
        hist = {s: 0 for s in self._states()}
        for seg in self.segments:
            if seg.state is not None:
                hist[seg.state] = hist.get(seg.state, 0) + 1
        return hist

    def top_segments(self, n: int, state: Optional[int] = None,
                     by: str = 'length') -> List[Segment]:
        """
        The n largest segments, longest (or highest scoring) first.

        Ties keep position order.
        """
        if by not in ('length', 'score'):
            raise ValueError(f"Unknown sort key: {by}")
        pool = [seg for seg in self.segments if state is None or seg.state == state]
        key = (lambda seg: seg.length) if by == 'length' else (lambda seg: seg.score)
        return sorted(pool, key=key, reverse=True)[:n]

    def score_histogram(self, thresholds: Sequence[float]) -> Dict[float, int]:
        """Number of segments scoring at least each threshold."""
        scores = np.array([seg.score for seg in self.segments])
        return {t: int(np.sum(scores >= t)) for t in thresholds}

    def score_ratios(self, thresholds: Sequence[float]) -> Dict[float, float]:
        """
        N(previous threshold) / N(threshold) for consecutive thresholds.

        -1 marks a threshold no segment reaches.
        """
        hist = self.score_histogram(thresholds)
        ratios = {}
        for prev, t in zip(thresholds[:-1], thresholds[1:]):
            ratios[t] = hist[prev] / hist[t] if hist[t] > 0 else -1.0
        return ratios

    def get_summary(self) -> dict:
        """Generate summary statistics."""
        summary = {'total_segments': len(self.segments)}

        if self.segments:
            lengths = [seg.length for seg in self.segments]
            scores = [seg.score for seg in self.segments]
            summary['total_positions'] = int(np.sum(lengths))
            summary['segment_length_median'] = float(np.median(lengths))
            summary['segment_length_mean'] = float(np.mean(lengths))
            summary['segment_length_max'] = int(np.max(lengths))
            summary['segment_score_median'] = float(np.median(scores))
            summary['segment_score_max'] = float(np.max(scores))

        if any(seg.state is not None for seg in self.segments):
            summary['positions_per_state'] = self.state_histogram()
            summary['segments_per_state'] = self.segment_histogram()

        return summary
