"""Segment calling, read-count scoring, and statistics."""

from seqhmm.inference.engine import (
    Segment,
    states_to_segments,
    decode_segments,
    scan_segments,
    segment_mask,
)
from seqhmm.inference.scoring import ReadCountScorer, count_frequencies
from seqhmm.inference.stats import SegmentStats

__all__ = [
    'Segment',
    'states_to_segments',
    'decode_segments',
    'scan_segments',
    'segment_mask',
    'ReadCountScorer',
    'count_frequencies',
    'SegmentStats',
]
