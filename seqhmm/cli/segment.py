#!/usr/bin/env python3
"""
SeqHMM segment CLI entry point.
Calls elevated copy-number segments from per-position read-start counts
with fall-off segmentation. Optionally re-derives the scoring scheme from
the first pass (--estimate) and compares the rescanned score distribution
with a simulated background stream (--simulate).
"""

import sys
import argparse

import numpy as np

from seqhmm.defaults import (
    DEFAULT_RESCAN_FALLOFF, READ_COUNT_CAP, SCORE_HISTOGRAM_THRESHOLDS,
)
from seqhmm.errors import SeqHMMError
from seqhmm.inference.engine import Segment, scan_segments, segment_mask
from seqhmm.inference.scoring import (
    ReadCountScorer, count_frequencies, segment_count_histograms,
)
from seqhmm.inference.stats import SegmentStats
from seqhmm.io.readers import read_position_counts
from seqhmm.simulate import sample_counts
from seqhmm.cli.common import (
    add_input_args, add_seed_args, add_segment_args, add_version_args,
)
from seqhmm.cli.report import (
    print_annotations, print_count_histogram, print_score_histogram,
    print_score_ratios, print_segment_list,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Call elevated copy-number segments from read-start counts',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_version_args(parser)
    add_input_args(parser, help_text='Read-start counts (chrom pos count per line)')
    add_segment_args(parser)

    est = parser.add_argument_group('scoring scheme estimation')
    est.add_argument('--estimate', action='store_true',
                     help='Re-derive log-odds scores from the first pass and rescan')
    est.add_argument('--rescan-falloff', type=float, default=DEFAULT_RESCAN_FALLOFF,
                     help='Fall-off (and floor) for the rescan')
    est.add_argument('--background-offset', type=int, default=0,
                     help='Zero-count positions to discount from the background '
                          '(e.g. unsequenced bases)')
    est.add_argument('--simulate', action='store_true',
                     help='Also scan a background-sampled stream (implies --estimate)')
    add_seed_args(parser)
    return parser.parse_args(argv)


def to_positions(segments, positions) -> list:
    """Map index-based segments onto external coordinates."""
    return [Segment(int(positions[s.start]), int(positions[s.end]), s.score, s.state)
            for s in segments]


def estimate_scorer(counts: np.ndarray, segments, offset: int = 0,
                    cap: int = READ_COUNT_CAP):
    """
    Log-odds scorer from a first segmentation pass.

    Target frequencies come from positions inside segments, background
    frequencies from all positions less `offset` zero-count positions.

    Returns:
        (scorer, target frequencies, background frequencies)
    """
    mask = segment_mask(len(counts), segments)
    target = count_frequencies(counts, cap, mask=mask)
    background = count_frequencies(counts, cap, offset={0: offset} if offset else None)
    return ReadCountScorer.from_frequencies(target, background, cap=cap), target, background


def run(args) -> int:
    table = read_position_counts(args.input)
    counts = table['count'].to_numpy()
    positions = table['pos'].to_numpy()
    floor = args.falloff if args.floor is None else args.floor
    print(f"Loaded {len(table):,} positions")

    scorer = ReadCountScorer()
    index_segments = scan_segments(scorer.score(counts), args.falloff, floor)
    segments = to_positions(index_segments, positions)

    stats = SegmentStats()
    stats.add_segments(segments)

    print("\nSegment Histogram:")
    print(f"Non-Elevated CN Segments={len(segments) + 1}")
    print(f"Elevated CN Segments={len(segments)}")
    print_segment_list("Segment List", segments, with_score=True)
    print_annotations(stats.top_segments(3, by='score'))

    inside, outside = segment_count_histograms(counts, index_segments, scorer.cap)
    print_count_histogram("Read start histogram for non-elevated copy-number segments",
                          outside, cap=scorer.cap)
    print_count_histogram("Read start histogram for elevated copy-number segments",
                          inside, cap=scorer.cap)

    if not (args.estimate or args.simulate):
        return 0

    if not index_segments:
        raise SeqHMMError("No segments found; cannot estimate a scoring scheme")
    custom, target, background = estimate_scorer(counts, index_segments,
                                                 args.background_offset, scorer.cap)
    print_count_histogram("Background frequencies", background, cap=custom.cap, fmt='.4f')
    print_count_histogram("Target frequencies", target, cap=custom.cap, fmt='.4f')
    print_count_histogram("Scoring scheme", custom.scores, cap=custom.cap, fmt='.4f')

    rescan = SegmentStats()
    rescan.add_segments(scan_segments(custom.score(counts), args.rescan_falloff,
                                      args.rescan_falloff, positions=positions))
    print("\nReal data:")
    print_score_histogram(rescan.score_histogram(SCORE_HISTOGRAM_THRESHOLDS))

    if args.simulate:
        rng = np.random.default_rng(args.seed)
        n_background = len(counts) - args.background_offset
        simulated = sample_counts(background, n_background, rng=rng)
        sim = SegmentStats()
        sim.add_segments(scan_segments(custom.score(simulated), args.rescan_falloff,
                                       args.rescan_falloff))
        print("\nSimulated data:")
        print_score_histogram(sim.score_histogram(SCORE_HISTOGRAM_THRESHOLDS))
        print("\nRatios of simulated data:")
        print_score_ratios(sim.score_ratios(SCORE_HISTOGRAM_THRESHOLDS),
                           SCORE_HISTOGRAM_THRESHOLDS)
    return 0


def main(argv=None):
    args = parse_args(argv)
    try:
        return run(args)
    except (SeqHMMError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
