#!/usr/bin/env python3
"""
SeqHMM decode CLI entry point.
Viterbi-decodes a multi-species alignment with a two-state
(neutral / conserved) HMM whose emissions come from column count tables,
then reports state usage and the longest conserved segments.
"""

import sys
import argparse

from seqhmm.core.params import HMMParams
from seqhmm.defaults import (
    CONSERVATION_START_PROBS, CONSERVATION_TRANSITION_PROBS,
    DEFAULT_TOP_SEGMENTS, ConservationState,
)
from seqhmm.errors import SeqHMMError
from seqhmm.inference.engine import decode_segments
from seqhmm.inference.stats import SegmentStats
from seqhmm.io.readers import read_alignment, read_emission_counts
from seqhmm.cli.common import add_input_args, add_top_args, add_version_args
from seqhmm.cli.report import (
    print_parameters, print_segment_list, print_state_histograms,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Find conserved segments in an alignment with a two-state HMM (Viterbi)',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_version_args(parser)
    add_input_args(parser, help_text='Alignment blocks (# chrom:start-end header, name<TAB>seq rows)')
    parser.add_argument('--neutral-counts', required=True,
                        help='Column counts for the neutral state (symbol<TAB>count)')
    parser.add_argument('--conserved-counts', required=True,
                        help='Column counts for the conserved state (symbol<TAB>count)')
    add_top_args(parser, default=DEFAULT_TOP_SEGMENTS)
    return parser.parse_args(argv)


def build_params(neutral_counts, conserved_counts) -> HMMParams:
    return HMMParams.from_counts(CONSERVATION_START_PROBS, CONSERVATION_TRANSITION_PROBS,
                                 [neutral_counts, conserved_counts])


def run(args) -> int:
    params = build_params(read_emission_counts(args.neutral_counts),
                          read_emission_counts(args.conserved_counts))
    alignment = read_alignment(args.input)
    print(f"Loaded {len(alignment):,} alignment columns "
          f"({len(alignment.species)} species, {alignment.start}-{alignment.end})")

    _, segments = decode_segments(params, alignment.columns)

    stats = SegmentStats(n_states=params.n_states)
    stats.add_segments(segments)

    print_state_histograms(stats.state_histogram(), stats.segment_histogram())
    print_parameters(params, fmt='.5f')
    print_segment_list("Longest Segment List",
                       stats.top_segments(args.top, state=ConservationState.CONSERVED),
                       offset=alignment.start)
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
