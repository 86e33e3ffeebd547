#!/usr/bin/env python3
"""
SeqHMM train CLI entry point.
Fits the two-state base-composition HMM (AT-rich / GC-rich) to a FASTA
sequence with Baum-Welch and prints the converged parameters.
"""

import sys
import argparse
import warnings

from seqhmm.core.hmm import SequenceHMM
from seqhmm.core.params import HMMParams
from seqhmm.defaults import GC_EMISSION_TABLES, GC_START_PROBS, GC_TRANSITION_PROBS
from seqhmm.errors import NonConvergenceWarning, SeqHMMError
from seqhmm.io.readers import read_fasta
from seqhmm.cli.common import (
    add_input_args, add_training_args, add_verbose_args, add_version_args,
)
from seqhmm.cli.report import print_parameters, print_training


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Train a two-state GC-content HMM on a FASTA sequence (Baum-Welch)',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_version_args(parser)
    add_input_args(parser, help_text='Input FASTA file')
    add_training_args(parser)
    parser.add_argument('--drop-unknown', action='store_true',
                        help='Drop symbols outside A/C/G/T (e.g. N) instead of failing')
    add_verbose_args(parser)
    return parser.parse_args(argv)


def build_initial_params() -> HMMParams:
    """Seed parameters for the base-composition model."""
    return HMMParams.from_emission_tables(GC_START_PROBS, GC_TRANSITION_PROBS,
                                          GC_EMISSION_TABLES)


def run(args) -> int:
    records = read_fasta(args.input)
    for rec in records:
        print(f">{rec.name} {rec.comment}".rstrip())
    sequence = ''.join(rec.sequence for rec in records)
    params = build_initial_params()
    if args.drop_unknown:
        kept = ''.join(c for c in sequence if c in params.encoder)
        if len(kept) < len(sequence):
            print(f"Dropped {len(sequence) - len(kept):,} symbols outside the alphabet")
        sequence = kept
    print(f"Loaded {len(sequence):,} bases from {len(records)} record(s)")

    model = SequenceHMM.from_params(params,
                                    n_iter=args.max_iter, tol=args.tol)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always', NonConvergenceWarning)
        model.fit(sequence, verbose=args.verbose)
    for w in caught:
        if issubclass(w.category, NonConvergenceWarning):
            print(f"WARNING: {w.message}")
        else:
            warnings.showwarning(w.message, w.category, w.filename, w.lineno)

    print_training(model.monitor_)
    print_parameters(model.params_)
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
