"""Shared argparse argument factories for SeqHMM CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse
from typing import Optional

from seqhmm.defaults import DEFAULT_FALLOFF, DEFAULT_MAX_ITER, DEFAULT_TOL


def add_input_args(parser: argparse.ArgumentParser,
                   help_text: str = "Input file") -> None:
    """Add -i/--input argument."""
    parser.add_argument(
        '-i', '--input', required=True,
        help=help_text
    )


def add_training_args(parser: argparse.ArgumentParser,
                      tol: float = DEFAULT_TOL,
                      max_iter: int = DEFAULT_MAX_ITER) -> None:
    """Add Baum-Welch convergence arguments (--tol, --max-iter)."""
    parser.add_argument(
        '--tol', type=float, default=tol,
        help=f"Stop when the log-likelihood changes by at most this much (default: {tol})"
    )
    parser.add_argument(
        '--max-iter', type=int, default=max_iter,
        help=f"Maximum Baum-Welch iterations (default: {max_iter})"
    )


def add_segment_args(parser: argparse.ArgumentParser,
                     falloff: float = DEFAULT_FALLOFF,
                     floor: Optional[float] = None) -> None:
    """Add fall-off segmentation arguments (--falloff, --floor)."""
    parser.add_argument(
        '--falloff', type=float, default=falloff,
        help=f"Close a segment once its score drops this far below its peak (default: {falloff})"
    )
    parser.add_argument(
        '--floor', type=float, default=floor,
        help="Minimum peak score for a reported segment (default: same as --falloff)"
    )


def add_top_args(parser: argparse.ArgumentParser, default: int = 10) -> None:
    """Add -n/--top argument."""
    parser.add_argument(
        '-n', '--top', type=int, default=default,
        help=f"Number of segments to list (default: {default})"
    )


def add_seed_args(parser: argparse.ArgumentParser, default: int = 42) -> None:
    """Add -s/--seed argument."""
    parser.add_argument(
        '-s', '--seed', type=int, default=default,
        help=f"Random seed (default: {default})"
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Verbose output"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version flag."""
    from seqhmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'%(prog)s {__version__}'
    )
