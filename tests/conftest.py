"""
Shared pytest fixtures for SeqHMM tests.
"""
import pytest
import numpy as np
import tempfile
import os

from seqhmm.core.params import HMMParams


@pytest.fixture
def at_gc_params():
    """
    2-state nucleotide model over A, C, G, T.
    State 0: favours A/T
    State 1: favours G/C
    """
    return HMMParams.from_probabilities(
        startprob=[0.5, 0.5],
        transmat=[[0.9, 0.1], [0.1, 0.9]],
        emissionprob=[
            [0.4, 0.1, 0.1, 0.4],  # State 0: A/T rich
            [0.1, 0.4, 0.4, 0.1],  # State 1: G/C rich
        ],
        alphabet='ACGT',
    )


@pytest.fixture
def uneven_params():
    """Asymmetric 2-state model so forward/backward tests exercise every table entry."""
    return HMMParams.from_probabilities(
        startprob=[0.7, 0.3],
        transmat=[[0.8, 0.2], [0.35, 0.65]],
        emissionprob=[
            [0.5, 0.2, 0.2, 0.1],
            [0.1, 0.3, 0.25, 0.35],
        ],
        alphabet='ACGT',
    )


@pytest.fixture
def three_state_params():
    """3-state model for the N-state generalisation."""
    return HMMParams.from_probabilities(
        startprob=[0.6, 0.3, 0.1],
        transmat=[[0.8, 0.1, 0.1], [0.2, 0.7, 0.1], [0.1, 0.2, 0.7]],
        emissionprob=[
            [0.7, 0.1, 0.1, 0.1],
            [0.1, 0.7, 0.1, 0.1],
            [0.1, 0.1, 0.1, 0.7],
        ],
        alphabet='ACGT',
    )


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def temp_dir():
    """Temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def fasta_file(temp_dir):
    """Two-record FASTA with mixed-case bases."""
    path = os.path.join(temp_dir, "test.fa")
    with open(path, 'w') as fh:
        fh.write(">seq1 first record\n")
        fh.write("AAAATTTT\nggggcccc\n")
        fh.write(">seq2\n")
        fh.write("ACGT\n")
    return path


@pytest.fixture
def write_file(temp_dir):
    """Write text to a file in temp_dir and return its path."""
    def _write(name, text):
        path = os.path.join(temp_dir, name)
        with open(path, 'w') as fh:
            fh.write(text)
        return path
    return _write


@pytest.fixture
def read_count_rows():
    """
    Read-start counts (one per position, positions 1-based).

    A background of zeros with sparse 1/2/3 counts, an elevated block of
    repeated 3,2,1,0 counts, then background again. With the default
    scores and fall-off 20 this yields exactly one segment, index 126-187.
    """
    background = ([0] * 40 + [1, 2, 3]) * 3
    elevated = [3, 2, 1, 0] * 15
    counts = background + elevated + background
    return [('chr1', i + 1, c) for i, c in enumerate(counts)]


@pytest.fixture
def read_count_file(write_file, read_count_rows):
    text = ''.join(f"{chrom}\t{pos}\t{count}\n" for chrom, pos, count in read_count_rows)
    return write_file("counts.txt", text)
