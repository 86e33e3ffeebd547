"""
SeqHMM - discrete-emission Hidden Markov Models for biological sequence
segmentation (base composition, conservation, read-count elevation).
"""

__version__ = "1.0.0"

from seqhmm.core.logspace import log_add
from seqhmm.core.params import HMMParams
from seqhmm.core.hmm import SequenceHMM, forward, backward, viterbi
from seqhmm.inference.engine import Segment, scan_segments
from seqhmm.io.readers import (
    read_fasta, read_emission_counts, read_alignment, read_position_counts,
)
