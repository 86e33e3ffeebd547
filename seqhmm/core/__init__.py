"""Log-space arithmetic, parameter tables and HMM algorithms."""

from seqhmm.core.logspace import log_add, log_sum
from seqhmm.core.alphabet import SymbolEncoder
from seqhmm.core.params import HMMParams
from seqhmm.core.hmm import SequenceHMM, TrainingMonitor, train_model
