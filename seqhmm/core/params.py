"""
HMM parameter tables.

HMMParams holds the start, transition and emission distributions of a
discrete-emission HMM as natural-log probability arrays, together with the
emission alphabet that gives the emission columns their meaning.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from seqhmm.core.alphabet import SymbolEncoder, SymbolSequence
from seqhmm.core.logspace import to_log
from seqhmm.errors import InvalidInputError


@dataclass
class HMMParams:
    """
    Log-space parameters of a K-state HMM over an M-symbol alphabet.

    Attributes:
        log_startprob: (K,) log P(state at position 0)
        log_transmat: (K, K) log P(to | from), indexed [from, to]
        log_emissionprob: (K, M) log P(symbol | state)
        alphabet: the M emission symbols, in column order
    """
    log_startprob: np.ndarray
    log_transmat: np.ndarray
    log_emissionprob: np.ndarray
    alphabet: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        self.log_startprob = np.asarray(self.log_startprob, dtype=np.float64)
        self.log_transmat = np.asarray(self.log_transmat, dtype=np.float64)
        self.log_emissionprob = np.asarray(self.log_emissionprob, dtype=np.float64)
        self.alphabet = tuple(self.alphabet)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_probabilities(cls, startprob, transmat, emissionprob,
                           alphabet: Sequence[str]) -> 'HMMParams':
        """Build from probability-space arrays."""
        params = cls(to_log(startprob), to_log(transmat), to_log(emissionprob),
                     tuple(alphabet))
        params.validate()
        return params

    @classmethod
    def from_emission_tables(cls, startprob, transmat,
                             tables: Sequence[Mapping[str, float]]) -> 'HMMParams':
        """
        Build from one {symbol: probability} table per state.

        The alphabet is the sorted union of all table keys; a symbol missing
        from one state's table has probability 0 in that state.
        """
        alphabet = tuple(sorted(set().union(*[set(t) for t in tables])))
        emit = np.zeros((len(tables), len(alphabet)))
        for s, table in enumerate(tables):
            for j, sym in enumerate(alphabet):
                emit[s, j] = table.get(sym, 0.0)
        return cls.from_probabilities(startprob, transmat, emit, alphabet)

    @classmethod
    def from_counts(cls, startprob, transmat,
                    counts: Sequence[Mapping[str, int]]) -> 'HMMParams':
        """
        Build emissions from raw per-state symbol counts (count / total).

        Args:
            startprob: (K,) start probabilities
            transmat: (K, K) transition probabilities
            counts: One {symbol: count} mapping per state
        """
        tables = []
        for s, state_counts in enumerate(counts):
            total = float(sum(state_counts.values()))
            if any(c < 0 for c in state_counts.values()):
                raise InvalidInputError(f"Negative emission count for state {s}")
            if total <= 0:
                raise InvalidInputError(f"Emission counts for state {s} are empty")
            tables.append({sym: c / total for sym, c in state_counts.items()})
        return cls.from_emission_tables(startprob, transmat, tables)

    # -------------------------------------------------------------------------
    # Shape helpers
    # -------------------------------------------------------------------------

    @property
    def n_states(self) -> int:
        return self.log_startprob.shape[0]

    @property
    def n_symbols(self) -> int:
        return self.log_emissionprob.shape[1]

    @property
    def encoder(self) -> SymbolEncoder:
        return SymbolEncoder.get(self.alphabet)

    def encode(self, sequence: SymbolSequence) -> np.ndarray:
        """Encode a symbol sequence through this model's alphabet."""
        return self.encoder.encode(sequence)

    # -------------------------------------------------------------------------
    # Checks and conversions
    # -------------------------------------------------------------------------

    def validate(self, atol: Optional[float] = None) -> None:
        """
        Check table shapes and values.

        Args:
            atol: If given, also require every distribution to sum to 1
                (in probability space) within this tolerance

        Raises:
            InvalidInputError: on any structural problem
        """
        if self.log_startprob.ndim != 1 or self.log_startprob.shape[0] == 0:
            raise InvalidInputError(
                f"Start table must be a non-empty vector, got shape {self.log_startprob.shape}")
        k = self.log_startprob.shape[0]

        if self.log_transmat.shape != (k, k):
            raise InvalidInputError(
                f"Transition table has shape {self.log_transmat.shape}, expected {(k, k)}")
        if self.log_emissionprob.ndim != 2 or self.log_emissionprob.shape[0] != k:
            raise InvalidInputError(
                f"Emission table has shape {self.log_emissionprob.shape}, expected ({k}, n_symbols)")
        if len(self.alphabet) != self.log_emissionprob.shape[1]:
            raise InvalidInputError(
                f"Alphabet has {len(self.alphabet)} symbols but emission table has "
                f"{self.log_emissionprob.shape[1]} columns")
        if len(set(self.alphabet)) != len(self.alphabet):
            raise InvalidInputError(f"Alphabet contains duplicate symbols: {self.alphabet}")

        for name, table in (('start', self.log_startprob),
                            ('transition', self.log_transmat),
                            ('emission', self.log_emissionprob)):
            if np.any(np.isnan(table)):
                raise InvalidInputError(f"{name.capitalize()} table contains NaN")
            if np.any(table > 1e-12):
                raise InvalidInputError(f"{name.capitalize()} table has log-probabilities above 0")

        if atol is not None:
            startprob, transmat, emissionprob = self.to_probabilities()
            checks = [('start', np.array([startprob.sum()])),
                      ('transition', transmat.sum(axis=1)),
                      ('emission', emissionprob.sum(axis=1))]
            for name, sums in checks:
                bad = np.flatnonzero(np.abs(sums - 1.0) > atol)
                if len(bad) > 0:
                    raise InvalidInputError(
                        f"{name.capitalize()} distribution {int(bad[0])} sums to "
                        f"{sums[bad[0]]:.6g}, not 1")

    def to_probabilities(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return (startprob, transmat, emissionprob) in probability space."""
        return (np.exp(self.log_startprob),
                np.exp(self.log_transmat),
                np.exp(self.log_emissionprob))

    def emission_table(self, state: int) -> Dict[str, float]:
        """Emission probabilities of one state as {symbol: probability}."""
        row = np.exp(self.log_emissionprob[state])
        return {sym: float(p) for sym, p in zip(self.alphabet, row)}

    def copy(self) -> 'HMMParams':
        return HMMParams(self.log_startprob.copy(), self.log_transmat.copy(),
                         self.log_emissionprob.copy(), self.alphabet)

    def to_dict(self) -> Dict[str, List]:
        """Probability-space tables as plain lists (for display)."""
        startprob, transmat, emissionprob = self.to_probabilities()
        return {
            'alphabet': list(self.alphabet),
            'startprob': startprob.tolist(),
            'transmat': transmat.tolist(),
            'emissionprob': emissionprob.tolist(),
        }
