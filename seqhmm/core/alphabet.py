"""
Symbol encoding for SeqHMM.

Observed symbols (nucleotides, or composite alignment columns such as
'AAG') are mapped to integer codes once, before the numeric kernels run.
"""

import numpy as np
from typing import Dict, Iterable, Sequence, Tuple, Union

from seqhmm.errors import InvalidInputError


NUCLEOTIDES = ('A', 'C', 'G', 'T')

SymbolSequence = Union[str, Sequence[str]]


class SymbolEncoder:
    """
    Maps an ordered alphabet to integer codes and back.

    Encoders are cached per alphabet; use SymbolEncoder.get() rather than
    the constructor when the same alphabet is encoded repeatedly.
    """
    _cache: Dict[Tuple[str, ...], 'SymbolEncoder'] = {}

    def __init__(self, alphabet: Iterable[str]):
        self.alphabet: Tuple[str, ...] = tuple(alphabet)
        if len(self.alphabet) == 0:
            raise InvalidInputError("Alphabet must contain at least one symbol")
        if len(set(self.alphabet)) != len(self.alphabet):
            raise InvalidInputError(f"Alphabet contains duplicate symbols: {self.alphabet}")
        self.lookup: Dict[str, int] = {sym: i for i, sym in enumerate(self.alphabet)}

    @classmethod
    def get(cls, alphabet: Iterable[str]) -> 'SymbolEncoder':
        """Get or build the encoder for an alphabet."""
        key = tuple(alphabet)
        if key not in cls._cache:
            cls._cache[key] = cls(key)
        return cls._cache[key]

    def __len__(self) -> int:
        return len(self.alphabet)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self.lookup

    def encode(self, sequence: SymbolSequence) -> np.ndarray:
        """
        Encode a symbol sequence as an int64 code array.

        Args:
            sequence: String of single-character symbols, or a sequence of
                (possibly multi-character) symbol strings

        Returns:
            Code array of shape (n,)

        Raises:
            InvalidInputError: if the sequence is empty or has a symbol
                outside the alphabet
        """
        if len(sequence) == 0:
            raise InvalidInputError("Sequence is empty")

        lookup = self.lookup
        codes = np.empty(len(sequence), dtype=np.int64)
        for i, sym in enumerate(sequence):
            code = lookup.get(sym)
            if code is None:
                raise InvalidInputError(
                    f"Symbol {sym!r} at position {i} is not in the emission alphabet "
                    f"{list(self.alphabet)}"
                )
            codes[i] = code
        return codes

    def decode(self, codes: Iterable[int]) -> list:
        """Map integer codes back to symbols."""
        return [self.alphabet[int(c)] for c in codes]
