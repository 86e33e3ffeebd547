"""
Input readers for SeqHMM.

Supports:
- FASTA sequences (via pysam.FastxFile)
- Emission count tables: symbol<TAB>count
- Multi-species alignment blocks:
      # chrX:152767491-152767698
      hg18<TAB>ATAAAA
      panTro2<TAB>ATAAGA
      ...
- Per-position read-start counts: chrom pos count (whitespace separated)

Readers sit outside the HMM core; they produce plain sequences, tables and
DataFrames for it.
"""

import numpy as np
import pandas as pd
import pysam
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from seqhmm.errors import InvalidInputError


# =============================================================================
# FASTA
# =============================================================================

@dataclass
class SequenceRecord:
    """One FASTA record."""
    name: str
    comment: str
    sequence: str

    def __len__(self) -> int:
        return len(self.sequence)


def read_fasta(path: str) -> List[SequenceRecord]:
    """
    Read all records of a FASTA (or FASTQ) file, upper-casing sequences.

    Args:
        path: Path to the file (plain or gzipped)

    Returns:
        List of SequenceRecord
    """
    records = []
    with pysam.FastxFile(path) as fh:
        for entry in fh:
            records.append(SequenceRecord(
                name=entry.name,
                comment=entry.comment or '',
                sequence=(entry.sequence or '').upper(),
            ))
    if not records:
        raise InvalidInputError(f"No sequences found in {path}")
    return records


def load_sequence(path: str) -> str:
    """Concatenate every record of a FASTA file into one sequence."""
    return ''.join(rec.sequence for rec in read_fasta(path))


# =============================================================================
# Count tables
# =============================================================================

def read_emission_counts(path: str) -> Dict[str, int]:
    """
    Read a symbol<TAB>count table.

    Symbols are kept verbatim (no NA coercion), so composite symbols such as
    'NA-' survive.

    Returns:
        {symbol: count}
    """
    try:
        table = pd.read_csv(path, sep='\t', header=None, usecols=[0, 1],
                            names=['symbol', 'count'], dtype={'symbol': str},
                            keep_default_na=False)
    except pd.errors.EmptyDataError:
        raise InvalidInputError(f"Emission count table {path} is empty")
    except ValueError as exc:
        raise InvalidInputError(f"Malformed emission count table {path}: {exc}") from exc

    counts = pd.to_numeric(table['count'], errors='coerce')
    if counts.isna().any():
        row = int(np.flatnonzero(counts.isna().to_numpy())[0])
        raise InvalidInputError(
            f"Non-numeric count {table['count'].iloc[row]!r} on line {row + 1} of {path}")
    if (counts < 0).any():
        raise InvalidInputError(f"Negative count in {path}")

    duplicated = table['symbol'][table['symbol'].duplicated()]
    if len(duplicated) > 0:
        raise InvalidInputError(
            f"Symbol {duplicated.iloc[0]!r} appears more than once in {path}")

    return dict(zip(table['symbol'], counts.astype(np.int64).tolist()))


def read_position_counts(path: str) -> pd.DataFrame:
    """
    Read per-position read-start counts.

    Returns:
        DataFrame with columns chrom, pos, count (pos and count as int64)
    """
    try:
        table = pd.read_csv(path, sep=r'\s+', header=None, usecols=[0, 1, 2],
                            names=['chrom', 'pos', 'count'], dtype={'chrom': str})
    except pd.errors.EmptyDataError:
        raise InvalidInputError(f"Read count file {path} is empty")
    except ValueError as exc:
        raise InvalidInputError(f"Malformed read count file {path}: {exc}") from exc

    for col in ('pos', 'count'):
        values = pd.to_numeric(table[col], errors='coerce')
        if values.isna().any():
            raise InvalidInputError(f"Non-integer {col} value in {path}")
        table[col] = values.astype(np.int64)
    if (table['count'] < 0).any():
        raise InvalidInputError(f"Negative read count in {path}")

    return table


# =============================================================================
# Alignment blocks
# =============================================================================

@dataclass
class Alignment:
    """
    Column-wise view of a multi-species alignment.

    Each column is a composite symbol: the aligned characters of every
    species, in row order ('AAG' for three species).
    """
    columns: List[str]
    start: int
    end: int
    species: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.columns)


def parse_range(header: str) -> Tuple[int, int]:
    """Parse '# chrX:152767491-152767698' into (152767491, 152767698)."""
    try:
        range_str = header.split(':', 1)[1].strip()
        start, end = range_str.split('-')
        return int(start), int(end)
    except (IndexError, ValueError):
        raise InvalidInputError(f"Malformed alignment header: {header.strip()!r}")


def _block_columns(rows: List[Tuple[str, str]], header: str) -> List[str]:
    lengths = {len(seq) for _, seq in rows}
    if len(lengths) != 1:
        raise InvalidInputError(f"Alignment rows differ in length in block {header.strip()!r}")
    seqs = [seq.upper() for _, seq in rows]
    return [''.join(chars) for chars in zip(*seqs)]


def read_alignment(path: str) -> Alignment:
    """
    Read alignment blocks into composite column symbols.

    The alignment's start is the first block header's start and its end is
    the last block header's end.
    """
    columns: List[str] = []
    species: List[str] = []
    start = end = None
    header = None
    rows: List[Tuple[str, str]] = []

    def close_block():
        nonlocal species
        if header is None:
            return
        if not rows:
            raise InvalidInputError(f"Alignment block {header.strip()!r} has no rows")
        names = [name for name, _ in rows]
        if not species:
            species = names
        elif len(names) != len(species):
            raise InvalidInputError(
                f"Alignment block {header.strip()!r} has {len(names)} rows, "
                f"expected {len(species)}")
        columns.extend(_block_columns(rows, header))

    with open(path) as fh:
        for line in fh:
            line = line.rstrip('\n')
            if not line.strip():
                continue
            if line.startswith('#'):
                close_block()
                header = line
                rows = []
                s, e = parse_range(line)
                if start is None:
                    start = s
                end = e
                continue
            if header is None:
                raise InvalidInputError(f"Alignment row before any block header in {path}")
            parts = line.split('\t')
            if len(parts) < 2:
                raise InvalidInputError(f"Malformed alignment row: {line!r}")
            rows.append((parts[0], parts[1].strip()))
        close_block()

    if not columns:
        raise InvalidInputError(f"No alignment blocks found in {path}")

    return Alignment(columns=columns, start=start, end=end, species=species)
