"""
Record types for off-target candidate resolution.

All records are frozen: every pipeline stage builds new collections
from its input instead of mutating it.
"""

from dataclasses import asdict, dataclass, fields
from typing import Iterator, List, NamedTuple, Tuple

import pandas as pd

STRANDS = ('+', '-')
STRAND_SOURCE = {'+': 'plus', '-': 'minus'}


class Interval(NamedTuple):
    """BED6 record exchanged with the interval engine (0-based, half-open)."""
    chrom: str
    start: int
    end: int
    name: str
    score: int
    strand: str

    def to_bed_line(self) -> str:
        return '\t'.join(str(v) for v in self)


@dataclass(frozen=True)
class SearchHit:
    """One normalized row from the genome search service.

    Attributes:
        chrom: Chromosome name
        strand: '+' or '-'
        start: 0-based start
        end: Exclusive end
        matched_sequence: Genomic sequence reported for the match
        mismatch_count: Edit distance reported by the search
        insertions: Reported insertions (0 for no-gap searches)
        deletions: Reported deletions (0 for no-gap searches)
    """
    chrom: str
    strand: str
    start: int
    end: int
    matched_sequence: str
    mismatch_count: int = 0
    insertions: int = 0
    deletions: int = 0

    @property
    def locus(self) -> Tuple[str, int, int, str]:
        """Key used for deduplication."""
        return (self.chrom, self.start, self.end, self.strand)

    def overlaps(self, other: 'SearchHit') -> bool:
        """Half-open overlap on the same chromosome and strand."""
        return (
            self.chrom == other.chrom
            and self.strand == other.strand
            and self.start < other.end
            and other.start < self.end
        )

    def to_interval(self, name: str) -> Interval:
        return Interval(self.chrom, self.start, self.end, name,
                        self.mismatch_count, self.strand)


@dataclass(frozen=True)
class CandidateSet:
    """The four search result collections for one guide."""
    plus_full: Tuple[SearchHit, ...] = ()
    minus_full: Tuple[SearchHit, ...] = ()
    plus_seed: Tuple[SearchHit, ...] = ()
    minus_seed: Tuple[SearchHit, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.plus_full or self.minus_full or self.plus_seed or self.minus_seed)

    def counts(self) -> dict:
        return {
            'plus_full': len(self.plus_full),
            'minus_full': len(self.minus_full),
            'plus_seed': len(self.plus_seed),
            'minus_seed': len(self.minus_seed),
        }


@dataclass(frozen=True)
class OffTargetCandidate:
    """A resolved off-target locus.

    Always derived from a PAM-filtered full-sequence hit that overlaps a
    PAM-filtered seed hit on the same chromosome and strand.
    """
    candidate_id: int
    chrom: str
    start: int
    end: int
    strand: str
    matched_sequence: str
    mismatch_count: int
    source: str  # 'plus' or 'minus'

    @classmethod
    def from_hit(cls, hit: SearchHit, candidate_id: int, source: str) -> 'OffTargetCandidate':
        return cls(
            candidate_id=candidate_id,
            chrom=hit.chrom,
            start=hit.start,
            end=hit.end,
            strand=hit.strand,
            matched_sequence=hit.matched_sequence,
            mismatch_count=hit.mismatch_count,
            source=source,
        )

    @property
    def name(self) -> str:
        """BED name used when the candidate leaves the process."""
        return f"OT_{self.candidate_id}"

    @property
    def ucsc_location(self) -> str:
        """Genome browser position string (1-based, inclusive)."""
        return f"{self.chrom}:{self.start + 1}-{self.end}"

    def to_interval(self) -> Interval:
        return Interval(self.chrom, self.start, self.end, self.name,
                        self.mismatch_count, self.strand)


@dataclass(frozen=True)
class AnnotatedCandidate(OffTargetCandidate):
    """Off-target candidate joined to an exon or intron feature."""
    gene_symbol: str = ''
    feature_type: str = ''  # 'exon' or 'intron'
    feature_index: int = 0

    @classmethod
    def from_candidate(
        cls,
        candidate: OffTargetCandidate,
        gene_symbol: str,
        feature_type: str,
        feature_index: int,
    ) -> 'AnnotatedCandidate':
        return cls(
            **asdict(candidate),
            gene_symbol=gene_symbol,
            feature_type=feature_type,
            feature_index=feature_index,
        )


CANDIDATE_DTYPES = {
    'candidate_id': 'int64',
    'chrom': 'object',
    'start': 'int64',
    'end': 'int64',
    'strand': 'object',
    'matched_sequence': 'object',
    'mismatch_count': 'int64',
    'source': 'object',
}

ANNOTATED_DTYPES = {
    **CANDIDATE_DTYPES,
    'gene_symbol': 'object',
    'feature_type': 'object',
    'feature_index': 'int64',
}


def records_to_dataframe(records: List, dtypes: dict) -> pd.DataFrame:
    """Build a DataFrame with fixed columns and dtypes, even when empty."""
    columns = list(dtypes)
    if records:
        df = pd.DataFrame([asdict(r) for r in records], columns=columns)
    else:
        df = pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in dtypes.items()})
    return df.astype(dtypes)


class CandidateTable:
    """Ordered, immutable table of off-target candidates."""

    columns = tuple(f.name for f in fields(OffTargetCandidate))

    def __init__(self, candidates: Tuple[OffTargetCandidate, ...] = ()):
        self._candidates = tuple(candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self) -> Iterator[OffTargetCandidate]:
        return iter(self._candidates)

    def __getitem__(self, index: int) -> OffTargetCandidate:
        return self._candidates[index]

    def __repr__(self) -> str:
        return f"CandidateTable(n={len(self)})"

    @property
    def is_empty(self) -> bool:
        return not self._candidates

    @property
    def candidates(self) -> Tuple[OffTargetCandidate, ...]:
        return self._candidates

    def by_source(self, source: str) -> Tuple[OffTargetCandidate, ...]:
        return tuple(c for c in self._candidates if c.source == source)

    def to_dataframe(self) -> pd.DataFrame:
        return records_to_dataframe(list(self._candidates), CANDIDATE_DTYPES)
