"""
Combine resolved plus- and minus-strand hits into one candidate table.
"""

import logging
from typing import Iterable

from .models import CandidateTable, OffTargetCandidate, SearchHit

logger = logging.getLogger(__name__)


def _sort_key(tagged):
    hit, _source = tagged
    return (hit.mismatch_count, hit.chrom, hit.start)


def combine_results(
    plus: Iterable[SearchHit],
    minus: Iterable[SearchHit],
) -> CandidateTable:
    """
    Merge resolved strand results into an ordered candidate table.

    Rows are tagged with their source strand, sorted by mismatch count
    (ties broken by chromosome, then start) and numbered from 1.

    Args:
        plus: Resolved plus-strand hits
        minus: Resolved minus-strand hits

    Returns:
        CandidateTable; empty (not an error) when both inputs are empty
    """
    tagged = [(hit, 'plus') for hit in plus] + [(hit, 'minus') for hit in minus]
    # sorted() is stable, so equal keys keep plus-before-minus input order
    ordered = sorted(tagged, key=_sort_key)

    candidates = tuple(
        OffTargetCandidate.from_hit(hit, candidate_id=i, source=source)
        for i, (hit, source) in enumerate(ordered, start=1)
    )

    if candidates:
        logger.info(f"Combined {len(candidates)} off-target candidates")
    else:
        logger.info("Combined candidate table is empty")

    return CandidateTable(candidates)
