"""
Coordinate overlap resolution between full-sequence and seed hits.

A full-sequence hit (looser mismatch budget) is only a plausible off-target
if a seed hit (stringent budget) lies at the same locus: same chromosome,
same strand, overlapping coordinates.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import IntersectionUnavailable
from ..integrations.bedtools import IntervalIntersector, PairwiseIntersector
from .models import SearchHit

logger = logging.getLogger(__name__)


def intervals_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open overlap test: [s1, e1) and [s2, e2) share at least one base."""
    return start1 < end2 and start2 < end1


def deduplicate_hits(hits: Iterable[SearchHit]) -> Tuple[SearchHit, ...]:
    """Collapse hits sharing chrom/start/end/strand, keeping the first seen."""
    seen = set()
    unique = []
    for hit in hits:
        if hit.locus in seen:
            continue
        seen.add(hit.locus)
        unique.append(hit)
    return tuple(unique)


def _run_intersector(
    intersector: IntervalIntersector,
    full: Tuple[SearchHit, ...],
    seed: Tuple[SearchHit, ...],
) -> List[SearchHit]:
    """Send hits through an engine and map the returned intervals back to hits."""
    full_by_name: Dict[str, SearchHit] = {
        f"full_{i}": hit for i, hit in enumerate(full)
    }
    a = [hit.to_interval(name) for name, hit in full_by_name.items()]
    b = [hit.to_interval(f"seed_{i}") for i, hit in enumerate(seed)]

    overlapping = intersector.intersect(a, b)
    return [full_by_name[iv.name] for iv in overlapping if iv.name in full_by_name]


def resolve_overlaps(
    full: Iterable[SearchHit],
    seed: Iterable[SearchHit],
    intersector: Optional[IntervalIntersector] = None,
) -> Tuple[SearchHit, ...]:
    """
    Keep full-sequence hits that overlap at least one seed hit.

    Args:
        full: PAM-filtered full-sequence hits for one strand
        seed: PAM-filtered seed hits for the same strand
        intersector: Interval engine; defaults to the pairwise comparison

    Returns:
        Deduplicated subset of ``full``, in input order

    Raises:
        IntersectionUnavailable: Only if the pairwise fallback also fails
    """
    full = tuple(full)
    seed = tuple(seed)
    if not full or not seed:
        return ()

    fallback = PairwiseIntersector()
    engine = intersector or fallback

    try:
        matched = _run_intersector(engine, full, seed)
    except IntersectionUnavailable as e:
        if isinstance(engine, PairwiseIntersector):
            raise
        logger.warning(f"{engine.name} intersection unavailable ({e}); "
                       "falling back to pairwise comparison")
        try:
            matched = _run_intersector(fallback, full, seed)
        except MemoryError as mem_err:
            raise IntersectionUnavailable(
                f"Pairwise overlap fallback exhausted memory for "
                f"{len(full)} x {len(seed)} hits"
            ) from mem_err
    except MemoryError as e:
        raise IntersectionUnavailable(
            f"Overlap detection exhausted memory for {len(full)} x {len(seed)} hits"
        ) from e

    # Input order, not engine output order
    matched_ids = {id(hit) for hit in matched}
    ordered = [hit for hit in full if id(hit) in matched_ids]
    return deduplicate_hits(ordered)
