"""
Core candidate resolution modules for ot-mapper.
"""

from .models import (
    AnnotatedCandidate,
    CandidateSet,
    CandidateTable,
    Interval,
    OffTargetCandidate,
    SearchHit,
)
from .combiner import combine_results
from .overlap import (
    deduplicate_hits,
    intervals_overlap,
    resolve_overlaps,
)
from .pam import (
    extract_pam_window,
    filter_candidate_set,
    filter_exact_pam,
    pam_matches,
)

__all__ = [
    # Records
    'SearchHit',
    'CandidateSet',
    'OffTargetCandidate',
    'AnnotatedCandidate',
    'CandidateTable',
    'Interval',
    # PAM filter
    'extract_pam_window',
    'pam_matches',
    'filter_exact_pam',
    'filter_candidate_set',
    # Overlap
    'intervals_overlap',
    'deduplicate_hits',
    'resolve_overlaps',
    # Combiner
    'combine_results',
]
