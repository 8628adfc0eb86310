"""
PAM exact-match filtering of search hits.

The search service matches with mismatches anywhere, including the PAM.
Candidates are only kept when the bases at the PAM position match the
pattern exactly (wildcards aside).

Plus-strand hits carry the PAM at the 3' end of the matched sequence.
Minus-strand hits are reported in reference orientation, so the PAM sits
at the start of the matched sequence and is compared against the reverse
complement of the pattern (NGG -> CCN).
"""

import logging
from typing import Iterable, Optional, Tuple

from ..config import SequenceSpec
from ..utils.sequence import pattern_matches, reverse_complement
from .models import CandidateSet, SearchHit

logger = logging.getLogger(__name__)


def extract_pam_window(
    hit: SearchHit,
    pam_length: int,
    spacer_length: Optional[int] = None,
) -> Optional[str]:
    """
    Return the bases at the PAM position of a hit, or None if it is too short.

    Args:
        hit: Search hit
        pam_length: Length of the PAM pattern
        spacer_length: Known spacer length. For plus-strand hits the window
            is placed right after the spacer instead of at the raw end, which
            tolerates trailing genomic context in the matched string.

    Returns:
        Upper-cased PAM window, or None
    """
    seq = hit.matched_sequence.upper()
    if len(seq) < pam_length:
        return None

    if hit.strand == '-':
        return seq[:pam_length]

    if spacer_length:
        if len(seq) < spacer_length + pam_length:
            return None
        return seq[spacer_length:spacer_length + pam_length]

    return seq[-pam_length:]


def pam_matches(hit: SearchHit, pam: str, spacer_length: Optional[int] = None) -> bool:
    """Check whether a single hit carries the PAM exactly."""
    pattern = reverse_complement(pam) if hit.strand == '-' else pam
    window = extract_pam_window(hit, len(pam), spacer_length)
    if window is None:
        return False
    return pattern_matches(pattern.upper(), window)


def filter_exact_pam(
    hits: Iterable[SearchHit],
    pam: str,
    spacer_length: Optional[int] = None,
) -> Tuple[SearchHit, ...]:
    """
    Keep only hits whose PAM-position bases match the pattern exactly.

    Args:
        hits: Search hits (either strand)
        pam: PAM pattern, e.g. 'NGG'
        spacer_length: Spacer length for full-sequence hits; None for
            seed hits, where the PAM is read from the raw 3' end

    Returns:
        Tuple of retained hits, in input order
    """
    hits = tuple(hits)
    kept = tuple(h for h in hits if pam_matches(h, pam, spacer_length))
    logger.debug(f"PAM filter ({pam}): {len(kept)}/{len(hits)} hits retained")
    return kept


def filter_candidate_set(candidates: CandidateSet, spec: SequenceSpec) -> CandidateSet:
    """
    Apply the PAM filter to all four collections of a CandidateSet.

    Full-sequence hits use the spacer-length-aware window; seed hits use
    the raw-end window because their prefix length differs from the spacer.
    """
    filtered = CandidateSet(
        plus_full=filter_exact_pam(candidates.plus_full, spec.pam, spec.spacer_length),
        minus_full=filter_exact_pam(candidates.minus_full, spec.pam, spec.spacer_length),
        plus_seed=filter_exact_pam(candidates.plus_seed, spec.pam),
        minus_seed=filter_exact_pam(candidates.minus_seed, spec.pam),
    )

    before = candidates.counts()
    after = filtered.counts()
    for key in before:
        logger.info(f"  {key}: {after[key]}/{before[key]} hits with exact PAM")

    return filtered
