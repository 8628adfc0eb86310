"""
Sequence manipulation utilities.

Provides common functions for DNA sequence and PAM pattern operations.
"""

import re

DNA_BASES = frozenset('ACGT')

# Whitespace is dropped from pasted sequences before validation
_WHITESPACE = re.compile(r'\s+')


def reverse_complement(seq: str) -> str:
    """Return reverse complement of DNA sequence.

    Bases outside ACGT (e.g. IUPAC wildcards in a PAM pattern) are kept as-is,
    so ``NGG`` becomes ``CCN``.
    """
    complement = {
        'A': 'T', 'T': 'A', 'G': 'C', 'C': 'G',
        'a': 't', 't': 'a', 'g': 'c', 'c': 'g',
    }
    return ''.join(complement.get(base, base) for base in reversed(seq))


def clean_sequence(seq: str) -> str:
    """Strip all whitespace and upper-case a user-supplied sequence."""
    return _WHITESPACE.sub('', seq).upper()


def is_wildcard(base: str) -> bool:
    """Pattern letters other than A/C/G/T match any single base."""
    return base.upper() not in DNA_BASES


def pattern_matches(pattern: str, window: str) -> bool:
    """Check a sequence window against a PAM pattern, position by position.

    Args:
        pattern: PAM pattern, e.g. ``NGG``; non-ACGT letters are wildcards
        window: Genomic bases at the PAM position

    Returns:
        True if lengths agree and every literal position matches exactly
    """
    if len(pattern) != len(window):
        return False
    return all(
        is_wildcard(p) or p.upper() == b.upper()
        for p, b in zip(pattern, window)
    )

