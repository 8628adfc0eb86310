"""
Utility modules for ot-mapper.
"""

from .sequence import (
    DNA_BASES,
    clean_sequence,
    is_wildcard,
    pattern_matches,
    reverse_complement,
)

__all__ = [
    'DNA_BASES',
    'reverse_complement',
    'clean_sequence',
    'is_wildcard',
    'pattern_matches',
]
