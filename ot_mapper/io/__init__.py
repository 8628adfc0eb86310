"""
I/O modules for ot-mapper.
"""

from .output import (
    generate_summary_report,
    read_annotated_tsv,
    read_candidates,
    write_annotated_tsv,
    write_candidates_bed,
    write_candidates_tsv,
    write_primer_tsv,
    write_ucsc_list,
)

__all__ = [
    'write_candidates_tsv',
    'write_candidates_bed',
    'write_ucsc_list',
    'write_annotated_tsv',
    'write_primer_tsv',
    'read_candidates',
    'read_annotated_tsv',
    'generate_summary_report',
]
