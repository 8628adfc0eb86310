"""
NCBI Primer-BLAST links for off-target validation amplicons.

Primers are placed 150-500 bp upstream and 150-500 bp downstream of the
candidate, giving a 400-800 bp product suitable for Sanger or amplicon
sequencing.
"""

import logging
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlencode

import pandas as pd

from ..core.models import ANNOTATED_DTYPES, AnnotatedCandidate, records_to_dataframe

logger = logging.getLogger(__name__)

PRIMER_BLAST_URL = "https://www.ncbi.nlm.nih.gov/tools/primer-blast/index.cgi"

# hg38 chromosome -> RefSeq accession
CHROM_TO_REFSEQ = {
    'chr1': 'NC_000001.11', 'chr2': 'NC_000002.12', 'chr3': 'NC_000003.12',
    'chr4': 'NC_000004.12', 'chr5': 'NC_000005.10', 'chr6': 'NC_000006.12',
    'chr7': 'NC_000007.14', 'chr8': 'NC_000008.11', 'chr9': 'NC_000009.12',
    'chr10': 'NC_000010.11', 'chr11': 'NC_000011.10', 'chr12': 'NC_000012.12',
    'chr13': 'NC_000013.11', 'chr14': 'NC_000014.9', 'chr15': 'NC_000015.10',
    'chr16': 'NC_000016.10', 'chr17': 'NC_000017.11', 'chr18': 'NC_000018.10',
    'chr19': 'NC_000019.10', 'chr20': 'NC_000020.11', 'chr21': 'NC_000021.9',
    'chr22': 'NC_000022.11', 'chrX': 'NC_000023.11', 'chrY': 'NC_000024.10',
}

PRIMER_FLANK_NEAR = 150
PRIMER_FLANK_FAR = 500

PRIMER_BLAST_PARAMS = {
    'OVERLAP_5END': 7,
    'OVERLAP_3END': 4,
    'PRIMER_PRODUCT_MIN': 400,
    'PRIMER_PRODUCT_MAX': 800,
    'PRIMER_NUM_RETURN': 10,
    'PRIMER_MIN_TM': 56,
    'PRIMER_OPT_TM': 58,
    'PRIMER_MAX_TM': 62,
    'PRIMER_MAX_DIFF_TM': 2,
    'SEARCH_SPECIFIC_PRIMER': 'on',
    'ORGANISM': 'Homo sapiens',
    'PRIMER_SPECIFICITY_DATABASE': 'PRIMERDB/genome_selected_species',
    'TOTAL_PRIMER_SPECIFICITY_MISMATCH': 1,
    'PRIMER_3END_SPECIFICITY_MISMATCH': 1,
    'MISMATCH_REGION_LENGTH': 5,
    'TOTAL_MISMATCH_IGNORE': 6,
    'MAX_TARGET_SIZE': 4000,
    'PRIMER_MIN_SIZE': 18,
    'PRIMER_OPT_SIZE': 22,
    'PRIMER_MAX_SIZE': 25,
    'PRIMER_MIN_GC': 20.0,
    'PRIMER_MAX_GC': 80.0,
    'GC_CLAMP': 1,
    'POLYX': 5,
    'PRIMER_MISPRIMING_LIBRARY': 'repeat/repeat_9606',
    'NO_SNP': 'on',
    'LOW_COMPLEXITY_FILTER': 'on',
    'SHOW_SVIEWER': 'true',
}


def build_primer_blast_url(chrom: str, start: int, end: int) -> Optional[str]:
    """
    Build a Primer-BLAST bookmark URL around a locus.

    Args:
        chrom: hg38 chromosome name (e.g. 'chr7')
        start: 0-based start of the candidate
        end: Exclusive end of the candidate

    Returns:
        URL string, or None when the chromosome has no RefSeq accession
    """
    refseq = CHROM_TO_REFSEQ.get(chrom)
    if refseq is None:
        return None

    query = {
        'LINK_LOC': 'bookmark',
        'INPUT_SEQUENCE': refseq,
        'PRIMER5_START': max(1, start - PRIMER_FLANK_FAR),
        'PRIMER5_END': max(1, start - PRIMER_FLANK_NEAR),
        'PRIMER3_START': end + PRIMER_FLANK_NEAR,
        'PRIMER3_END': end + PRIMER_FLANK_FAR,
        **PRIMER_BLAST_PARAMS,
    }
    return f"{PRIMER_BLAST_URL}?{urlencode(query)}"


def add_primer_links(annotated: Sequence[AnnotatedCandidate]) -> pd.DataFrame:
    """
    Attach a ``primer_blast_url`` column to annotated candidates.

    Rows on chromosomes without a RefSeq mapping (alt contigs, chrM, ...)
    are skipped with a warning.
    """
    rows: List[AnnotatedCandidate] = []
    urls: List[str] = []
    skipped: Dict[str, int] = {}

    for record in annotated:
        url = build_primer_blast_url(record.chrom, record.start, record.end)
        if url is None:
            skipped[record.chrom] = skipped.get(record.chrom, 0) + 1
            continue
        rows.append(record)
        urls.append(url)

    for chrom, count in skipped.items():
        logger.warning(f"No RefSeq accession for {chrom}; skipped {count} primer link(s)")

    df = records_to_dataframe(rows, ANNOTATED_DTYPES)
    df['primer_blast_url'] = pd.Series(urls, index=df.index, dtype='object')
    return df
