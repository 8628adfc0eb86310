"""
Output generation for ot-mapper results.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
import logging

import pandas as pd

from ..config import SequenceSpec
from ..core.models import (
    ANNOTATED_DTYPES,
    CANDIDATE_DTYPES,
    AnnotatedCandidate,
    CandidateTable,
    OffTargetCandidate,
    records_to_dataframe,
)
from ..exceptions import InvalidInput

logger = logging.getLogger(__name__)

CANDIDATES_TSV = "offtarget_candidates.tsv"
CANDIDATES_BED = "offtarget_candidates.bed"
UCSC_LIST = "ucsc_locations.csv"
ANNOTATED_TSV = "annotated_offtargets.tsv"
PRIMER_TSV = "annotated_offtargets_with_primer.tsv"
SUMMARY_REPORT = "summary_report.md"


def write_candidates_tsv(table: CandidateTable, output_path: Path) -> Path:
    """
    Write the candidate table to TSV.

    The header row is written even when the table is empty.

    Args:
        table: CandidateTable
        output_path: Path for output TSV

    Returns:
        Path to written file
    """
    df = table.to_dataframe()
    df.to_csv(output_path, sep='\t', index=False)

    logger.info(f"Wrote {len(df)} candidates to {output_path}")

    return output_path


def write_candidates_bed(table: CandidateTable, output_path: Path) -> Path:
    """Write candidates as BED6 (name OT_<id>, score = mismatch count)."""
    with open(output_path, 'w') as f:
        for candidate in table:
            f.write(candidate.to_interval().to_bed_line() + '\n')

    logger.info(f"Wrote BED file to {output_path}")

    return output_path


def write_ucsc_list(table: CandidateTable, output_path: Path) -> Path:
    """Write ``matched_sequence,chrom:start-end`` lines for the genome browser."""
    with open(output_path, 'w') as f:
        for candidate in table:
            f.write(f"{candidate.matched_sequence},{candidate.ucsc_location}\n")

    logger.info(f"Wrote UCSC location list to {output_path}")

    return output_path


def write_annotated_tsv(annotated: Sequence[AnnotatedCandidate], output_path: Path) -> Path:
    """Write annotated candidates to TSV (header always written)."""
    df = records_to_dataframe(list(annotated), ANNOTATED_DTYPES)
    df.to_csv(output_path, sep='\t', index=False)

    logger.info(f"Wrote {len(df)} annotated rows to {output_path}")

    return output_path


def write_primer_tsv(df: pd.DataFrame, output_path: Path) -> Path:
    """Write annotated rows with their Primer-BLAST links."""
    df.to_csv(output_path, sep='\t', index=False)

    logger.info(f"Wrote {len(df)} primer links to {output_path}")

    return output_path


def _require_columns(df: pd.DataFrame, columns: Sequence[str], path: Path) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidInput(f"{path} is missing required columns: {', '.join(missing)}")


def read_candidates(path: Path) -> CandidateTable:
    """
    Load candidates from a TSV written by write_candidates_tsv, or a BED file.

    BED input carries no matched sequence; ids are taken from ``OT_<id>``
    names when present and assigned in file order otherwise.

    Raises:
        InvalidInput: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise InvalidInput(f"Candidate file not found: {path}")

    if path.suffix == '.bed':
        return _read_candidates_bed(path)

    df = pd.read_csv(path, sep='\t', dtype=str, keep_default_na=False)
    _require_columns(df, list(CANDIDATE_DTYPES), path)

    candidates = tuple(
        OffTargetCandidate(
            candidate_id=int(row.candidate_id),
            chrom=row.chrom,
            start=int(row.start),
            end=int(row.end),
            strand=row.strand,
            matched_sequence=row.matched_sequence,
            mismatch_count=int(row.mismatch_count),
            source=row.source,
        )
        for row in df.itertuples(index=False)
    )
    return CandidateTable(candidates)


def _read_candidates_bed(path: Path) -> CandidateTable:
    candidates = []
    with open(path) as f:
        for i, line in enumerate(f, start=1):
            if not line.strip() or line.startswith(('#', 'track', 'browser')):
                continue
            fields = line.rstrip('\n').split('\t')
            if len(fields) < 6:
                raise InvalidInput(f"{path}:{i}: expected 6 BED columns, got {len(fields)}")
            name, score, strand = fields[3], fields[4], fields[5]
            try:
                candidate_id = int(name[3:]) if name.startswith('OT_') else len(candidates) + 1
                candidate = OffTargetCandidate(
                    candidate_id=candidate_id,
                    chrom=fields[0],
                    start=int(fields[1]),
                    end=int(fields[2]),
                    strand=strand,
                    matched_sequence='',
                    mismatch_count=int(float(score)),
                    source='plus' if strand == '+' else 'minus',
                )
            except ValueError as e:
                raise InvalidInput(f"{path}:{i}: malformed BED record: {e}") from e
            candidates.append(candidate)
    return CandidateTable(tuple(candidates))


def read_annotated_tsv(path: Path) -> List[AnnotatedCandidate]:
    """Load annotated candidates from a TSV written by write_annotated_tsv."""
    path = Path(path)
    if not path.exists():
        raise InvalidInput(f"Annotated candidate file not found: {path}")

    df = pd.read_csv(path, sep='\t', dtype=str, keep_default_na=False)
    _require_columns(df, list(ANNOTATED_DTYPES), path)

    return [
        AnnotatedCandidate(
            candidate_id=int(row.candidate_id),
            chrom=row.chrom,
            start=int(row.start),
            end=int(row.end),
            strand=row.strand,
            matched_sequence=row.matched_sequence,
            mismatch_count=int(row.mismatch_count),
            source=row.source,
            gene_symbol=row.gene_symbol,
            feature_type=row.feature_type,
            feature_index=int(row.feature_index),
        )
        for row in df.itertuples(index=False)
    ]


def generate_summary_report(
    spec: SequenceSpec,
    status: str,
    table: CandidateTable,
    output_path: Path,
    raw_counts: Optional[Dict[str, int]] = None,
    filtered_counts: Optional[Dict[str, int]] = None,
    annotated: Optional[Sequence[AnnotatedCandidate]] = None,
    warnings: Optional[Sequence[str]] = None,
) -> Path:
    """
    Generate a summary report in markdown format.

    Args:
        spec: Validated guide input
        status: Run status label
        table: Final candidate table
        output_path: Path for output markdown file
        raw_counts: Hits per search before PAM filtering
        filtered_counts: Hits per search after PAM filtering
        annotated: Annotated rows, or None when annotation did not run
        warnings: Recoverable problems encountered during the run

    Returns:
        Path to written file
    """
    with open(output_path, 'w') as f:
        f.write("# ot-mapper Off-Target Summary\n\n")

        f.write("## Input\n\n")
        f.write(f"- **Spacer:** {spec.spacer}\n")
        f.write(f"- **PAM:** {spec.pam}\n")
        f.write(f"- **Seed length:** {spec.seed_length}\n")
        f.write(f"- **Full query:** {spec.full_sequence}\n")
        f.write(f"- **Seed query:** {spec.seed_sequence}\n\n")

        if raw_counts is not None:
            f.write("## Search Hits\n\n")
            f.write("| Search | Raw | Exact PAM |\n")
            f.write("|--------|-----|-----------|\n")
            for key, raw in raw_counts.items():
                kept = filtered_counts.get(key, 0) if filtered_counts else 0
                f.write(f"| {key} | {raw} | {kept} |\n")
            f.write("\n")

        f.write("## Candidates\n\n")
        f.write(f"- **Status:** {status}\n")
        f.write(f"- **Total candidates:** {len(table)}\n")
        f.write(f"- **Plus strand:** {len(table.by_source('plus'))}\n")
        f.write(f"- **Minus strand:** {len(table.by_source('minus'))}\n")

        if not table.is_empty:
            mismatch_counts: Dict[int, int] = {}
            for candidate in table:
                mismatch_counts[candidate.mismatch_count] = mismatch_counts.get(candidate.mismatch_count, 0) + 1
            for mm in sorted(mismatch_counts):
                f.write(f"- **{mm} mismatch(es):** {mismatch_counts[mm]}\n")
        f.write("\n")

        if annotated is not None:
            exon = sum(1 for a in annotated if a.feature_type == 'exon')
            intron = sum(1 for a in annotated if a.feature_type == 'intron')
            genes = sorted({a.gene_symbol for a in annotated if a.gene_symbol})
            f.write("## Annotation\n\n")
            f.write(f"- **Annotated candidates:** {len({a.candidate_id for a in annotated})}\n")
            f.write(f"- **Exon overlaps:** {exon}\n")
            f.write(f"- **Intron overlaps:** {intron}\n")
            if genes:
                shown = ', '.join(genes[:20])
                more = f" (+{len(genes) - 20} more)" if len(genes) > 20 else ''
                f.write(f"- **Genes:** {shown}{more}\n")
            f.write("\n")

        if warnings:
            f.write("## Warnings\n\n")
            for warning in warnings:
                f.write(f"- {warning}\n")
            f.write("\n")

    logger.info(f"Wrote summary report to {output_path}")

    return output_path
