"""
Exon / intron annotation of off-target candidates.

Reference files are BED6-like with the columns
chrom, start, end, gene_symbol, feature_type ('exon' or 'intron') and
feature_index (0-based exon/intron number). The join is unstranded and
reports one row per candidate/feature overlap; candidates without any
overlapping feature are absent from the result.
"""

import logging
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import pysam

from ..core.models import AnnotatedCandidate, CandidateTable, OffTargetCandidate
from ..exceptions import AnnotationUnavailable, IntersectionUnavailable
from .bedtools import bedtools_available, read_bed_lines, run_bedtools, write_bed

logger = logging.getLogger(__name__)

CANDIDATE_FIELDS = 6
REFERENCE_FIELDS = 6


def _check_reference_files(*paths: Path) -> None:
    for path in paths:
        if path is None:
            raise AnnotationUnavailable("Exon and intron reference files are both required")
        if not Path(path).exists():
            raise AnnotationUnavailable(f"Annotation file not found: {path}")


def _parse_feature(fields: Sequence[str]) -> Optional[Tuple[str, str, int]]:
    """Extract (gene_symbol, feature_type, feature_index) from reference columns."""
    if len(fields) < REFERENCE_FIELDS:
        return None
    try:
        feature_index = int(fields[5])
    except ValueError:
        return None
    return fields[3], fields[4], feature_index


class AnnotationJoiner:
    """Join candidates to exon/intron reference intervals."""

    name = 'base'

    def __init__(self, exon_db: Path, intron_db: Path):
        self.exon_db = Path(exon_db) if exon_db is not None else None
        self.intron_db = Path(intron_db) if intron_db is not None else None

    def join(self, candidates: Sequence[OffTargetCandidate]) -> List[AnnotatedCandidate]:
        raise NotImplementedError


class BedtoolsAnnotator(AnnotationJoiner):
    """
    ``bedtools intersect -a candidates.bed -b exons.bed introns.bed -wa -wb``.

    Both reference files are handed to bedtools as-is, so gzipped BED
    works without an index. With several ``-b`` files bedtools inserts a
    database column (1 = exons, 2 = introns) before the reference fields;
    rows are ordered by candidate, then exon overlaps before intron ones.
    """

    name = 'bedtools'

    def __init__(self, exon_db: Path, intron_db: Path,
                 executable: str = 'bedtools', timeout: int = 600):
        super().__init__(exon_db, intron_db)
        self.executable = executable
        self.timeout = timeout

    def join(self, candidates: Sequence[OffTargetCandidate]) -> List[AnnotatedCandidate]:
        _check_reference_files(self.exon_db, self.intron_db)
        if not candidates:
            return []

        try:
            with tempfile.TemporaryDirectory(prefix='ot_mapper_annot_') as tmp:
                cand_bed = write_bed([c.to_interval() for c in candidates],
                                     Path(tmp) / 'offtargets.bed')
                stdout = run_bedtools(
                    ['intersect', '-a', str(cand_bed),
                     '-b', str(self.exon_db), str(self.intron_db), '-wa', '-wb'],
                    executable=self.executable,
                    timeout=self.timeout,
                )
        except IntersectionUnavailable as e:
            raise AnnotationUnavailable(str(e)) from e
        except OSError as e:
            raise AnnotationUnavailable(f"Cannot prepare annotation input: {e}") from e

        order = {c.name: i for i, c in enumerate(candidates)}
        by_name = {c.name: c for c in candidates}
        rows = []
        for fields in read_bed_lines(stdout):
            candidate = by_name.get(fields[3]) if len(fields) > 3 else None
            feature = _parse_feature(fields[CANDIDATE_FIELDS + 1:])
            if candidate is None or feature is None:
                logger.debug(f"Skipping malformed annotation line: {fields}")
                continue
            db_index = fields[CANDIDATE_FIELDS]
            rows.append((order[candidate.name], db_index, candidate, feature))

        rows.sort(key=lambda row: (row[0], row[1]))
        return [AnnotatedCandidate.from_candidate(candidate, *feature)
                for _, _, candidate, feature in rows]


class TabixAnnotator(AnnotationJoiner):
    """In-process join against bgzipped, tabix-indexed reference BED files."""

    name = 'tabix'

    def join(self, candidates: Sequence[OffTargetCandidate]) -> List[AnnotatedCandidate]:
        _check_reference_files(self.exon_db, self.intron_db)
        if not candidates:
            return []

        try:
            handles = [pysam.TabixFile(str(db)) for db in (self.exon_db, self.intron_db)]
        except (OSError, ValueError) as e:
            raise AnnotationUnavailable(f"Cannot open tabix reference: {e}") from e

        annotated = []
        try:
            for candidate in candidates:
                for handle in handles:
                    for fields in self._fetch(handle, candidate):
                        feature = _parse_feature(fields)
                        if feature is None:
                            continue
                        annotated.append(AnnotatedCandidate.from_candidate(candidate, *feature))
        except (OSError, UnicodeDecodeError) as e:
            raise AnnotationUnavailable(f"Cannot read tabix reference: {e}") from e
        finally:
            for handle in handles:
                handle.close()
        return annotated

    @staticmethod
    def _fetch(handle: 'pysam.TabixFile', candidate: OffTargetCandidate) -> Iterable[Sequence[str]]:
        # Contigs absent from the index have no features
        if candidate.chrom not in handle.contigs:
            return []
        return handle.fetch(candidate.chrom, candidate.start, candidate.end,
                            parser=pysam.asTuple())


def _is_tabix_indexed(path: Optional[Path]) -> bool:
    if path is None:
        return False
    path = Path(path)
    return path.suffix == '.gz' and Path(f"{path}.tbi").exists()


def make_annotator(exon_db: Path, intron_db: Path) -> AnnotationJoiner:
    """
    Choose an annotation backend for the given reference files.

    Tabix-indexed ``.gz`` files are read in-process with pysam; anything
    else goes through bedtools.

    Raises:
        AnnotationUnavailable: If a file is missing, or bedtools is needed
            but not installed
    """
    _check_reference_files(exon_db, intron_db)

    if _is_tabix_indexed(exon_db) and _is_tabix_indexed(intron_db):
        return TabixAnnotator(exon_db, intron_db)

    if not bedtools_available():
        raise AnnotationUnavailable("bedtools is not installed or not in PATH")
    return BedtoolsAnnotator(exon_db, intron_db)


def annotate_candidates(
    table: CandidateTable,
    annotator: AnnotationJoiner,
) -> List[AnnotatedCandidate]:
    """
    Annotate a candidate table with exon / intron features.

    Args:
        table: Resolved off-target candidates
        annotator: Backend from make_annotator()

    Returns:
        One AnnotatedCandidate per candidate/feature overlap

    Raises:
        AnnotationUnavailable: If the backend cannot run
    """
    annotated = annotator.join(table.candidates)

    n_hit = len({a.candidate_id for a in annotated})
    logger.info(f"Annotated {n_hit}/{len(table)} candidates "
                f"({len(annotated)} feature overlaps, {annotator.name})")
    return annotated
