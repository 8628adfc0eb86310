"""
Main pipeline orchestration for ot-mapper.

Stages: sequence preparation -> candidate search -> PAM filter ->
overlap resolution (per strand) -> combine -> annotation -> outputs.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional
import logging

from .config import DEFAULT_GENOME, DEFAULT_PAM, PipelineConfig, SequenceSpec
from .core.combiner import combine_results
from .core.models import AnnotatedCandidate, CandidateSet, CandidateTable
from .core.overlap import resolve_overlaps
from .core.pam import filter_candidate_set
from .exceptions import AnnotationUnavailable
from .integrations.annotation import AnnotationJoiner, annotate_candidates, make_annotator
from .integrations.bedtools import IntervalIntersector, default_intersector
from .integrations.gggenome import CandidateSearcher, GGGenomeClient
from .io.output import (
    ANNOTATED_TSV,
    CANDIDATES_BED,
    CANDIDATES_TSV,
    PRIMER_TSV,
    SUMMARY_REPORT,
    UCSC_LIST,
    generate_summary_report,
    write_annotated_tsv,
    write_candidates_bed,
    write_candidates_tsv,
    write_primer_tsv,
    write_ucsc_list,
)
from .utils.primer_blast import add_primer_links

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    """Outcome of a pipeline run."""
    SUCCESS = "success"
    NO_CANDIDATES = "no_candidates"


@dataclass
class PipelineResult:
    """Everything a run produced.

    ``candidates`` is the primary artifact. ``annotated`` is None when
    annotation was not configured or could not run.
    """
    spec: SequenceSpec
    raw: CandidateSet
    filtered: CandidateSet
    candidates: CandidateTable
    status: RunStatus
    annotated: Optional[List[AnnotatedCandidate]] = None
    warnings: List[str] = field(default_factory=list)
    output_dir: Optional[Path] = None

    @property
    def n_candidates(self) -> int:
        return len(self.candidates)


class OffTargetPipeline:
    """Main pipeline orchestrator."""

    def __init__(
        self,
        config: PipelineConfig,
        searcher: Optional[CandidateSearcher] = None,
        intersector: Optional[IntervalIntersector] = None,
        annotator: Optional[AnnotationJoiner] = None,
    ):
        self.config = config
        # Fails fast, before any external call
        self.spec = config.to_spec()

        self.searcher = searcher or CandidateSearcher(
            client=GGGenomeClient(base_url=config.base_url, timeout=config.timeout),
            genome=config.genome,
            full_mismatch=config.full_mismatch,
            seed_mismatch=config.seed_mismatch,
            retries=config.retries,
            retry_delay=config.retry_delay,
            max_workers=config.max_workers,
        )
        self.intersector = intersector or default_intersector(config.use_bedtools)
        self.annotator = annotator

    def detect(self) -> PipelineResult:
        """
        Search, filter and resolve candidates without annotation or output.

        Raises:
            SearchUnavailable: If the search service cannot be reached
        """
        spec = self.spec
        logger.info(f"Full sequence: {spec.full_sequence}")
        logger.info(f"Seed sequence: {spec.seed_sequence}")

        raw = self.searcher.search(spec)

        logger.info("Filtering hits for exact PAM match...")
        filtered = filter_candidate_set(raw, spec)

        logger.info("Resolving full/seed overlaps...")
        plus = resolve_overlaps(filtered.plus_full, filtered.plus_seed, self.intersector)
        minus = resolve_overlaps(filtered.minus_full, filtered.minus_seed, self.intersector)
        logger.info(f"  plus: {len(plus)} candidates, minus: {len(minus)} candidates")

        table = combine_results(plus, minus)
        status = RunStatus.NO_CANDIDATES if table.is_empty else RunStatus.SUCCESS

        return PipelineResult(
            spec=spec,
            raw=raw,
            filtered=filtered,
            candidates=table,
            status=status,
            output_dir=self.config.output_dir,
        )

    def annotate(self, result: PipelineResult) -> PipelineResult:
        """Attach exon/intron annotation; failures become warnings."""
        if result.candidates.is_empty:
            return result

        annotator = self.annotator
        if annotator is None and not self.config.has_annotation:
            logger.info("No exon/intron databases configured; skipping annotation")
            return result

        try:
            if annotator is None:
                annotator = make_annotator(self.config.exon_db, self.config.intron_db)
            result.annotated = annotate_candidates(result.candidates, annotator)
        except AnnotationUnavailable as e:
            message = f"Annotation skipped: {e}"
            logger.warning(message)
            result.warnings.append(message)

        return result

    def write_outputs(self, result: PipelineResult) -> PipelineResult:
        """Write tables and the summary report into the output directory."""
        output_dir = self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        write_candidates_tsv(result.candidates, output_dir / CANDIDATES_TSV)
        write_candidates_bed(result.candidates, output_dir / CANDIDATES_BED)
        write_ucsc_list(result.candidates, output_dir / UCSC_LIST)

        if result.annotated is not None:
            write_annotated_tsv(result.annotated, output_dir / ANNOTATED_TSV)
            if self.config.primer_links:
                if self.config.genome != DEFAULT_GENOME:
                    message = (f"Primer-BLAST links use hg38 RefSeq accessions; "
                               f"skipped for genome {self.config.genome}")
                    logger.warning(message)
                    result.warnings.append(message)
                else:
                    primers = add_primer_links(result.annotated)
                    write_primer_tsv(primers, output_dir / PRIMER_TSV)

        generate_summary_report(
            spec=result.spec,
            status=result.status.value,
            table=result.candidates,
            output_path=output_dir / SUMMARY_REPORT,
            raw_counts=result.raw.counts(),
            filtered_counts=result.filtered.counts(),
            annotated=result.annotated,
            warnings=result.warnings,
        )
        return result

    def run(self) -> PipelineResult:
        """
        Run the full pipeline.

        Returns:
            PipelineResult; an empty candidate table is reported as
            RunStatus.NO_CANDIDATES, not raised

        Raises:
            InvalidInput: On invalid configuration (raised at construction)
            SearchUnavailable: If the search service cannot be reached
        """
        result = self.detect()

        if result.status is RunStatus.NO_CANDIDATES:
            logger.info("No off-target candidates found")
        else:
            logger.info(f"Found {result.n_candidates} off-target candidates")
            self.annotate(result)

        return self.write_outputs(result)


def run_pipeline(
    spacer: str,
    seed_length: int = 12,
    pam: str = DEFAULT_PAM,
    genome: str = DEFAULT_GENOME,
    full_mismatch: int = 3,
    seed_mismatch: int = 1,
    exon_db: Optional[Path] = None,
    intron_db: Optional[Path] = None,
    output_dir: Path = Path('./analysis'),
    use_bedtools: bool = True,
    max_workers: int = 1,
    searcher: Optional[CandidateSearcher] = None,
    intersector: Optional[IntervalIntersector] = None,
) -> PipelineResult:
    """
    Convenience function to run the full pipeline.

    Args:
        spacer: 20-nt guide sequence without PAM
        seed_length: Seed length (8-12)
        pam: PAM pattern
        genome: Genome assembly name for the search service
        full_mismatch: Mismatch budget for the full-sequence search (0-3)
        seed_mismatch: Mismatch budget for the seed search (0-3)
        exon_db: Optional exon annotation BED
        intron_db: Optional intron annotation BED
        output_dir: Output directory
        use_bedtools: Prefer bedtools for overlap detection
        max_workers: Concurrent searches (1 = sequential)
        searcher: Pre-built searcher (e.g. for testing)
        intersector: Pre-built interval engine

    Returns:
        PipelineResult
    """
    config = PipelineConfig(
        spacer=spacer,
        seed_length=seed_length,
        pam=pam,
        genome=genome,
        full_mismatch=full_mismatch,
        seed_mismatch=seed_mismatch,
        exon_db=exon_db,
        intron_db=intron_db,
        output_dir=output_dir,
        use_bedtools=use_bedtools,
        max_workers=max_workers,
    )

    pipeline = OffTargetPipeline(config, searcher=searcher, intersector=intersector)
    return pipeline.run()
