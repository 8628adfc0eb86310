"""Tests for ot_mapper.integrations modules."""

import gzip
import subprocess
from unittest import mock

import pysam
import pytest
import requests
from ot_mapper.core.combiner import combine_results
from ot_mapper.core.models import Interval, SearchHit
from ot_mapper.core.overlap import resolve_overlaps
from ot_mapper.exceptions import (
    AnnotationUnavailable,
    InvalidInput,
    IntersectionUnavailable,
    SearchUnavailable,
)
from ot_mapper.integrations import annotation as annotation_module
from ot_mapper.integrations import bedtools as bedtools_module
from ot_mapper.integrations.annotation import (
    BedtoolsAnnotator,
    TabixAnnotator,
    annotate_candidates,
    make_annotator,
)
from ot_mapper.integrations.bedtools import (
    BedtoolsIntersector,
    PairwiseIntersector,
    default_intersector,
    run_bedtools,
)
from ot_mapper.integrations.gggenome import (
    CandidateSearcher,
    GGGenomeClient,
    parse_gggenome_csv,
)

from conftest import GUIDE_SEQUENCE, FakeGGGenomeClient, make_gggenome_csv


EXON_BED = (
    "chr1\t900\t1010\tGENEA\texon\t2\n"
    "chr2\t400\t450\tGENEB\texon\t0\n"
)
INTRON_BED = (
    "chr1\t1010\t2000\tGENEA\tintron\t2\n"
    "chr2\t450\t1000\tGENEB\tintron\t0\n"
)


def _table():
    hits_plus = [SearchHit("chr1", "+", 1000, 1023, GUIDE_SEQUENCE + "AGG", 0)]
    hits_minus = [SearchHit("chr3", "-", 70, 93, "CCA" + "A" * 20, 2)]
    return combine_results(hits_plus, hits_minus)


class TestParseGGGenome:
    """Test GGGenome CSV parsing."""

    def test_parse_tab_delimited(self):
        """Rows are parsed and converted to 0-based starts."""
        text = make_gggenome_csv([("chr1", "+", 1000, GUIDE_SEQUENCE + "AGG", 1)])
        hits = parse_gggenome_csv(text)

        assert len(hits) == 1
        h = hits[0]
        assert (h.chrom, h.strand, h.start, h.end) == ("chr1", "+", 1000, 1023)
        assert h.end - h.start == len(h.matched_sequence)
        assert h.matched_sequence == GUIDE_SEQUENCE + "AGG"
        assert h.mismatch_count == 1
        assert h.insertions == 0 and h.deletions == 0

    def test_parse_comma_delimited(self):
        """Comma-separated rows are accepted."""
        text = make_gggenome_csv([("chr2", "-", 10, "CCT" + "A" * 20, 0)], delimiter=",")
        hits = parse_gggenome_csv(text)
        assert hits[0].chrom == "chr2"
        assert hits[0].strand == "-"

    def test_no_items_found(self):
        """Zero-hit responses give an empty tuple."""
        assert parse_gggenome_csv(make_gggenome_csv([])) == ()

    def test_empty_body(self):
        """Empty body gives an empty tuple."""
        assert parse_gggenome_csv("") == ()

    def test_malformed_row_dropped(self):
        """A malformed row is dropped without losing the others."""
        text = make_gggenome_csv([("chr1", "+", 1000, GUIDE_SEQUENCE + "AGG", 0)])
        text += "chr1\t+\tnot_a_number\t10\n"
        hits = parse_gggenome_csv(text)
        assert len(hits) == 1

    def test_lowercase_sequence_uppercased(self):
        """Soft-masked sequence is upper-cased."""
        text = make_gggenome_csv([("chr1", "+", 0, GUIDE_SEQUENCE.lower() + "agg", 0)])
        assert parse_gggenome_csv(text)[0].matched_sequence == GUIDE_SEQUENCE + "AGG"


class TestGGGenomeClient:
    """Test the HTTP client."""

    def test_build_url(self):
        """URL follows the /genome/mismatch/strand/nogap/sequence.csv scheme."""
        client = GGGenomeClient(base_url="https://gggenome.dbcls.jp/")
        url = client.build_url("hg38", 3, "+", "GCTGAAGCACTGCACGCCGTNGG")
        assert url == "https://gggenome.dbcls.jp/hg38/3/+/nogap/GCTGAAGCACTGCACGCCGTNGG.csv"

    def test_fetch_raises_for_status(self):
        """HTTP errors propagate as requests exceptions."""
        session = mock.Mock()
        response = mock.Mock()
        response.raise_for_status.side_effect = requests.HTTPError("503")
        session.get.return_value = response

        client = GGGenomeClient(session=session, timeout=5)
        with pytest.raises(requests.HTTPError):
            client.fetch("hg38", 3, "+", "ACGT")
        session.get.assert_called_once()
        assert session.get.call_args.kwargs["timeout"] == 5


class TestCandidateSearcher:
    """Test the four-way search with retries."""

    def test_four_searches(self, spec, offtarget_responses):
        """Full and seed sequences are searched on both strands."""
        client = FakeGGGenomeClient(offtarget_responses)
        searcher = CandidateSearcher(client=client, full_mismatch=3, seed_mismatch=1)
        result = searcher.search(spec)

        assert result.counts() == {
            'plus_full': 3, 'minus_full': 1, 'plus_seed': 3, 'minus_seed': 1,
        }
        assert sorted(client.calls) == sorted([
            ("hg38", 3, "+", spec.full_sequence),
            ("hg38", 3, "-", spec.full_sequence),
            ("hg38", 1, "+", spec.seed_sequence),
            ("hg38", 1, "-", spec.seed_sequence),
        ])

    def test_concurrent_search(self, spec, offtarget_responses):
        """Concurrent search gives the same result as sequential search."""
        sequential = CandidateSearcher(client=FakeGGGenomeClient(offtarget_responses))
        concurrent = CandidateSearcher(client=FakeGGGenomeClient(offtarget_responses),
                                       max_workers=4)
        assert sequential.search(spec) == concurrent.search(spec)

    def test_retry_then_succeed(self, spec):
        """Transient failures are retried with a fixed delay."""
        sleeps = []
        client = FakeGGGenomeClient(failures=2)
        searcher = CandidateSearcher(client=client, retries=3, retry_delay=2.0,
                                     sleep=sleeps.append)
        assert searcher.search_one(spec.full_sequence, "+", 3) == ()
        assert len(client.calls) == 3
        assert sleeps == [2.0, 2.0]

    def test_retries_exhausted(self, spec):
        """Exhausted retries raise SearchUnavailable."""
        client = FakeGGGenomeClient(failures=10)
        searcher = CandidateSearcher(client=client, retries=3, sleep=lambda s: None)
        with pytest.raises(SearchUnavailable) as exc_info:
            searcher.search(spec)
        assert len(client.calls) == 3
        assert exc_info.value.stage == "candidate search"

    def test_invalid_budget(self):
        """Mismatch budgets outside 0-3 are rejected up front."""
        with pytest.raises(InvalidInput):
            CandidateSearcher(client=FakeGGGenomeClient(), full_mismatch=4)


class TestBedtoolsIntersector:
    """Test the bedtools wrapper."""

    def test_command_and_mapping(self):
        """Runs intersect -s -u and maps output back by name."""
        a = [Interval("chr1", 100, 123, "full_0", 0, "+"),
             Interval("chr1", 500, 523, "full_1", 1, "+")]
        b = [Interval("chr1", 111, 126, "seed_0", 0, "+")]
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="chr1\t100\t123\tfull_0\t0\t+\n", stderr="",
        )
        with mock.patch.object(bedtools_module.subprocess, "run",
                               return_value=completed) as run:
            result = BedtoolsIntersector().intersect(a, b)

        cmd = run.call_args.args[0]
        assert cmd[:2] == ["bedtools", "intersect"]
        assert "-s" in cmd and "-u" in cmd
        assert result == [a[0]]

    def test_missing_executable(self):
        """A missing binary raises IntersectionUnavailable."""
        with pytest.raises(IntersectionUnavailable):
            run_bedtools(["--version"], executable="bedtools-not-installed-xyz")

    def test_not_executable(self):
        """A binary that cannot be executed raises IntersectionUnavailable."""
        error = PermissionError(13, "Permission denied")
        with mock.patch.object(bedtools_module.subprocess, "run", side_effect=error):
            with pytest.raises(IntersectionUnavailable, match="Permission denied"):
                run_bedtools(["intersect"])

    def test_not_executable_falls_back(self):
        """Overlap resolution survives a bedtools binary that cannot run."""
        full = [SearchHit("chr1", "+", 100, 123, GUIDE_SEQUENCE + "AGG", 0)]
        seed = [SearchHit("chr1", "+", 111, 126, GUIDE_SEQUENCE[-12:] + "AGG", 0)]
        error = PermissionError(13, "Permission denied")
        with mock.patch.object(bedtools_module.subprocess, "run", side_effect=error):
            result = resolve_overlaps(full, seed, intersector=BedtoolsIntersector())
        assert result == tuple(full)

    def test_failure(self):
        """A non-zero exit raises IntersectionUnavailable with stderr."""
        error = subprocess.CalledProcessError(1, ["bedtools"], stderr="bad input")
        with mock.patch.object(bedtools_module.subprocess, "run", side_effect=error):
            with pytest.raises(IntersectionUnavailable, match="bad input"):
                run_bedtools(["intersect"])

    def test_default_without_bedtools(self):
        """Without bedtools on PATH the pairwise engine is chosen."""
        with mock.patch.object(bedtools_module, "bedtools_available", return_value=False):
            assert isinstance(default_intersector(True), PairwiseIntersector)
        assert isinstance(default_intersector(False), PairwiseIntersector)


class TestPairwiseIntersector:
    """Test the in-process overlap engine."""

    def test_same_strand_only(self):
        """Overlap requires the same chromosome and strand."""
        a = [Interval("chr1", 100, 123, "a", 0, "+"),
             Interval("chr1", 100, 123, "b", 0, "-")]
        b = [Interval("chr1", 110, 120, "s", 0, "+")]
        assert PairwiseIntersector().intersect(a, b) == [a[0]]


class TestAnnotation:
    """Test exon / intron annotation backends."""

    @pytest.fixture
    def reference_files(self, tmp_path):
        exon = tmp_path / "exons.bed"
        intron = tmp_path / "introns.bed"
        exon.write_text(EXON_BED)
        intron.write_text(INTRON_BED)
        return exon, intron

    def test_bedtools_annotator_parses_output(self, reference_files, monkeypatch):
        """Both references go to one intersect call; rows join by candidate name."""
        exon, intron = reference_files
        # bedtools adds the database number (1 = exons, 2 = introns) after the A fields
        stdout = (
            "chr1\t1000\t1023\tOT_1\t0\t+\t2\tchr1\t1010\t2000\tGENEA\tintron\t2\n"
            "chr1\t1000\t1023\tOT_1\t0\t+\t1\tchr1\t900\t1010\tGENEA\texon\t2\n"
        )
        calls = []

        def fake_run(args, executable='bedtools', timeout=600):
            calls.append(args)
            return stdout

        monkeypatch.setattr(annotation_module, "run_bedtools", fake_run)
        annotated = annotate_candidates(_table(), BedtoolsAnnotator(exon, intron))

        args = calls[0]
        b_index = args.index("-b")
        assert args[b_index + 1:b_index + 3] == [str(exon), str(intron)]
        assert "-wa" in args and "-wb" in args
        assert [(a.candidate_id, a.feature_type) for a in annotated] == [
            (1, "exon"), (1, "intron"),
        ]
        assert annotated[0].gene_symbol == "GENEA"
        assert annotated[0].feature_index == 2

    def test_gzipped_references_without_index(self, tmp_path, monkeypatch):
        """Unindexed .bed.gz references are passed to bedtools unread."""
        exon = tmp_path / "exons.bed.gz"
        intron = tmp_path / "introns.bed.gz"
        exon.write_bytes(gzip.compress(EXON_BED.encode()))
        intron.write_bytes(gzip.compress(INTRON_BED.encode()))
        calls = []

        def fake_run(args, executable='bedtools', timeout=600):
            calls.append(args)
            return "chr1\t1000\t1023\tOT_1\t0\t+\t1\tchr1\t900\t1010\tGENEA\texon\t2\n"

        monkeypatch.setattr(annotation_module, "bedtools_available", lambda: True)
        monkeypatch.setattr(annotation_module, "run_bedtools", fake_run)
        annotator = make_annotator(exon, intron)
        assert isinstance(annotator, BedtoolsAnnotator)

        annotated = annotate_candidates(_table(), annotator)
        assert str(exon) in calls[0] and str(intron) in calls[0]
        assert [(a.candidate_id, a.feature_type) for a in annotated] == [(1, "exon")]

    def test_bedtools_annotator_engine_missing(self, reference_files, monkeypatch):
        """bedtools failures surface as AnnotationUnavailable."""
        exon, intron = reference_files

        def fake_run(args, executable='bedtools', timeout=600):
            raise IntersectionUnavailable("bedtools is not installed or not in PATH")

        monkeypatch.setattr(annotation_module, "run_bedtools", fake_run)
        with pytest.raises(AnnotationUnavailable):
            annotate_candidates(_table(), BedtoolsAnnotator(exon, intron))

    def test_tabix_annotator(self, reference_files):
        """Tabix-indexed references are joined in-process."""
        exon, intron = reference_files
        exon_gz = pysam.tabix_index(str(exon), preset="bed", force=True)
        intron_gz = pysam.tabix_index(str(intron), preset="bed", force=True)

        annotator = make_annotator(exon_gz, intron_gz)
        assert isinstance(annotator, TabixAnnotator)

        annotated = annotate_candidates(_table(), annotator)
        # chr3 has no features, so candidate 2 is absent
        assert [(a.candidate_id, a.gene_symbol, a.feature_type) for a in annotated] == [
            (1, "GENEA", "exon"), (1, "GENEA", "intron"),
        ]

    def test_missing_file(self, tmp_path):
        """Missing reference files raise AnnotationUnavailable."""
        with pytest.raises(AnnotationUnavailable, match="not found"):
            make_annotator(tmp_path / "exons.bed", tmp_path / "introns.bed")

    def test_plain_bed_without_bedtools(self, reference_files, monkeypatch):
        """Plain BED references need bedtools."""
        monkeypatch.setattr(annotation_module, "bedtools_available", lambda: False)
        with pytest.raises(AnnotationUnavailable, match="bedtools"):
            make_annotator(*reference_files)

    def test_plain_bed_with_bedtools(self, reference_files, monkeypatch):
        """Plain BED references use the bedtools backend."""
        monkeypatch.setattr(annotation_module, "bedtools_available", lambda: True)
        assert isinstance(make_annotator(*reference_files), BedtoolsAnnotator)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
