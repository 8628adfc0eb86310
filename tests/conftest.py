"""Shared fixtures: canned GGGenome responses and fake search clients."""

import pytest
import requests

from ot_mapper.config import prepare_sequences
from ot_mapper.utils.sequence import reverse_complement

GUIDE_SEQUENCE = "GCTGAAGCACTGCACGCCGT"
SEED = GUIDE_SEQUENCE[-12:]

GGGENOME_HEADER = (
    "# [ GGGenome | 2024-01-01 00:00:00 ]\n"
    "# database:\tHuman genome, GRCh38/hg38 (Dec, 2013)\n"
    "# query:\tGCTGAAGCACTGCACGCCGTNGG\n"
    "# count:\t{count}\n"
    "# name\tstrand\tstart\tend\tsnippet\tsnippet_pos\tsnippet_end\tquery\tsbjct\talign\tedit\tmatch\tmis\tdel\tins\n"
)


def make_gggenome_csv(rows, delimiter="\t"):
    """
    Build a GGGenome response body.

    Args:
        rows: Iterable of (chrom, strand, start0, matched_sequence, mismatches)
            with 0-based starts; the body uses GGGenome's 1-based positions
        delimiter: Field separator
    """
    rows = list(rows)
    lines = [GGGENOME_HEADER.format(count=len(rows))]
    if not rows:
        lines.append("### No items found. ###\n")
    for chrom, strand, start0, matched, mismatches in rows:
        start1 = start0 + 1
        end1 = start0 + len(matched)
        fields = [
            chrom, strand, start1, end1, matched, start1, end1,
            matched, matched, "|" * len(matched),
            mismatches, len(matched) - mismatches, mismatches, 0, 0,
        ]
        lines.append(delimiter.join(str(f) for f in fields) + "\n")
    return "".join(lines)


class FakeGGGenomeClient:
    """Serves canned responses keyed by (sequence, strand); records every call."""

    def __init__(self, responses=None, failures=0):
        self.responses = responses or {}
        self.failures = failures
        self.calls = []

    def fetch(self, genome, mismatches, strand, sequence):
        self.calls.append((genome, mismatches, strand, sequence))
        if self.failures > 0:
            self.failures -= 1
            raise requests.ConnectionError("connection refused")
        return self.responses.get((sequence, strand), make_gggenome_csv([]))


@pytest.fixture
def spec():
    return prepare_sequences(GUIDE_SEQUENCE, 12)


@pytest.fixture
def offtarget_responses(spec):
    """
    Responses with one real candidate per strand plus decoys.

    chr1 (+): full hit overlapping a seed hit -> candidate
    chr5 (+): full hit with PAM 'TGA' -> removed by the PAM filter
    chr9 (+): full hit with no seed hit nearby -> removed by overlap
    chr2 (-): full hit overlapping a seed hit -> candidate
    """
    plus_full = [
        ("chr1", "+", 1000, GUIDE_SEQUENCE + "AGG", 0),
        ("chr5", "+", 5000, GUIDE_SEQUENCE + "TGA", 1),
        ("chr9", "+", 9000, "GCTGTAGCACTGCACGCAGT" + "TGG", 2),
    ]
    plus_seed = [
        ("chr1", "+", 1008, SEED + "AGG", 0),
        ("chr5", "+", 5008, SEED + "TGA", 1),
        ("chr9", "+", 9500, SEED + "CGG", 0),
    ]
    minus_full = [
        ("chr2", "-", 500, "CCT" + reverse_complement("GCTGAAGCACTGCACGCAGT"), 1),
    ]
    minus_seed = [
        ("chr2", "-", 500, "CCT" + reverse_complement(SEED), 0),
    ]
    return {
        (spec.full_sequence, "+"): make_gggenome_csv(plus_full),
        (spec.full_sequence, "-"): make_gggenome_csv(minus_full),
        (spec.seed_sequence, "+"): make_gggenome_csv(plus_seed),
        (spec.seed_sequence, "-"): make_gggenome_csv(minus_seed),
    }
