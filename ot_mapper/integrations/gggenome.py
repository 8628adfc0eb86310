"""
GGGenome search client and candidate search adapter.

GGGenome (https://gggenome.dbcls.jp) is an ultrafast sequence search over
whole genomes. For each guide, four no-gap searches are issued: the full
sequence (spacer + PAM) and the seed sequence (seed + PAM), each on the
plus and minus strand.
"""

import csv
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

import requests

from ..config import DEFAULT_BASE_URL, DEFAULT_GENOME, SequenceSpec, validate_mismatch_budget
from ..core.models import STRANDS, CandidateSet, SearchHit
from ..exceptions import SearchUnavailable

logger = logging.getLogger(__name__)

# Metadata lines GGGenome writes before the data rows
HEADER_LINES = 5

COLUMNS = (
    'chrom', 'strand', 'start', 'end', 'snippet', 'snippet_pos', 'snippet_end',
    'query', 'matched_sequence', 'align', 'mismatch_count', 'match', 'mis',
    'del', 'ins',
)
NUMERIC_COLUMNS = (
    'start', 'end', 'snippet_pos', 'snippet_end', 'mismatch_count',
    'match', 'mis', 'del', 'ins',
)


class GGGenomeClient:
    """Thin HTTP client for the GGGenome CSV endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_url(self, genome: str, mismatches: int, strand: str, sequence: str) -> str:
        return f"{self.base_url}/{genome}/{mismatches}/{strand}/nogap/{sequence}.csv"

    def fetch(self, genome: str, mismatches: int, strand: str, sequence: str) -> str:
        """
        Run one search and return the raw CSV text.

        Raises:
            requests.RequestException: On network errors or non-2xx status
        """
        url = self.build_url(genome, mismatches, strand, sequence)
        logger.debug(f"Querying URL: {url}")
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.text


def _parse_row(fields: List[str]) -> Optional[SearchHit]:
    """Convert one split row into a SearchHit; None if it does not parse."""
    if len(fields) < len(COLUMNS):
        return None

    row = dict(zip(COLUMNS, (f.strip() for f in fields)))
    try:
        numbers = {col: int(row[col]) for col in NUMERIC_COLUMNS}
    except ValueError:
        return None

    if row['strand'] not in STRANDS:
        return None

    # GGGenome positions are 1-based and inclusive
    start = numbers['start'] - 1
    end = numbers['end']
    if start < 0 or end <= start:
        return None

    return SearchHit(
        chrom=row['chrom'],
        strand=row['strand'],
        start=start,
        end=end,
        matched_sequence=row['matched_sequence'].upper(),
        mismatch_count=numbers['mismatch_count'],
        insertions=numbers['ins'],
        deletions=numbers['del'],
    )


def parse_gggenome_csv(text: str, header_lines: int = HEADER_LINES) -> Tuple[SearchHit, ...]:
    """
    Parse a GGGenome CSV response into SearchHits.

    The fixed metadata header is skipped, as are comment lines such as
    GGGenome's ``### No items found. ###`` marker. Rows are split on tabs
    or commas into the 15-column schema; a row that fails to parse is
    dropped without failing the rest.

    Args:
        text: Raw response body
        header_lines: Number of leading metadata lines

    Returns:
        Tuple of SearchHit, possibly empty
    """
    if not text:
        return ()

    lines = text.splitlines()[header_lines:]
    hits = []
    dropped = 0

    for line in lines:
        if not line.strip() or line.startswith('#'):
            continue
        delimiter = '\t' if '\t' in line else ','
        fields = next(csv.reader([line], delimiter=delimiter))
        hit = _parse_row(fields)
        if hit is None:
            dropped += 1
            logger.debug(f"Dropping unparsable GGGenome row: {line}")
            continue
        hits.append(hit)

    if dropped:
        logger.warning(f"Dropped {dropped} unparsable GGGenome row(s)")

    return tuple(hits)


class CandidateSearcher:
    """Issue the four full/seed x strand searches with bounded retries."""

    def __init__(
        self,
        client: Optional[GGGenomeClient] = None,
        genome: str = DEFAULT_GENOME,
        full_mismatch: int = 3,
        seed_mismatch: int = 1,
        retries: int = 3,
        retry_delay: float = 2.0,
        max_workers: int = 1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client or GGGenomeClient()
        self.genome = genome
        self.full_mismatch = validate_mismatch_budget(full_mismatch, "full-sequence mismatch budget")
        self.seed_mismatch = validate_mismatch_budget(seed_mismatch, "seed mismatch budget")
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self.max_workers = max(1, max_workers)
        self._sleep = sleep

    def fetch_with_retry(self, sequence: str, strand: str, mismatches: int) -> str:
        """
        Fetch one search result, retrying transient failures.

        Raises:
            SearchUnavailable: After ``retries`` failed attempts
        """
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                return self.client.fetch(self.genome, mismatches, strand, sequence)
            except requests.RequestException as e:
                last_error = e
                if attempt < self.retries:
                    logger.warning(
                        f"Search failed for {sequence} ({strand}), "
                        f"retrying ({attempt}/{self.retries})...: {e}"
                    )
                    self._sleep(self.retry_delay)

        raise SearchUnavailable(
            f"GGGenome unreachable for {sequence} ({strand} strand, "
            f"{mismatches} mismatches) after {self.retries} attempts: {last_error}"
        )

    def search_one(self, sequence: str, strand: str, mismatches: int) -> Tuple[SearchHit, ...]:
        """Search one sequence on one strand. Empty results are not errors."""
        text = self.fetch_with_retry(sequence, strand, mismatches)
        hits = parse_gggenome_csv(text)
        # The service reports hits for the requested strand only
        return tuple(h for h in hits if h.strand == strand)

    def search(self, spec: SequenceSpec) -> CandidateSet:
        """
        Run the full and seed searches on both strands.

        With ``max_workers > 1`` the four searches run concurrently; all
        four complete before anything is returned, and a failure in any
        of them aborts the whole search.

        Returns:
            CandidateSet

        Raises:
            SearchUnavailable: If any search exhausts its retries
        """
        jobs: Dict[str, Tuple[str, str, int]] = {
            'plus_full': (spec.full_sequence, '+', self.full_mismatch),
            'minus_full': (spec.full_sequence, '-', self.full_mismatch),
            'plus_seed': (spec.seed_sequence, '+', self.seed_mismatch),
            'minus_seed': (spec.seed_sequence, '-', self.seed_mismatch),
        }

        logger.info(f"Searching {self.genome}: full={spec.full_sequence} "
                    f"(<= {self.full_mismatch} mm), seed={spec.seed_sequence} "
                    f"(<= {self.seed_mismatch} mm)")

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs))) as executor:
                futures = {
                    key: executor.submit(self.search_one, *args)
                    for key, args in jobs.items()
                }
                # result() re-raises SearchUnavailable from the worker
                results = {key: future.result() for key, future in futures.items()}
        else:
            results = {key: self.search_one(*args) for key, args in jobs.items()}

        candidates = CandidateSet(**results)
        for key, count in candidates.counts().items():
            logger.info(f"  {key}: {count} hits")
        return candidates
