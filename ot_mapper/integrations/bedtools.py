"""
Interval intersection engines.

BedtoolsIntersector wraps ``bedtools intersect``; PairwiseIntersector is
the in-process fallback used when bedtools is missing or fails.
"""

import shutil
import subprocess
import tempfile
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Sequence, Tuple
import logging

import numpy as np

from ..core.models import Interval
from ..exceptions import IntersectionUnavailable

logger = logging.getLogger(__name__)


def bedtools_available(executable: str = 'bedtools') -> bool:
    """Check whether bedtools is on PATH."""
    return shutil.which(executable) is not None


def write_bed(intervals: Sequence[Interval], path: Path) -> Path:
    """Write BED6 records, one per line."""
    with open(path, 'w') as f:
        for interval in intervals:
            f.write(interval.to_bed_line() + '\n')
    return path


def read_bed_lines(text: str) -> List[List[str]]:
    """Split bedtools output into tab-separated fields, skipping blank lines."""
    return [line.split('\t') for line in text.splitlines() if line.strip()]


def run_bedtools(args: List[str], executable: str = 'bedtools', timeout: int = 600) -> str:
    """
    Run a bedtools subcommand and return its stdout.

    Raises:
        IntersectionUnavailable: If bedtools is missing or cannot be executed,
            times out, or exits non-zero
    """
    cmd = [executable] + args
    try:
        result = subprocess.run(
            cmd, capture_output=True, check=True, text=True, timeout=timeout,
        )
    except FileNotFoundError as e:
        raise IntersectionUnavailable(f"{executable} is not installed or not in PATH") from e
    except OSError as e:
        raise IntersectionUnavailable(f"Cannot run {executable}: {e}") from e
    except subprocess.TimeoutExpired as e:
        raise IntersectionUnavailable(f"{executable} timed out after {timeout}s") from e
    except subprocess.CalledProcessError as e:
        message = e.stderr.strip() if e.stderr else str(e)
        raise IntersectionUnavailable(f"{executable} failed: {message}") from e
    return result.stdout


class IntervalIntersector:
    """Return the A intervals that overlap at least one B interval on the same strand."""

    name = 'base'

    def intersect(self, a: Sequence[Interval], b: Sequence[Interval]) -> List[Interval]:
        raise NotImplementedError


class BedtoolsIntersector(IntervalIntersector):
    """``bedtools intersect -a A -b B -s -u``: each overlapping A record once."""

    name = 'bedtools'

    def __init__(self, executable: str = 'bedtools', timeout: int = 600):
        self.executable = executable
        self.timeout = timeout

    def intersect(self, a: Sequence[Interval], b: Sequence[Interval]) -> List[Interval]:
        if not a or not b:
            return []

        with tempfile.TemporaryDirectory(prefix='ot_mapper_') as tmp:
            a_bed = write_bed(a, Path(tmp) / 'a.bed')
            b_bed = write_bed(b, Path(tmp) / 'b.bed')
            stdout = run_bedtools(
                ['intersect', '-a', str(a_bed), '-b', str(b_bed), '-s', '-u'],
                executable=self.executable,
                timeout=self.timeout,
            )

        by_name = {interval.name: interval for interval in a}
        overlapping = []
        for fields in read_bed_lines(stdout):
            if len(fields) < 6:
                logger.debug(f"Skipping malformed bedtools line: {fields}")
                continue
            # Map back through the name column so only input records are returned
            interval = by_name.get(fields[3])
            if interval is not None:
                overlapping.append(interval)
        return overlapping


class PairwiseIntersector(IntervalIntersector):
    """Direct comparison, vectorized per chromosome/strand group.

    Candidate counts are bounded by the search result size (typically a
    few thousand), so a dense comparison per group is sufficient.
    """

    name = 'pairwise'

    def intersect(self, a: Sequence[Interval], b: Sequence[Interval]) -> List[Interval]:
        if not a or not b:
            return []

        groups: Dict[Tuple[str, str], Tuple[np.ndarray, np.ndarray]] = {}
        grouped: Dict[Tuple[str, str], List[Interval]] = defaultdict(list)
        for interval in b:
            grouped[(interval.chrom, interval.strand)].append(interval)
        for key, members in grouped.items():
            groups[key] = (
                np.array([m.start for m in members], dtype=np.int64),
                np.array([m.end for m in members], dtype=np.int64),
            )

        overlapping = []
        for interval in a:
            group = groups.get((interval.chrom, interval.strand))
            if group is None:
                continue
            b_starts, b_ends = group
            if np.any((b_starts < interval.end) & (interval.start < b_ends)):
                overlapping.append(interval)
        return overlapping


def default_intersector(use_bedtools: bool = True) -> IntervalIntersector:
    """Pick bedtools when requested and installed, the pairwise engine otherwise."""
    if use_bedtools:
        if bedtools_available():
            return BedtoolsIntersector()
        logger.warning("bedtools not found in PATH; using in-process overlap detection")
    return PairwiseIntersector()
