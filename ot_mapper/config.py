"""
Configuration classes and input validation for ot-mapper.

Sequence preparation lives here: a validated SequenceSpec is the only
input the search, filter and overlap stages need.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import re

import yaml

from .exceptions import InvalidInput
from .utils.sequence import clean_sequence

SPACER_LENGTH = 20
MIN_SEED_LENGTH = 8
MAX_SEED_LENGTH = 12
MAX_MISMATCHES = 3
DEFAULT_PAM = "NGG"
DEFAULT_GENOME = "hg38"
DEFAULT_BASE_URL = "https://gggenome.dbcls.jp"

SPACER_PATTERN = re.compile(r'^[ACGT]+$')
PAM_PATTERN = re.compile(r'^[A-Z]+$')


def validate_mismatch_budget(value: Any, name: str) -> int:
    """Check that a mismatch budget is an integer in [0, 3]."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= MAX_MISMATCHES:
        raise InvalidInput(
            f"Invalid {name}: {value} (expected: 0-{MAX_MISMATCHES})"
        )
    return value


@dataclass(frozen=True)
class SequenceSpec:
    """Validated guide input.

    Attributes:
        spacer: 20-nt guide sequence without PAM (uppercase ACGT)
        pam: PAM pattern; non-ACGT letters are single-base wildcards
        seed_length: Number of PAM-proximal spacer bases in the seed (8-12)
    """
    spacer: str
    pam: str = DEFAULT_PAM
    seed_length: int = 12

    def __post_init__(self):
        if len(self.spacer) != SPACER_LENGTH:
            raise InvalidInput(
                f"Invalid spacer length: {len(self.spacer)} nucleotides "
                f"(expected: {SPACER_LENGTH}, without the PAM)"
            )
        if not SPACER_PATTERN.match(self.spacer):
            raise InvalidInput(
                f"Invalid characters in spacer {self.spacer!r} "
                "(must be A, C, G, T only)"
            )
        if isinstance(self.seed_length, bool) or not isinstance(self.seed_length, int):
            raise InvalidInput(f"Seed length must be an integer, got {self.seed_length!r}")
        if not MIN_SEED_LENGTH <= self.seed_length <= MAX_SEED_LENGTH:
            raise InvalidInput(
                f"Invalid seed length: {self.seed_length} "
                f"(expected: {MIN_SEED_LENGTH}-{MAX_SEED_LENGTH})"
            )
        if not self.pam:
            raise InvalidInput("PAM sequence cannot be empty")
        if not PAM_PATTERN.match(self.pam):
            raise InvalidInput(f"Invalid PAM pattern {self.pam!r} (letters only)")

    @property
    def spacer_length(self) -> int:
        return len(self.spacer)

    @property
    def seed(self) -> str:
        """PAM-proximal end of the spacer."""
        return self.spacer[-self.seed_length:]

    @property
    def full_sequence(self) -> str:
        """Spacer + PAM, used for the broad search."""
        return self.spacer + self.pam

    @property
    def seed_sequence(self) -> str:
        """Seed + PAM, used for the stringent search."""
        return self.seed + self.pam


def prepare_sequences(
    spacer: str,
    seed_length: int = 12,
    pam: str = DEFAULT_PAM,
) -> SequenceSpec:
    """
    Normalize and validate user input into a SequenceSpec.

    Whitespace is removed and both spacer and PAM are upper-cased before
    validation.

    Args:
        spacer: Guide sequence without PAM (case-insensitive)
        seed_length: Seed length, 8 to 12
        pam: PAM pattern (default: NGG)

    Returns:
        SequenceSpec

    Raises:
        InvalidInput: If any constraint is violated

    Examples:
        >>> prepare_sequences("gctgaagcactgcacgccgt", 12).seed_sequence
        'ACTGCACGCCGTNGG'
    """
    if spacer is None or not str(spacer).strip():
        raise InvalidInput("Spacer sequence is required")
    if pam is None:
        raise InvalidInput("PAM sequence cannot be empty")
    return SequenceSpec(
        spacer=clean_sequence(str(spacer)),
        pam=clean_sequence(str(pam)),
        seed_length=seed_length,
    )


@dataclass
class PipelineConfig:
    """Full pipeline configuration."""
    spacer: str
    seed_length: int = 12
    pam: str = DEFAULT_PAM

    # Search options
    genome: str = DEFAULT_GENOME
    full_mismatch: int = 3
    seed_mismatch: int = 1
    base_url: str = DEFAULT_BASE_URL
    retries: int = 3
    retry_delay: float = 2.0
    timeout: float = 30.0
    max_workers: int = 1  # >1 runs the four searches concurrently

    # Overlap resolution
    use_bedtools: bool = True

    # Annotation (optional; run continues without it)
    exon_db: Optional[Path] = None
    intron_db: Optional[Path] = None

    # Output
    output_dir: Path = field(default_factory=lambda: Path('./analysis'))
    primer_links: bool = True

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        if self.exon_db is not None:
            self.exon_db = Path(self.exon_db)
        if self.intron_db is not None:
            self.intron_db = Path(self.intron_db)

    def to_spec(self) -> SequenceSpec:
        """Validate the sequence inputs and mismatch budgets."""
        validate_mismatch_budget(self.full_mismatch, "full-sequence mismatch budget")
        validate_mismatch_budget(self.seed_mismatch, "seed mismatch budget")
        if isinstance(self.retries, bool) or not isinstance(self.retries, int):
            raise InvalidInput(f"retries must be an integer, got {self.retries!r}")
        if self.retries < 1:
            raise InvalidInput(f"retries must be at least 1, got {self.retries}")
        return prepare_sequences(self.spacer, self.seed_length, self.pam)

    @property
    def has_annotation(self) -> bool:
        return self.exon_db is not None and self.intron_db is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        """Create from a mapping; unknown keys are ignored."""
        known = set(cls.__dataclass_fields__)
        kwargs = {str(k).replace('-', '_'): v for k, v in data.items()}
        return cls(**{k: v for k, v in kwargs.items() if k in known})

    @classmethod
    def from_yaml(cls, path: Path) -> 'PipelineConfig':
        """Load configuration from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InvalidInput(f"Malformed YAML in config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise InvalidInput(f"Config file must contain a mapping: {path}")
        if 'spacer' not in data:
            raise InvalidInput(f"Config file is missing 'spacer': {path}")

        return cls.from_dict(data)


CONFIG_TEMPLATE = '''# ot-mapper configuration template
# Edit this file to configure your analysis

# Required: guide spacer (20 nt, without PAM)
spacer: GCTGAAGCACTGCACGCCGT

# Seed length (8-12 nt, PAM-proximal) and PAM pattern
seed_length: 12
pam: NGG

# Genome assembly searched by GGGenome
genome: hg38

# Mismatch budgets (0-3)
full_mismatch: 3
seed_mismatch: 1

# Search retries (fixed delay in seconds between attempts)
retries: 3
retry_delay: 2.0
timeout: 30.0
max_workers: 1

# Use bedtools for overlap detection (falls back to in-process comparison)
use_bedtools: true

# Optional: exon / intron annotation BED files
# exon_db: data/UCSC_exons_modif_canonical.bed
# intron_db: data/UCSC_introns_modif_canonical.bed

# Output directory
output_dir: ./analysis

# Add Primer-BLAST links to annotated candidates
primer_links: true
'''
