"""
Error types raised by the off-target pipeline.

Fatal errors (InvalidInput, SearchUnavailable) abort a run. The others are
recoverable: the pipeline logs them and continues with reduced output.
"""

from typing import Optional


class OffTargetError(Exception):
    """Base class for pipeline errors. ``stage`` names where the run failed."""

    default_stage = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage or self.default_stage


class InvalidInput(OffTargetError, ValueError):
    """Malformed spacer, seed length, PAM or mismatch budget."""

    default_stage = "input validation"


class SearchUnavailable(OffTargetError, RuntimeError):
    """The genome search service could not be reached after all retries."""

    default_stage = "candidate search"


class IntersectionUnavailable(OffTargetError, RuntimeError):
    """The interval intersection engine is missing or failed."""

    default_stage = "overlap resolution"


class AnnotationUnavailable(OffTargetError, RuntimeError):
    """Annotation reference files or the join engine are unavailable."""

    default_stage = "annotation"
