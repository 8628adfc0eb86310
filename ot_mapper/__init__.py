"""
ot-mapper - CRISPR-Cas9 off-target candidate mapping.
"""

__version__ = "0.1.0"

from .config import (
    PipelineConfig,
    SequenceSpec,
    prepare_sequences,
)
from .exceptions import (
    AnnotationUnavailable,
    IntersectionUnavailable,
    InvalidInput,
    OffTargetError,
    SearchUnavailable,
)
from .pipeline import OffTargetPipeline, PipelineResult, RunStatus, run_pipeline

__all__ = [
    "SequenceSpec",
    "PipelineConfig",
    "prepare_sequences",
    "OffTargetPipeline",
    "PipelineResult",
    "RunStatus",
    "run_pipeline",
    "OffTargetError",
    "InvalidInput",
    "SearchUnavailable",
    "IntersectionUnavailable",
    "AnnotationUnavailable",
    "__version__",
]
