"""
External service and tool integrations for ot-mapper.
"""

from .annotation import (
    AnnotationJoiner,
    BedtoolsAnnotator,
    TabixAnnotator,
    annotate_candidates,
    make_annotator,
)
from .bedtools import (
    BedtoolsIntersector,
    IntervalIntersector,
    PairwiseIntersector,
    bedtools_available,
    default_intersector,
)
from .gggenome import (
    CandidateSearcher,
    GGGenomeClient,
    parse_gggenome_csv,
)

__all__ = [
    'GGGenomeClient',
    'CandidateSearcher',
    'parse_gggenome_csv',
    'IntervalIntersector',
    'BedtoolsIntersector',
    'PairwiseIntersector',
    'bedtools_available',
    'default_intersector',
    'AnnotationJoiner',
    'BedtoolsAnnotator',
    'TabixAnnotator',
    'make_annotator',
    'annotate_candidates',
]
