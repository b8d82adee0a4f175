"""Cross-species analysis of flux matrices.

This module contains:
- Sign-preserving cube-root normalization of fluxes
- Alignment of reactions shared by two flux matrices
- Aggregation of reactions into pathway activities
- Spearman correlation between cohorts per reaction and per pathway
- Ranking and export of correlation results
- The end-to-end comparison pipeline
"""

from .normalize import cube_root_transform
from .alignment import (
    align_reactions,
    check_unique_reactions,
    pathway_labels,
    subsystem_reactions,
)
from .pathways import (
    aggregate_pathway_activity,
    compare_pathway_activity,
    pathway_activity_matrix,
)
from .correlation import (
    CorrelationResult,
    PathwayComparison,
    compare_pathway,
    correlate_mean_profiles,
    correlate_pathway_activity,
    correlate_pathways,
    correlate_reactions,
    correlate_vectors,
    mean_profile,
    results_to_frame,
    spearman,
    truncate_to_shorter,
)
from .ranking import (
    DEFAULT_TOP_K,
    export_table,
    rank_correlations,
)
from .pipeline import (
    ComparisonConfig,
    ComparisonResult,
    PathwayHighlight,
    run_comparison,
    run_from_expression,
    save_comparison,
)

__all__ = [
    # Normalization
    "cube_root_transform",
    # Alignment
    "align_reactions",
    "check_unique_reactions",
    "pathway_labels",
    "subsystem_reactions",
    # Pathways
    "aggregate_pathway_activity",
    "compare_pathway_activity",
    "pathway_activity_matrix",
    # Correlation
    "CorrelationResult",
    "PathwayComparison",
    "compare_pathway",
    "correlate_mean_profiles",
    "correlate_pathway_activity",
    "correlate_pathways",
    "correlate_reactions",
    "correlate_vectors",
    "mean_profile",
    "results_to_frame",
    "spearman",
    "truncate_to_shorter",
    # Ranking
    "DEFAULT_TOP_K",
    "export_table",
    "rank_correlations",
    # Pipeline
    "ComparisonConfig",
    "ComparisonResult",
    "PathwayHighlight",
    "run_comparison",
    "run_from_expression",
    "save_comparison",
]
