from .metric_extractors import derive_all_metrics
from .metric_merge import merge_metrics
from .market_sizing import derive_tam_alignment, resolve_founder_tam_claim
from .normalization_engine import normalize_scored_categories
from .calibration import run_calibration
from .scoring_engine import apply_category_override, finalize_categories, remove_category_override
from .thesis_refinement import build_follow_up_questions, enforce_thesis_specificity
from .learning_data import analyze_learning_data, format_learning_context

__all__ = [
    "derive_all_metrics",
    "merge_metrics",
    "derive_tam_alignment",
    "resolve_founder_tam_claim",
    "normalize_scored_categories",
    "run_calibration",
    "apply_category_override",
    "finalize_categories",
    "remove_category_override",
    "build_follow_up_questions",
    "enforce_thesis_specificity",
    "analyze_learning_data",
    "format_learning_context",
]
