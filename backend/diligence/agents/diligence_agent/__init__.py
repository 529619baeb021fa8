# Diligence agent package
from .agent import extract_structured_facts_for_context, run_tam_analysis, score_diligence
from .orchestrator import ScoringFailedError

__all__ = [
    "score_diligence",
    "run_tam_analysis",
    "extract_structured_facts_for_context",
    "ScoringFailedError",
]
