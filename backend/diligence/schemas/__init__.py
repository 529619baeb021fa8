# Schemas package
from .criteria_schema import CategoryDefinition, CriteriaSchema, CriterionDefinition
from .metrics_schema import MetricSet, MetricValue
from .market_schema import ExternalMarketIntelligence, TamAnalysisResult
from .research_schema import (
    CompanyEnrichmentData,
    DiligenceNote,
    DiligenceQuestion,
    PortfolioSynergyResearch,
    ProblemNecessityResearch,
    ScoringDocument,
    TeamResearch,
)
from .score_schema import (
    CategoryScore,
    CriterionScore,
    DiligenceScore,
    ScoringOptions,
    ScoringResult,
    ThesisAnswers,
)
from .learning_schema import LearningData, LearningDataResponse

__all__ = [
    "CriterionDefinition",
    "CategoryDefinition",
    "CriteriaSchema",
    "MetricValue",
    "MetricSet",
    "ExternalMarketIntelligence",
    "TamAnalysisResult",
    "ScoringDocument",
    "DiligenceNote",
    "DiligenceQuestion",
    "CompanyEnrichmentData",
    "TeamResearch",
    "PortfolioSynergyResearch",
    "ProblemNecessityResearch",
    "CriterionScore",
    "CategoryScore",
    "ThesisAnswers",
    "DiligenceScore",
    "ScoringOptions",
    "ScoringResult",
    "LearningData",
    "LearningDataResponse",
]
