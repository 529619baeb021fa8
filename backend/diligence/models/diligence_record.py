import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.types import CHAR, TypeDecorator

from ..database import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses CHAR(36) to store UUIDs as strings, compatible with all backends
    including SQLite.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid.UUID(value)
        return value


class DiligenceRecord(Base):
    __tablename__ = "diligence_records"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    company_name = Column(String, nullable=False)
    company_url = Column(String, nullable=True)
    industry = Column(String, nullable=True)
    company_one_liner = Column(Text, nullable=True)

    # Inputs, stored as JSON strings
    documents_json = Column(Text, nullable=True)        # list[ScoringDocument]
    notes_json = Column(Text, nullable=True)            # list[DiligenceNote]
    questions_json = Column(Text, nullable=True)        # list[DiligenceQuestion]
    enrichment_json = Column(Text, nullable=True)       # CompanyEnrichmentData
    team_research_json = Column(Text, nullable=True)
    portfolio_synergy_json = Column(Text, nullable=True)
    problem_necessity_json = Column(Text, nullable=True)

    # Outputs, persisted as source of truth for the next rescore
    metrics_json = Column(Text, nullable=True)          # MetricSet
    score_json = Column(Text, nullable=True)            # DiligenceScore
    founders_json = Column(Text, nullable=True)         # list[CompanyFounder]
    tam_analysis_json = Column(Text, nullable=True)     # TamAnalysisResult
    decision_json = Column(Text, nullable=True)         # {"decision", "reason", "decided_at"}

    status = Column(String(32), nullable=False, default="pending")  # pending | scored | failed
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
