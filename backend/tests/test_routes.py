"""Diligence API tests — record lifecycle, scoring, TAM analysis, overrides, decisions."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import uuid

import pytest
from conftest import primary_scoring_response
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from diligence.agents.diligence_agent.prompts import FACT_EXTRACTION_URL_ONLY_NOTE
from diligence.config import ScoringConfig
from diligence.database import Base, get_db
from diligence.main import app
from diligence.routes.diligence import get_learning_provider, get_llm_client, get_scoring_config
from diligence.services.learning_data import StaticLearningDataProvider
from diligence.services.openai_client import LLMError

# ---------------------------------------------------------------------------
# Test database setup (file-based SQLite for compatibility)
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite:///./test_diligence.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DECK = {"file_name": "deck.pdf", "text": "Acme automates freight audits for mid-market shippers.", "type": "deck"}


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_db(llm, config):
    """Create tables and wire fakes before each test, drop after."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_scoring_config] = lambda: config
    app.dependency_overrides[get_learning_provider] = lambda: StaticLearningDataProvider([])
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    for dependency in (get_db, get_llm_client, get_scoring_config, get_learning_provider):
        app.dependency_overrides.pop(dependency, None)


def _create(**overrides):
    payload = {"company_name": "Acme", "company_url": "https://acme.test", "documents": [DECK], **overrides}
    resp = client.post("/diligence/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _queue_scoring(llm, scoring=None):
    llm.on("facts", {"company_overview": {"what_they_do": "Freight audit automation"}})
    llm.on("market", LLMError("service unavailable", status_code=503))
    llm.on("scoring", scoring if scoring is not None else primary_scoring_response())


def _score(record_id, criteria, **extra):
    return client.post(f"/diligence/{record_id}/score", json={"criteria": criteria.model_dump(), **extra})


def _scored_record(llm, criteria):
    record = _create()
    _queue_scoring(llm)
    resp = _score(record["id"], criteria)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ===================================================================== #
#  Records                                                                #
# ===================================================================== #

class TestRecords:
    def test_create(self):
        data = _create(industry="Logistics")
        assert data["company_name"] == "Acme"
        assert data["status"] == "pending"
        assert data["score"] is None
        uuid.UUID(data["id"])

    def test_create_requires_name(self):
        resp = client.post("/diligence/", json={"company_name": ""})
        assert resp.status_code == 422

    def test_get(self):
        record = _create()
        resp = client.get(f"/diligence/{record['id']}")
        assert resp.status_code == 200
        assert resp.json()["company_url"] == "https://acme.test"

    def test_get_unknown(self):
        missing = uuid.uuid4()
        resp = client.get(f"/diligence/{missing}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == f"Diligence record {missing} not found"

    def test_get_invalid_id(self):
        assert client.get("/diligence/not-a-uuid").status_code == 422


# ===================================================================== #
#  Scoring                                                                #
# ===================================================================== #

class TestScoring:
    def test_score_persists_result(self, llm, criteria):
        data = _scored_record(llm, criteria)
        assert data["status"] == "scored"
        assert data["score"]["overall"] == 66
        assert data["score"]["scoring_mode"] == "primary"
        assert data["industry"] == "Logistics"
        assert data["company_one_liner"] == "Freight audit automation for mid-market shippers"
        assert data["founders"] == [{"name": "Ada", "linkedin_url": None, "title": "CEO"}]
        assert data["metrics"]["funding_amount"]["value"] == "unknown"

    def test_rescore_keeps_analyst_override(self, llm, criteria):
        record = _scored_record(llm, criteria)
        resp = client.post(f"/diligence/{record['id']}/override", json={
            "category": "Team", "score": 90, "reason": "Reference calls were strong",
        })
        assert resp.json()["score"]["overall"] == 72

        _queue_scoring(llm)
        rescored = _score(record["id"], criteria).json()
        team = rescored["score"]["categories"][0]
        assert team["manual_override"] == 90
        assert team["override_reason"] == "Reference calls were strong"
        assert rescored["score"]["overall"] == 72

    def test_url_only_record(self, llm, criteria):
        record = _create(documents=[])
        _queue_scoring(llm)
        assert _score(record["id"], criteria).status_code == 200
        facts_call = llm.calls_for("facts")[0]
        assert facts_call["system"].endswith(FACT_EXTRACTION_URL_ONLY_NOTE)

    def test_scoring_failure(self, llm, criteria):
        record = _create()
        _queue_scoring(llm, scoring=LLMError("invalid request", status_code=400))
        resp = _score(record["id"], criteria)
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Failed to score diligence"
        assert client.get(f"/diligence/{record['id']}").json()["status"] == "failed"

    def test_score_unknown_record(self, criteria):
        assert _score(uuid.uuid4(), criteria).status_code == 404

    def test_score_requires_criteria(self):
        record = _create()
        assert client.post(f"/diligence/{record['id']}/score", json={}).status_code == 422

    def test_missing_api_key(self):
        app.dependency_overrides.pop(get_llm_client, None)
        app.dependency_overrides[get_scoring_config] = lambda: ScoringConfig(openai_api_key="")
        resp = client.post("/diligence/facts", json={"company_name": "Acme", "documents": [DECK]})
        assert resp.status_code == 503


class TestFacts:
    def test_facts(self, llm):
        llm.on("facts", {"financials": {"raising": "$3M"}})
        resp = client.post("/diligence/facts", json={"company_name": "Acme", "documents": [DECK]})
        assert resp.status_code == 200
        assert "- **Raising**: $3M" in resp.json()["facts"]

    def test_no_usable_documents(self, llm):
        resp = client.post("/diligence/facts", json={
            "company_name": "Acme", "documents": [{"file_name": "blank.pdf", "text": "   "}],
        })
        assert resp.json() == {"facts": ""}
        assert llm.calls == []


class TestTamAnalysis:
    def test_tam_analysis(self, llm):
        record = _create()
        llm.on("facts", {})
        llm.on("market", {
            "tam_sam_som": {
                "company_claim": {"tam": "$50B"},
                "independent_estimate": {"tam": "$10B", "method": "Bottom-up seat count"},
                "comparison": {"confidence": 60},
            },
        })
        resp = client.post(f"/diligence/{record['id']}/tam-analysis")
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["founder_tam"] == "$50B"
        assert data["independent_tam"] == "$10B"
        assert data["blended_tam"] == "$30B"
        assert data["alignment"] == "overstated"
        assert data["discrepancy_ratio"] == 5.0
        assert client.get(f"/diligence/{record['id']}").json()["tam_analysis"]["founder_tam"] == "$50B"


# ===================================================================== #
#  Overrides and decisions                                                #
# ===================================================================== #

class TestOverrides:
    def test_override_and_remove(self, llm, criteria):
        record = _scored_record(llm, criteria)
        resp = client.post(f"/diligence/{record['id']}/override", json={
            "category": "Traction", "score": 80, "suppress_topics": ["burn"],
        })
        assert resp.status_code == 200
        traction = resp.json()["score"]["categories"][2]
        assert traction["manual_override"] == 80
        assert traction["override_suppress_topics"] == ["burn"]
        assert resp.json()["score"]["overall"] == 71

        resp = client.delete(f"/diligence/{record['id']}/override/Traction")
        assert resp.status_code == 200
        assert resp.json()["score"]["categories"][2]["manual_override"] is None
        assert resp.json()["score"]["overall"] == 66

    def test_override_before_scoring(self):
        record = _create()
        resp = client.post(f"/diligence/{record['id']}/override", json={"category": "Team", "score": 70})
        assert resp.status_code == 400

    def test_override_unknown_category(self, llm, criteria):
        record = _scored_record(llm, criteria)
        resp = client.post(f"/diligence/{record['id']}/override", json={"category": "Moat", "score": 70})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Category 'Moat' not found in score"

    def test_override_out_of_range(self, llm, criteria):
        record = _scored_record(llm, criteria)
        resp = client.post(f"/diligence/{record['id']}/override", json={"category": "Team", "score": 101})
        assert resp.status_code == 422


class TestDecisionsAndLearning:
    def test_no_learning_data(self):
        resp = client.get("/diligence/learning-data")
        assert resp.status_code == 200
        assert resp.json()["has_data"] is False

    def test_decision_feeds_learning_data(self, llm, criteria):
        record = _scored_record(llm, criteria)
        resp = client.post(f"/diligence/{record['id']}/decision", json={"decision": "invested", "reason": "Strong team"})
        assert resp.status_code == 200
        assert resp.json()["decision"]["decision"] == "invested"

        learning = client.get("/diligence/learning-data").json()
        assert learning["has_data"] is True
        assert learning["learning_data"]["invested"] == 1
        assert learning["learning_data"]["average_invested_score"] == 66

    def test_invalid_decision(self):
        record = _create()
        resp = client.post(f"/diligence/{record['id']}/decision", json={"decision": "maybe"})
        assert resp.status_code == 422
