"""Configuration tests — environment parsing and the general endpoints."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import patch

from fastapi.testclient import TestClient

from diligence.config import ScoringConfig, get_database_url
from diligence.main import app

client = TestClient(app)


class TestScoringConfig:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ScoringConfig.from_env()
        assert config.openai_api_key == ""
        assert config.openai_model == "gpt-4o"
        assert config.retry_max_attempts == 3
        assert config.investor_question_pass is False

    def test_environment_overrides(self):
        env = {
            "OPENAI_API_KEY": "  sk-live  ",
            "OPENAI_MODEL": "gpt-4o-mini",
            "DILIGENCE_RETRY_BASE_DELAY": "1.5",
            "DILIGENCE_COMPACT_PROMPT_CHARS": "60000",
            "DILIGENCE_INVESTOR_QUESTION_PASS": "yes",
        }
        with patch.dict(os.environ, env, clear=True):
            config = ScoringConfig.from_env()
        assert config.openai_api_key == "sk-live"
        assert config.openai_model == "gpt-4o-mini"
        assert config.retry_base_delay == 1.5
        assert config.compact_prompt_chars == 60_000
        assert config.investor_question_pass is True

    def test_malformed_numbers_fall_back(self):
        env = {"DILIGENCE_RETRY_MAX_ATTEMPTS": "three", "OPENAI_REQUEST_TIMEOUT": "soon"}
        with patch.dict(os.environ, env, clear=True):
            config = ScoringConfig.from_env()
        assert config.retry_max_attempts == 3
        assert config.request_timeout == 90.0

    def test_database_url(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql://localhost/diligence"}):
            assert get_database_url() == "postgresql://localhost/diligence"


class TestGeneralEndpoints:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_root_lists_endpoints(self):
        data = client.get("/").json()
        assert data["name"] == "VC Diligence Scoring"
        assert "score" in data["endpoints"]
