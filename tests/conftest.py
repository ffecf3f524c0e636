"""
conftest.py
-----------
Shared fixtures: patient records, a pinned-clock local provider and
both output store implementations.
"""

import pytest

from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.providers.local_provider import LocalRuleBasedProvider
from clinical_ai_orchestration.store.output_store import InMemoryClinicalOutputStore
from clinical_ai_orchestration.store.sqlite_store import SQLiteClinicalOutputStore
from tests.fakes import FIXED_TODAY

_ENV_KEYS = (
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_MODEL",
    "AI_PROVIDER_PREFERENCE",
    "FEATURE_AI_ENABLED",
    "AI_MAX_ATTEMPTS",
    "AI_RETRY_BASE_DELAY",
    "AI_REQUEST_TIMEOUT",
    "AI_DEFAULT_TEMPERATURE",
    "AI_DEFAULT_TOP_P",
    "AI_DEFAULT_MAX_TOKENS",
    "CLINICAL_OUTPUT_DB_PATH",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every orchestration variable from the environment."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def local_provider():
    return LocalRuleBasedProvider(today=lambda: FIXED_TODAY)


@pytest.fixture
def local_only_config():
    return OrchestrationConfiguration(max_attempts=2, retry_base_delay=0.0)


@pytest.fixture
def patient():
    return {
        "demographics": {"name": "Jane Doe", "dob": "1950-03-02", "sex": "F"},
        "currentMedications": [
            {"name": "Warfarin", "dose": "5mg", "route": "PO", "frequency": "daily"},
            {"name": "Lisinopril", "dose": "10mg", "route": "PO", "frequency": "daily"},
        ],
        "allergies": [{"substance": "Penicillin", "reaction": "rash", "severity": "severe"}],
    }


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryClinicalOutputStore()
    return SQLiteClinicalOutputStore(tmp_path / "outputs.sqlite")

