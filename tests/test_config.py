"""
test_config.py
--------------
Tests for OrchestrationConfiguration: environment and .env loading,
validation, credential-driven provider selection and key masking.

Run:
    pytest tests/test_config.py -v --tb=short
"""

import pytest

from clinical_ai_orchestration.core.config import OrchestrationConfiguration
from clinical_ai_orchestration.core.enums import ProviderKind
from clinical_ai_orchestration.core.exceptions import ConfigurationError


def test_defaults_from_empty_environment(clean_env):
    config = OrchestrationConfiguration.from_environment()

    assert config.openai_api_key is None
    assert config.gemini_api_key is None
    assert config.configured_remote_providers == []
    assert config.ai_enabled is True
    assert config.max_attempts == 3
    assert config.request_timeout == 60.0
    assert config.provider_preference == ["openai", "gemini"]


def test_env_file_is_loaded(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "GEMINI_API_KEY=g-from-file\n"
        "AI_PROVIDER_PREFERENCE=gemini, openai\n"
        "FEATURE_AI_ENABLED=false\n"
    )
    # register the keys with monkeypatch so values loaded from the file are undone
    for key in ("GEMINI_API_KEY", "AI_PROVIDER_PREFERENCE", "FEATURE_AI_ENABLED"):
        clean_env.setenv(key, "placeholder")
        clean_env.delenv(key)

    config = OrchestrationConfiguration.from_environment(env_file=str(env_file))

    assert config.gemini_api_key == "g-from-file"
    assert config.provider_preference == ["gemini", "openai"]
    assert config.configured_remote_providers == [ProviderKind.GEMINI]
    assert config.ai_enabled is False


def test_google_api_key_is_accepted_for_gemini(clean_env):
    clean_env.setenv("GOOGLE_API_KEY", "g-google")
    assert OrchestrationConfiguration.from_environment().gemini_api_key == "g-google"


def test_preference_orders_configured_remotes(clean_env):
    clean_env.setenv("OPENAI_API_KEY", "sk-test")
    clean_env.setenv("GEMINI_API_KEY", "g-test")
    clean_env.setenv("AI_PROVIDER_PREFERENCE", "gemini,openai")

    config = OrchestrationConfiguration.from_environment()
    assert config.configured_remote_providers == [ProviderKind.GEMINI, ProviderKind.OPENAI]


@pytest.mark.parametrize("value", ["", "none", "0"])
def test_request_timeout_can_be_disabled(clean_env, value):
    clean_env.setenv("AI_REQUEST_TIMEOUT", value)
    assert OrchestrationConfiguration.from_environment().request_timeout is None


@pytest.mark.parametrize(
    "key, value",
    [
        ("AI_MAX_ATTEMPTS", "three"),
        ("AI_REQUEST_TIMEOUT", "soon"),
        ("AI_DEFAULT_TEMPERATURE", "warm"),
        ("AI_MAX_ATTEMPTS", "0"),
        ("AI_DEFAULT_TEMPERATURE", "2.5"),
        ("AI_RETRY_BASE_DELAY", "-1"),
        ("AI_PROVIDER_PREFERENCE", "openai,anthropic"),
    ],
)
def test_invalid_settings_raise_configuration_error(clean_env, key, value):
    clean_env.setenv(key, value)
    with pytest.raises(ConfigurationError):
        OrchestrationConfiguration.from_environment()


def test_to_dict_masks_api_keys():
    config = OrchestrationConfiguration(openai_api_key="sk-secret", gemini_api_key=None)
    data = config.to_dict()
    assert data["openai_api_key"] == "***"
    assert data["gemini_api_key"] is None
    assert "sk-secret" not in str(data)
