"""
Configuration for Clinical AI Orchestration

This module defines the configuration dataclass used to build the
provider registry, the fallback policy and the output store.
Configuration is:
    1. Loaded from environment variables (with .env support)
    2. Validated at startup to fail fast on misconfiguration
    3. Treated as read-only after creation

Configuration Hierarchy:
    OrchestrationConfiguration
    ├── Provider Credentials (OpenAI, Gemini)
    ├── Provider Preference (which remote becomes the default)
    ├── Sampling Defaults (temperature, top_p, max_tokens)
    ├── Retry / Timeout Policy
    └── Storage (SQLite path for the versioned output store)

Usage:
    from clinical_ai_orchestration.core.config import OrchestrationConfiguration

    config = OrchestrationConfiguration.from_environment()
    registry = build_registry(config)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from clinical_ai_orchestration.core.enums import ProviderKind
from clinical_ai_orchestration.core.exceptions import ConfigurationError


# =============================================================================
# STAGE 1: DEFAULT VALUES
# =============================================================================


class ConfigDefaults:
    """Default configuration values."""

    # -------------------------------------------------------------------------
    # 1.1 Remote Provider Defaults
    # -------------------------------------------------------------------------
    DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
    DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
    DEFAULT_PROVIDER_PREFERENCE = "openai,gemini"

    # -------------------------------------------------------------------------
    # 1.2 Sampling Defaults
    # -------------------------------------------------------------------------
    DEFAULT_TEMPERATURE = 0.7
    DEFAULT_TOP_P = 0.9
    DEFAULT_MAX_TOKENS = 2000

    # -------------------------------------------------------------------------
    # 1.3 Retry / Timeout Defaults
    # -------------------------------------------------------------------------
    DEFAULT_MAX_ATTEMPTS = 3
    DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
    DEFAULT_REQUEST_TIMEOUT = 60.0  # seconds per provider call

    # -------------------------------------------------------------------------
    # 1.4 Storage Defaults
    # -------------------------------------------------------------------------
    DEFAULT_DB_PATH = "clinical_ai_outputs.sqlite"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# STAGE 2: CONFIGURATION DATACLASS
# =============================================================================


@dataclass
class OrchestrationConfiguration:
    """
    Configuration for provider orchestration and output persistence.

    What it does:
        Holds the credentials that decide which remote adapters register,
        the preference order that picks the default provider, sampling
        defaults, the caller-level retry policy and the store location.

    When to use:
        - At process start, to build the provider registry
        - In tests, to construct a registry with fake credentials

    Example:
        >>> config = OrchestrationConfiguration(openai_api_key="sk-...")
        >>> config.validate()
        >>> config.configured_remote_providers
        [<ProviderKind.OPENAI: 'openai'>]
    """

    # -------------------------------------------------------------------------
    # 2.1 Remote Provider Credentials
    # -------------------------------------------------------------------------
    openai_api_key: Optional[str] = None
    """OpenAI API key. The OpenAI adapter registers only when set."""

    openai_model: str = ConfigDefaults.DEFAULT_OPENAI_MODEL

    openai_base_url: str = ConfigDefaults.DEFAULT_OPENAI_BASE_URL
    """Base URL for OpenAI-compatible endpoints."""

    gemini_api_key: Optional[str] = None
    """Google Gemini API key. The Gemini adapter registers only when set."""

    gemini_model: str = ConfigDefaults.DEFAULT_GEMINI_MODEL

    provider_preference: List[str] = field(
        default_factory=lambda: ConfigDefaults.DEFAULT_PROVIDER_PREFERENCE.split(",")
    )
    """Remote providers in default-selection order; local is always last."""

    # -------------------------------------------------------------------------
    # 2.2 Feature Flag
    # -------------------------------------------------------------------------
    ai_enabled: bool = True
    """When False the service refuses AI tasks with AIDisabledError."""

    # -------------------------------------------------------------------------
    # 2.3 Sampling Defaults
    # -------------------------------------------------------------------------
    default_temperature: float = ConfigDefaults.DEFAULT_TEMPERATURE
    default_top_p: float = ConfigDefaults.DEFAULT_TOP_P
    default_max_tokens: int = ConfigDefaults.DEFAULT_MAX_TOKENS

    # -------------------------------------------------------------------------
    # 2.4 Retry / Timeout Policy
    # -------------------------------------------------------------------------
    max_attempts: int = ConfigDefaults.DEFAULT_MAX_ATTEMPTS
    """Attempts per provider for transient failures."""

    retry_base_delay: float = ConfigDefaults.DEFAULT_RETRY_BASE_DELAY

    request_timeout: Optional[float] = ConfigDefaults.DEFAULT_REQUEST_TIMEOUT
    """Wall-clock limit per provider call; None disables the limit."""

    # -------------------------------------------------------------------------
    # 2.5 Storage
    # -------------------------------------------------------------------------
    db_path: str = ConfigDefaults.DEFAULT_DB_PATH

    # -------------------------------------------------------------------------
    # 2.6 Derived Properties
    # -------------------------------------------------------------------------

    @property
    def configured_remote_providers(self) -> List[ProviderKind]:
        """Remote providers with credentials, in preference order."""
        keys = {
            ProviderKind.OPENAI: self.openai_api_key,
            ProviderKind.GEMINI: self.gemini_api_key,
        }
        ordered = []
        for name in self.provider_preference:
            kind = ProviderKind(name)
            if kind.is_remote and keys.get(kind) and kind not in ordered:
                ordered.append(kind)
        return ordered

    # -------------------------------------------------------------------------
    # 2.7 Validation Methods
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """
        Validate configuration parameters.

        Checks:
            1. Preference list only names known providers
            2. Sampling parameters are in range
            3. Retry and timeout settings are positive

        Raises:
            ConfigurationError: If configuration is invalid
        """
        known = {kind.value for kind in ProviderKind}
        for name in self.provider_preference:
            if name not in known:
                raise ConfigurationError(
                    f"Unknown provider in preference list: {name}",
                    context={"setting": "AI_PROVIDER_PREFERENCE", "known": sorted(known)},
                )

        if not (0.0 <= self.default_temperature <= 2.0):
            raise ConfigurationError(
                f"Temperature must be 0-2, got {self.default_temperature}",
                context={"setting": "AI_DEFAULT_TEMPERATURE"},
            )

        if not (0.0 < self.default_top_p <= 1.0):
            raise ConfigurationError(
                f"top_p must be in (0, 1], got {self.default_top_p}",
                context={"setting": "AI_DEFAULT_TOP_P"},
            )

        if self.default_max_tokens <= 0:
            raise ConfigurationError(
                f"max_tokens must be positive, got {self.default_max_tokens}",
                context={"setting": "AI_DEFAULT_MAX_TOKENS"},
            )

        if self.max_attempts < 1:
            raise ConfigurationError(
                f"max_attempts must be >= 1, got {self.max_attempts}",
                context={"setting": "AI_MAX_ATTEMPTS"},
            )

        if self.retry_base_delay < 0:
            raise ConfigurationError(
                f"retry_base_delay must be >= 0, got {self.retry_base_delay}",
                context={"setting": "AI_RETRY_BASE_DELAY"},
            )

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be positive, got {self.request_timeout}",
                context={"setting": "AI_REQUEST_TIMEOUT"},
            )

    # -------------------------------------------------------------------------
    # 2.8 Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_environment(
        cls, env_file: Optional[str] = None, validate_on_load: bool = True
    ) -> "OrchestrationConfiguration":
        """
        Load configuration from environment variables.

        STAGE 1: Load .env file (if specified or found)
        STAGE 2: Read environment variables
        STAGE 3: Convert to typed configuration
        STAGE 4: Validate configuration (optional)

        Args:
            env_file: Path to .env file (optional, auto-detected if not provided)
            validate_on_load: Whether to validate after loading

        Returns:
            Configured OrchestrationConfiguration instance

        Raises:
            ConfigurationError: If settings are invalid
        """
        # STAGE 1: Load .env file
        if env_file:
            load_dotenv(env_file)
        else:
            possible_locations = [
                Path.cwd() / ".env",
                Path.cwd() / "clinical_ai_orchestration" / ".env",
            ]
            for location in possible_locations:
                if location.exists():
                    load_dotenv(location)
                    break

        # STAGE 2: Read environment variables
        timeout_raw = os.getenv("AI_REQUEST_TIMEOUT")
        if timeout_raw is None:
            request_timeout: Optional[float] = ConfigDefaults.DEFAULT_REQUEST_TIMEOUT
        elif timeout_raw.strip().lower() in ("", "none", "0"):
            request_timeout = None
        else:
            try:
                request_timeout = float(timeout_raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid numeric setting: {e}", context={"setting": "AI_REQUEST_TIMEOUT"}
                )

        preference = [
            p.strip().lower()
            for p in os.getenv(
                "AI_PROVIDER_PREFERENCE", ConfigDefaults.DEFAULT_PROVIDER_PREFERENCE
            ).split(",")
            if p.strip()
        ]

        # STAGE 3: Create configuration
        try:
            config = cls(
                openai_api_key=os.getenv("OPENAI_API_KEY") or None,
                openai_model=os.getenv("OPENAI_MODEL", ConfigDefaults.DEFAULT_OPENAI_MODEL),
                openai_base_url=os.getenv(
                    "OPENAI_BASE_URL", ConfigDefaults.DEFAULT_OPENAI_BASE_URL
                ),
                gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
                gemini_model=os.getenv("GEMINI_MODEL", ConfigDefaults.DEFAULT_GEMINI_MODEL),
                provider_preference=preference,
                ai_enabled=_env_bool("FEATURE_AI_ENABLED", True),
                default_temperature=float(
                    os.getenv("AI_DEFAULT_TEMPERATURE", ConfigDefaults.DEFAULT_TEMPERATURE)
                ),
                default_top_p=float(os.getenv("AI_DEFAULT_TOP_P", ConfigDefaults.DEFAULT_TOP_P)),
                default_max_tokens=int(
                    os.getenv("AI_DEFAULT_MAX_TOKENS", ConfigDefaults.DEFAULT_MAX_TOKENS)
                ),
                max_attempts=int(os.getenv("AI_MAX_ATTEMPTS", ConfigDefaults.DEFAULT_MAX_ATTEMPTS)),
                retry_base_delay=float(
                    os.getenv("AI_RETRY_BASE_DELAY", ConfigDefaults.DEFAULT_RETRY_BASE_DELAY)
                ),
                request_timeout=request_timeout,
                db_path=os.getenv("CLINICAL_OUTPUT_DB_PATH", ConfigDefaults.DEFAULT_DB_PATH),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}")

        # STAGE 4: Validate
        if validate_on_load:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary (for logging/debugging)."""
        return {
            "openai_api_key": "***" if self.openai_api_key else None,
            "openai_model": self.openai_model,
            "openai_base_url": self.openai_base_url,
            "gemini_api_key": "***" if self.gemini_api_key else None,
            "gemini_model": self.gemini_model,
            "provider_preference": list(self.provider_preference),
            "ai_enabled": self.ai_enabled,
            "default_temperature": self.default_temperature,
            "default_top_p": self.default_top_p,
            "default_max_tokens": self.default_max_tokens,
            "max_attempts": self.max_attempts,
            "retry_base_delay": self.retry_base_delay,
            "request_timeout": self.request_timeout,
            "db_path": self.db_path,
        }
