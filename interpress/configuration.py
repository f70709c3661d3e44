"""Pydantic-backed configuration loader for Interpress."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional, Sequence

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .languages import is_supported, normalise_language_code
from .providers import ProviderCredential
from .wordpress import WordPressCredentials

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
PROVIDER_SYNONYMS = {"google": "gemini", "gpt": "openai", "mock": "echo", "noop": "echo"}


class InterpressConfig(BaseModel):
    """Schema describing all supported configuration options."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    INTERPRESS_TARGET_LANGUAGE: Optional[str] = Field(
        default=None,
        description="Default target language code.",
    )
    INTERPRESS_MAX_CHUNK_LENGTH: int = Field(default=4000, gt=0)
    INTERPRESS_MAX_RETRIES: int = Field(default=3, ge=0)
    INTERPRESS_RETRY_BACKOFF: float = Field(default=1.0, ge=0)
    INTERPRESS_TITLE_TIMEOUT: float = Field(default=30.0, gt=0)
    INTERPRESS_BODY_TIMEOUT: float = Field(default=120.0, gt=0)
    INTERPRESS_PROVIDERS: List[Literal["gemini", "openai", "echo"]] = Field(
        default_factory=lambda: ["gemini"],
        description="Provider kinds, in fallback order.",
    )
    GEMINI_API_KEYS: List[str] = Field(default_factory=list)
    GEMINI_MODEL: str = Field(default="gemini-2.0-flash")
    GEMINI_API_URL: Optional[str] = Field(default=None)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_API_URL: Optional[str] = Field(default=None)
    WP_SITE_URL: Optional[str] = Field(default=None)
    WP_USERNAME: Optional[str] = Field(default=None)
    WP_APP_PASSWORD: Optional[str] = Field(default=None)
    WP_READ_TIMEOUT: float = Field(default=30.0, gt=0)
    WP_WRITE_TIMEOUT: float = Field(default=60.0, gt=0)
    INTERPRESS_PROVIDER_DEBUG: bool = Field(default=False)
    INTERPRESS_LOG_LEVEL: str = Field(default="INFO")

    @model_validator(mode="before")
    @classmethod
    def _split_lists(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        keys = data.get("GEMINI_API_KEYS")
        if isinstance(keys, str):
            data["GEMINI_API_KEYS"] = [key.strip() for key in keys.split(",") if key.strip()]
        providers = data.get("INTERPRESS_PROVIDERS")
        if isinstance(providers, str):
            providers = providers.split(",")
        if isinstance(providers, (list, tuple)):
            normalised = []
            for name in providers:
                value = str(name).strip().lower().replace("_", "-")
                if not value:
                    continue
                normalised.append(PROVIDER_SYNONYMS.get(value, value))
            data["INTERPRESS_PROVIDERS"] = normalised
        return data

    @field_validator("INTERPRESS_TARGET_LANGUAGE")
    @classmethod
    def _check_language(cls, value: Optional[str]) -> Optional[str]:
        code = normalise_language_code(value)
        if not code:
            return None
        if not is_supported(code):
            raise ValueError(f"unsupported target language '{value}'")
        return code

    @field_validator("INTERPRESS_LOG_LEVEL")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level '{value}'")
        return level

    def credentials(self) -> List[ProviderCredential]:
        """Expand the ordered provider list into individual credentials."""

        result: List[ProviderCredential] = []
        for provider in self.INTERPRESS_PROVIDERS:
            if provider == "gemini":
                result.extend(
                    ProviderCredential(
                        provider="gemini",
                        api_key=key,
                        model=self.GEMINI_MODEL,
                        api_url=self.GEMINI_API_URL,
                    )
                    for key in self.GEMINI_API_KEYS
                )
            elif provider == "openai" and self.OPENAI_API_KEY:
                result.append(
                    ProviderCredential(
                        provider="openai",
                        api_key=self.OPENAI_API_KEY,
                        model=self.OPENAI_MODEL,
                        api_url=self.OPENAI_API_URL,
                    )
                )
            elif provider == "echo":
                result.append(ProviderCredential(provider="echo", api_key=""))
        return result

    def wordpress_credentials(self) -> Optional[WordPressCredentials]:
        if not (self.WP_SITE_URL and self.WP_USERNAME and self.WP_APP_PASSWORD):
            return None
        return WordPressCredentials(
            site_url=self.WP_SITE_URL,
            username=self.WP_USERNAME,
            app_password=self.WP_APP_PASSWORD,
        )


def load_settings(
    app_dir: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> InterpressConfig:
    """Validate settings from ``app_dir/.env`` overlaid by the environment."""

    base_dir = app_dir or Path.cwd()
    combined: dict[str, Any] = {}
    _merge_env_sources(
        combined,
        app_dir=base_dir,
        environ=os.environ if environ is None else environ,
        schema=InterpressConfig,
    )
    try:
        return InterpressConfig.model_validate(combined)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc.errors())) from exc


def _merge_env_sources(
    target: dict[str, Any],
    *,
    app_dir: Path,
    environ: Mapping[str, str],
    schema: type[BaseModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.model_fields)

    def merge_values(values: Mapping[str, Optional[str]]) -> None:
        for key, value in sorted(values.items()):
            if value is None or key not in allowed:
                continue
            target[key] = value

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path))

    merge_values({k: v for k, v in environ.items() if isinstance(v, str)})


def validate_provider_settings(settings: InterpressConfig) -> None:
    """Check that every selected provider has what it needs to run."""

    errors: list[str] = []
    if "gemini" in settings.INTERPRESS_PROVIDERS and not settings.GEMINI_API_KEYS:
        errors.append("GEMINI_API_KEYS is required when 'gemini' is a selected provider.")
    if "openai" in settings.INTERPRESS_PROVIDERS and not settings.OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is required when 'openai' is a selected provider.")
    if not settings.INTERPRESS_PROVIDERS:
        errors.append("INTERPRESS_PROVIDERS must name at least one provider.")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError("Configuration validation errors detected:\n" + bullet_list)


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        location = ".".join(str(part) for part in entry.get("loc") or () if part not in {None, ""})
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


@lru_cache(maxsize=1)
def get_settings(app_dir: Optional[Path] = None) -> InterpressConfig:
    """Return the cached, validated settings."""

    return load_settings(app_dir=app_dir)
