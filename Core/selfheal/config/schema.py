from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_CONTEXT_SELECTOR = "*"


class HealingOptions(BaseModel):
    """Per-call resolution options. Timeouts are in milliseconds."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    context_selector: str = Field(default=DEFAULT_CONTEXT_SELECTOR, alias="contextSelector")
    suppress_error: bool = Field(default=False, alias="suppressError")

    @field_validator("context_selector")
    @classmethod
    def validate_context_selector(cls, value: str) -> str:
        stripped = value.strip()
        return stripped or DEFAULT_CONTEXT_SELECTOR

    def merged(self, **overrides):
        return self.model_copy(update={key: value for key, value in overrides.items() if value is not None})


class RandomSelectOptions(HealingOptions):
    retries: int = Field(default=3, ge=1)
    trigger_events: bool = Field(default=True, alias="triggerEvents")


class EnvironmentConfig(BaseModel):
    base_url: str = "about:blank"
    browser_matrix: list[str] = Field(default_factory=lambda: ["chrome"])
    default_timeout_seconds: int = 10
    headless: bool = True

    @field_validator("browser_matrix")
    @classmethod
    def validate_browsers(cls, value: list[str]) -> list[str]:
        allowed = {"chrome", "firefox"}
        normalized = [item.lower() for item in value]
        invalid = [item for item in normalized if item not in allowed]
        if invalid:
            raise ValueError(f"Unsupported browsers: {', '.join(invalid)}")
        return normalized


class HealingSettings(BaseModel):
    """Engine tuning shared by every resolver built from it."""

    min_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    short_timeout_ms: int = Field(default=1000, gt=0)
    medium_timeout_ms: int = Field(default=2000, gt=0)
    poll_interval_seconds: float = Field(default=0.1, gt=0)
    max_traversal_depth: int = Field(default=8, ge=0)
    max_candidates: int = Field(default=500, gt=0)
    click_retries: int = Field(default=2, ge=1)
    click_backoff_seconds: float = Field(default=0.5, ge=0)
    random_option_delay_seconds: float = Field(default=1.0, ge=0)
    debug: bool = False
    artifacts_root: str = "artifacts"
    log_file: str = "healing-debug.log"
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    @field_validator("medium_timeout_ms")
    @classmethod
    def validate_medium_timeout(cls, value: int, info) -> int:
        short = info.data.get("short_timeout_ms")
        if short is not None and value < short:
            raise ValueError("medium_timeout_ms must not be shorter than short_timeout_ms")
        return value
