from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from inference_relay.gateway.types import GenerationParams, RetryConfig, UpstreamConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Upstream inference API
    upstream_base_url: str = "https://api-inference.huggingface.co/models"
    upstream_api_key: str = ""  # empty = call upstream without credentials
    upstream_timeout_seconds: float = 60.0
    image_model_id: str = "stabilityai/stable-diffusion-2-1"

    # Models: human-facing name -> upstream model id (JSON in env, e.g. MODEL_MAP='{"Nexari G1": "..."}')
    default_model_id: str = "mistralai/Mistral-7B-Instruct-v0.1"
    model_map: dict[str, str] = {
        "Nexari G1": "mistralai/Mistral-7B-Instruct-v0.1",
    }

    # Prompt & generation
    default_instruction: str = ""
    max_new_tokens: int = 512
    temperature: float = 0.7
    wait_for_model: bool = True

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 4.0

    # Inbound auth; "open" must be chosen explicitly
    auth_mode: Literal["token", "open"] = "token"
    inbound_tokens: str = ""  # comma-separated bearer tokens

    # CORS
    allowed_origin: str = "*"

    # Rate limiting (slowapi limit string, empty disables)
    rate_limit: str = "60/minute"

    # Metrics
    enable_metrics: bool = False

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def accepted_tokens(self) -> frozenset[str]:
        return frozenset(t.strip() for t in self.inbound_tokens.split(",") if t.strip())

    @property
    def auth_enabled(self) -> bool:
        return self.auth_mode == "token"

    def upstream_config(self) -> UpstreamConfig:
        """Immutable upstream settings handed to the relay client."""
        return UpstreamConfig(
            base_url=self.upstream_base_url,
            api_key=self.upstream_api_key,
            image_model_id=self.image_model_id,
            timeout_seconds=self.upstream_timeout_seconds,
            generation=GenerationParams(
                max_new_tokens=self.max_new_tokens,
                temperature=self.temperature,
                wait_for_model=self.wait_for_model,
            ),
            retry=RetryConfig(
                max_attempts=self.retry_max_attempts,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance."""
    return Settings()


def settings_errors(settings: Settings) -> list[str]:
    """Collect configuration problems that must stop the server from starting."""
    errors: list[str] = []

    if settings.auth_enabled and not settings.accepted_tokens:
        errors.append("INBOUND_TOKENS must list at least one token when AUTH_MODE=token (set AUTH_MODE=open to disable auth)")

    if not settings.upstream_base_url:
        errors.append("UPSTREAM_BASE_URL must be set")

    if not settings.default_model_id:
        errors.append("DEFAULT_MODEL_ID must be set")

    if settings.retry_max_attempts < 1:
        errors.append("RETRY_MAX_ATTEMPTS must be at least 1")

    if settings.upstream_timeout_seconds <= 0:
        errors.append("UPSTREAM_TIMEOUT_SECONDS must be positive")

    if settings.retry_base_delay < 0 or settings.retry_max_delay < settings.retry_base_delay:
        errors.append("RETRY_BASE_DELAY must be >= 0 and RETRY_MAX_DELAY >= RETRY_BASE_DELAY")

    if settings.app_env == "production":
        if not settings.auth_enabled:
            errors.append("AUTH_MODE=open is not allowed in production")
        if settings.allowed_origin == "*":
            errors.append("ALLOWED_ORIGIN must not be '*' in production")

    return errors


def validate_settings(settings: Settings) -> None:
    """Validate critical settings. Called on startup."""
    errors = settings_errors(settings)
    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
