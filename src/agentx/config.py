"""Application configuration contract."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")
    log_json: int | None = Field(alias="LOG_JSON", default=None)

    default_model: str = Field(alias="DEFAULT_MODEL", default="google/gemini-2.5-flash-lite")
    ai_gateway_api_key: str = Field(alias="AI_GATEWAY_API_KEY", default="")
    ai_gateway_base_url: str = Field(
        alias="AI_GATEWAY_BASE_URL", default="https://ai-gateway.vercel.sh/v1"
    )
    google_api_key: str = Field(alias="GOOGLE_GENERATIVE_AI_API_KEY", default="")
    google_openai_base_url: str = Field(
        alias="GOOGLE_OPENAI_BASE_URL",
        default="https://generativelanguage.googleapis.com/v1beta/openai",
    )
    model_timeout_seconds: int = Field(alias="MODEL_TIMEOUT_SECONDS", default=120)
    thinking_budget_tokens: int = Field(alias="THINKING_BUDGET_TOKENS", default=8192)
    max_tool_round_trips: int = Field(alias="MAX_TOOL_ROUND_TRIPS", default=10)

    mcp_connect_timeout_seconds: float = Field(alias="MCP_CONNECT_TIMEOUT_SECONDS", default=30.0)
    mcp_close_timeout_seconds: float = Field(alias="MCP_CLOSE_TIMEOUT_SECONDS", default=5.0)
    mcp_status_timeout_seconds: float = Field(alias="MCP_STATUS_TIMEOUT_SECONDS", default=15.0)

    web_cors_origins: str = Field(
        alias="WEB_CORS_ORIGINS",
        default="http://localhost:3000,http://localhost:5173",
    )
    # Browser extensions send a chrome-extension:// origin with a per-install id
    web_cors_origin_regex: str = Field(
        alias="WEB_CORS_ORIGIN_REGEX",
        default=r"^(chrome-extension://.*|https?://localhost(:\d+)?)$",
    )
    max_request_bytes: int = Field(alias="MAX_REQUEST_BYTES", default=10 * 1024 * 1024)

    # Security: bind host defaults to loopback
    bind_host: str = Field(alias="BIND_HOST", default="127.0.0.1")
    bind_port: int = Field(alias="PORT", default=3001)

    # Rate limiting
    rate_limit_chat_per_minute: int = Field(alias="RATE_LIMIT_CHAT_PER_MINUTE", default=60)
    rate_limit_status_per_minute: int = Field(alias="RATE_LIMIT_STATUS_PER_MINUTE", default=20)


def validate_settings_for_env(settings: Settings) -> None:
    import logging as _logging
    import warnings

    _logger = _logging.getLogger(__name__)

    # Warn if binding to 0.0.0.0 in production
    if settings.app_env == "prod" and settings.bind_host == "0.0.0.0":
        msg = (
            "SECURITY WARNING: BIND_HOST=0.0.0.0 in production. "
            "This exposes the API to all network interfaces. "
            "Set BIND_HOST=127.0.0.1 and use a reverse proxy."
        )
        _logger.warning(msg)
        warnings.warn(msg, stacklevel=2)

    invalid: list[str] = []
    if settings.max_tool_round_trips < 1:
        invalid.append("MAX_TOOL_ROUND_TRIPS(>=1 required)")
    if settings.mcp_connect_timeout_seconds <= 0:
        invalid.append("MCP_CONNECT_TIMEOUT_SECONDS(>0 required)")
    if settings.mcp_status_timeout_seconds <= 0:
        invalid.append("MCP_STATUS_TIMEOUT_SECONDS(>0 required)")
    if invalid:
        keys = ", ".join(sorted(invalid))
        raise ValueError(f"invalid configuration: {keys}")

    if settings.app_env != "prod":
        return

    missing: list[str] = []
    required_non_empty = {
        "DEFAULT_MODEL": settings.default_model,
        "WEB_CORS_ORIGINS": settings.web_cors_origins,
    }
    for key, value in required_non_empty.items():
        if not value.strip():
            missing.append(key)

    # Keys may also arrive per request, but prod needs one server-side fallback
    if not settings.ai_gateway_api_key.strip() and not settings.google_api_key.strip():
        missing.append("AI_GATEWAY_API_KEY|GOOGLE_GENERATIVE_AI_API_KEY")

    if missing:
        keys = ", ".join(sorted(set(missing)))
        raise ValueError(f"invalid production configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
