"""Provider construction helpers."""

import logging
import re
from collections.abc import Mapping

import httpx

from agentx.config import Settings
from agentx.errors import ConfigError
from agentx.providers.base import LanguageModel
from agentx.providers.openai_compat import OpenAICompatibleModel

logger = logging.getLogger(__name__)

GOOGLE_PREFIX = "google/"
_THINKING_MODEL = re.compile(r"2\.5|(^|[^\d.])3(\.|-|$)")


def supports_thinking(google_model: str) -> bool:
    """Gemini 2.5 and 3.x models accept a thinking budget."""
    return bool(_THINKING_MODEL.search(google_model))


def _key(api_keys: Mapping[str, str | None], name: str, fallback: str) -> str:
    value = (api_keys.get(name) or "").strip()
    return value or fallback.strip()


def build_model(
    selector: str,
    api_keys: Mapping[str, str | None],
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LanguageModel:
    """Resolve a model selector to a streaming capability.

    `google/<model>` goes straight to Google's OpenAI-compatible endpoint;
    any other selector goes through the AI gateway. Keys supplied with the
    request win over server-side ones.
    """
    selector = selector.strip() or settings.default_model
    if selector.startswith(GOOGLE_PREFIX):
        google_model = selector[len(GOOGLE_PREFIX) :]
        api_key = _key(api_keys, "google", settings.google_api_key)
        if not api_key:
            raise ConfigError("Google API key is required for google/ models")
        thinking = supports_thinking(google_model)
        logger.info(
            "Using Google AI: %s (thinking: %s)",
            google_model,
            "enabled" if thinking else "disabled",
        )
        return OpenAICompatibleModel(
            google_model,
            base_url=settings.google_openai_base_url,
            api_key=api_key,
            timeout_seconds=settings.model_timeout_seconds,
            thinking_budget=settings.thinking_budget_tokens if thinking else None,
            transport=transport,
        )
    api_key = _key(api_keys, "aiGateway", settings.ai_gateway_api_key)
    if not api_key:
        raise ConfigError("AI Gateway API key is required")
    logger.info("Using AI Gateway: %s", selector)
    return OpenAICompatibleModel(
        selector,
        base_url=settings.ai_gateway_base_url,
        api_key=api_key,
        timeout_seconds=settings.model_timeout_seconds,
        transport=transport,
    )
