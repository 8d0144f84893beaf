"""
Model client boundary: sends the conversation to an OpenAI-compatible chat API and returns the
reply text. Supports OpenAI and Groq (base_url + api_key). No business logic here.
"""
import asyncio
from typing import Any, Protocol

from openai import OpenAI, OpenAIError

from calc_agent.config import Settings, active_api_key, get_settings
from calc_agent.errors import ModelCallError
from calc_agent.logging_config import get_logger
from calc_agent.models import Conversation

logger = get_logger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class ModelClient(Protocol):
    async def complete(self, conversation: Conversation, model: str) -> str:
        """Return the text of the model's top completion choice for the given conversation."""
        ...


def _is_groq(settings: Settings) -> bool:
    return (settings.llm_provider or "openai").strip().lower() == "groq"


def get_chat_client(settings: Settings | None = None) -> OpenAI:
    """
    Return client for chat completions.
    Uses GROQ_API_KEY + Groq base URL when llm_provider=groq, else OPENAI_API_KEY.
    Retries are left to the caller: one attempt per agent step.
    """
    settings = settings or get_settings()
    if _is_groq(settings):
        return OpenAI(
            base_url=GROQ_BASE_URL,
            api_key=(settings.groq_api_key or "").strip(),
            timeout=settings.openai_timeout,
            max_retries=settings.openai_max_retries,
        )
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout,
        max_retries=settings.openai_max_retries,
    )


def get_chat_model(settings: Settings | None = None) -> str:
    """Return model name for chat (Groq or OpenAI depending on provider)."""
    settings = settings or get_settings()
    if _is_groq(settings):
        return settings.groq_model or "llama-3.3-70b-versatile"
    return settings.model_name


def has_llm_configured(settings: Settings | None = None) -> bool:
    """True if the configured LLM provider has an API key set."""
    return bool(active_api_key(settings or get_settings()))


def extract_reply(response: Any, conversation: Conversation | None = None) -> str:
    """Pull choices[0].message.content out of a chat completion; anything else is a ModelCallError."""
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError) as e:
        raise ModelCallError("model response has no choices[0].message.content", conversation) from e
    if not isinstance(content, str):
        raise ModelCallError("model response content is empty", conversation)
    return content


class OpenAIModelClient:
    """Direct OpenAI-compatible chat completions call."""

    def __init__(self, client: OpenAI | None = None, settings: Settings | None = None):
        self._client = client or get_chat_client(settings)

    async def complete(self, conversation: Conversation, model: str) -> str:
        try:
            resp = await asyncio.to_thread(
                self._client.chat.completions.create,
                model=model,
                messages=conversation.to_openai(),
            )
        except OpenAIError as e:
            logger.warning("model_call_failed", extra={"model": model, "error": type(e).__name__})
            raise ModelCallError(f"Failed to call model API: {e}", conversation) from e
        return extract_reply(resp, conversation)


def get_model_client(settings: Settings | None = None) -> ModelClient:
    """Direct client by default; LangChain wrapper when USE_LANGCHAIN=true."""
    settings = settings or get_settings()
    if settings.use_langchain:
        from calc_agent.langchain_client import LangChainModelClient

        return LangChainModelClient(settings=settings)
    return OpenAIModelClient(settings=settings)
