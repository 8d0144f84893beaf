"""
Optional LangChain chat model client.

This stays intentionally thin:
- We still control prompts, reply parsing, the tool loop, and error mapping in our own code.
- LangChain is only used as a model wrapper interface.
"""
from calc_agent.config import Settings, get_settings
from calc_agent.errors import ModelCallError
from calc_agent.llm_client import GROQ_BASE_URL, _is_groq
from calc_agent.logging_config import get_logger
from calc_agent.models import Conversation, Role

logger = get_logger(__name__)


def get_langchain_chat_model(model: str, settings: Settings | None = None):
    """Return a ChatOpenAI model configured for OpenAI or Groq."""
    try:
        from langchain_openai import ChatOpenAI
    except ImportError as e:
        raise ImportError(
            "LangChain mode enabled but dependencies are missing. "
            "Install langchain-core and langchain-openai."
        ) from e

    settings = settings or get_settings()
    common_kwargs = {
        "model": model,
        "timeout": settings.openai_timeout,
        "max_retries": settings.openai_max_retries,
    }
    if _is_groq(settings):
        return ChatOpenAI(
            **common_kwargs,
            api_key=settings.groq_api_key,
            base_url=GROQ_BASE_URL,
        )
    return ChatOpenAI(
        **common_kwargs,
        api_key=settings.openai_api_key,
    )


def to_langchain_messages(conversation: Conversation) -> list:
    from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

    kinds = {Role.SYSTEM: SystemMessage, Role.USER: HumanMessage, Role.ASSISTANT: AIMessage}
    return [kinds[m.role](content=m.content) for m in conversation.messages]


def _normalize_text_content(content) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(item.get("text", ""))
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    raise ModelCallError(f"unexpected reply content type: {type(content).__name__}")


class LangChainModelClient:
    """Same contract as OpenAIModelClient, through a LangChain chat model."""

    def __init__(self, settings: Settings | None = None, chat_model_factory=None):
        self.settings = settings or get_settings()
        self._factory = chat_model_factory or get_langchain_chat_model
        self._models: dict[str, object] = {}

    def _model(self, model: str):
        if model not in self._models:
            self._models[model] = self._factory(model, self.settings)
        return self._models[model]

    async def complete(self, conversation: Conversation, model: str) -> str:
        llm = self._model(model)
        try:
            ai_msg = await llm.ainvoke(to_langchain_messages(conversation))
        except Exception as e:
            logger.warning("model_call_failed", extra={"model": model, "error": type(e).__name__})
            raise ModelCallError(f"Failed to call model API: {e}", conversation) from e
        content = getattr(ai_msg, "content", None)
        if content is None:
            raise ModelCallError("model response has no content", conversation)
        try:
            return _normalize_text_content(content)
        except ModelCallError as e:
            e.conversation = conversation
            raise
