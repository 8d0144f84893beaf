"""
Readiness checks: LLM key (Groq or OpenAI), evaluator. No secrets in check output.
"""
from calc_agent.config import Settings, get_settings, require_api_key
from calc_agent.errors import ConfigError, EvaluatorError
from calc_agent.logging_config import get_logger
from calc_agent.reasoning.evaluator import evaluate

logger = get_logger(__name__)


def check_ready(settings: Settings | None = None) -> tuple[bool, dict[str, str]]:
    """
    Returns (ok, details). details keys: llm, evaluator.
    Values are "ok" or an error description (no secrets).
    """
    settings = settings or get_settings()
    details: dict[str, str] = {}

    try:
        require_api_key(settings)
        details["llm"] = "ok"
    except ConfigError:
        details["llm"] = "not_configured"

    try:
        details["evaluator"] = "ok" if evaluate("2 + 2") == 4.0 else "error: wrong result"
    except EvaluatorError as e:
        details["evaluator"] = f"error: {type(e).__name__}"
        logger.warning("readiness_evaluator_failed", extra={"error": type(e).__name__})

    ok = all(v == "ok" for v in details.values())
    return ok, details
