"""
Logging for agent runs: one line per event, tagged with the run it belongs to.

Events are snake_case names (agent_step, agent_reply, calculator_result, observation,
final_answer, run_failed) with their details passed as `extra=` keys. API keys are never logged.
"""
import logging
import sys
from contextvars import ContextVar

# Set per question by the API middleware or the CLI; every step of that run carries it
run_id_ctx: ContextVar[str] = ContextVar("run_id", default="")

# Numbers and identifiers
_FIELD_KEYS = (
    "log_level",
    "model",
    "provider",
    "api_key",
    "step",
    "steps",
    "max_steps",
    "action",
    "messages",
    "duration_ms",
    "error",
)
# Model and tool text; may span lines
_TEXT_KEYS = (
    "reply",
    "expression",
    "result",
    "observation",
    "answer",
)


def _render(value) -> str:
    text = str(value)
    return repr(text) if "\n" in text else text


class RunTraceFormatter(logging.Formatter):
    """time | LEVEL | logger | run_id=... | event | key=value ..."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.formatTime(record, self.datefmt),
            record.levelname,
            record.name,
        ]
        rid = run_id_ctx.get() or getattr(record, "run_id", "")
        if rid:
            parts.append(f"run_id={rid}")
        parts.append(record.getMessage())
        for key in _FIELD_KEYS + _TEXT_KEYS:
            if hasattr(record, key):
                parts.append(f"{key}={_render(getattr(record, key))}")
        if record.exc_info:
            parts.append(self.formatException(record.exc_info))
        return " | ".join(parts)


def configure_logging(level: str = "INFO") -> None:
    """Install RunTraceFormatter on the root logger. Safe to call more than once."""
    level_value = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level_value)
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stderr))
    for h in root.handlers:
        h.setFormatter(RunTraceFormatter())
        h.setLevel(level_value)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
