"""Shared fixtures: a scripted model client and settings isolated from the host environment."""

import pytest

from calc_agent.config import Settings
from calc_agent.errors import ModelCallError
from calc_agent.reasoning.agent import AgentLoop
from calc_agent.reasoning.tools import default_registry

_SETTINGS_ENV = (
    "OPENAI_API_KEY",
    "MODEL_NAME",
    "GROQ_API_KEY",
    "GROQ_MODEL",
    "LLM_PROVIDER",
    "USE_LANGCHAIN",
    "MAX_STEPS",
    "RUN_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    "OPENAI_TIMEOUT",
    "OPENAI_MAX_RETRIES",
)


class ScriptedModelClient:
    """Replays canned replies in order. An exception in the script is raised instead of returned."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, conversation, model):
        self.calls.append((conversation, model))
        if not self.replies:
            raise ModelCallError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No settings leak in from the shell or a stray .env file."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings():
    return Settings(openai_api_key="sk-test-key-123", model_name="gpt-4o-mini", max_steps=5)


@pytest.fixture
def make_agent(settings):
    """Build an AgentLoop around a ScriptedModelClient; returns (agent, client)."""

    def _make(replies, evaluator=None, **kwargs):
        client = ScriptedModelClient(replies)
        registry = default_registry(evaluator) if evaluator is not None else default_registry()
        agent = AgentLoop(client=client, registry=registry, settings=settings, **kwargs)
        return agent, client

    return _make
