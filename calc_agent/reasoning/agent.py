"""
Calculator agent: a ReAct-style loop over one conversation.

Each step asks the model for its next action, records the reply, parses it into
Action / Action Input, and dispatches it: Calculator feeds an observation back,
Response To Human ends the run with the answer.
"""
import asyncio
import time

from calc_agent import conversation as conv
from calc_agent.config import Settings, get_settings
from calc_agent.errors import AgentError, MalformedResponseError, ModelCallError, RunCancelledError, StepLimitExceededError
from calc_agent.llm_client import ModelClient, get_chat_model, get_model_client
from calc_agent.logging_config import get_logger
from calc_agent.models import Conversation, FinalAnswer, Role, RunResult, RunState, StepOutcome
from calc_agent.reasoning.parser import parse, resolve_action
from calc_agent.reasoning.tools import ToolRegistry, default_registry

logger = get_logger(__name__)


SYSTEM_PROMPT_TMPL = """You have access to the following tools:
{tools}

You will receive a message from the human, then you should use a tool to answer the question. For this, you should use the following format:

Action: the action to take, should be one of [{names}]
Action Input: the input to the action, without quotes"""


def build_system_prompt(registry: ToolRegistry) -> str:
    return SYSTEM_PROMPT_TMPL.format(tools=registry.describe(), names=", ".join(registry.names()))


class _RunProgress:
    """Latest committed conversation and steps of a run, kept for error reports."""

    def __init__(self, conversation: Conversation):
        self.conversation = conversation
        self.steps: list[StepOutcome] = []


class AgentLoop:
    def __init__(
        self,
        client: ModelClient | None = None,
        registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        model: str | None = None,
        max_steps: int | None = None,
        run_timeout_seconds: float | None = None,
    ):
        self.settings = settings or get_settings()
        self._client = client or get_model_client(self.settings)
        self.registry = registry or default_registry()
        self.model = model or get_chat_model(self.settings)
        self.max_steps = max_steps or self.settings.max_steps
        self.run_timeout_seconds = (
            run_timeout_seconds if run_timeout_seconds is not None else self.settings.run_timeout_seconds
        )
        self.system_prompt = build_system_prompt(self.registry)

    def seed(self, question: str) -> Conversation:
        return conv.seed(self.system_prompt, question)

    async def _complete(self, conversation: Conversation, cancel: asyncio.Event | None) -> str:
        """One model round trip; returns early with RunCancelledError if cancel is set meanwhile."""
        try:
            if cancel is None:
                return await self._client.complete(conversation, self.model)
            call = asyncio.ensure_future(self._client.complete(conversation, self.model))
            waiter = asyncio.ensure_future(cancel.wait())
            try:
                done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
            if call not in done:
                call.cancel()
                raise RunCancelledError("run cancelled during model call", conversation)
            return call.result()
        except ModelCallError as e:
            if e.conversation is None:
                e.conversation = conversation
            raise

    async def step(
        self,
        conversation: Conversation,
        index: int = 1,
        cancel: asyncio.Event | None = None,
    ) -> tuple[Conversation, StepOutcome]:
        """Run one model call + parse + dispatch. Returns the new conversation and what happened."""
        if cancel is not None and cancel.is_set():
            raise RunCancelledError("run cancelled", conversation)

        t0 = time.perf_counter()
        reply = await self._complete(conversation, cancel)
        logger.info(
            "agent_reply",
            extra={"step": index, "reply": reply, "duration_ms": round((time.perf_counter() - t0) * 1000, 2)},
        )

        # Recorded before parsing so a malformed reply stays in the trace
        conversation = conv.append(conversation, Role.ASSISTANT, reply)
        try:
            parsed = parse(reply)
        except MalformedResponseError as e:
            e.conversation = conversation
            raise

        action = resolve_action(parsed)
        result = self.registry.dispatch(action)
        if isinstance(result, FinalAnswer):
            logger.info("final_answer", extra={"step": index, "action": action.kind, "answer": result.text})
            return conv.terminate(conversation), StepOutcome(
                index=index, reply=reply, action=action, final_answer=result.text
            )

        logger.info("observation", extra={"step": index, "action": action.kind, "observation": result.text})
        conversation = conv.append(conversation, Role.USER, result.as_message_content())
        return conversation, StepOutcome(index=index, reply=reply, action=action, observation=result.text)

    async def _loop(self, progress: _RunProgress, cancel: asyncio.Event | None) -> RunResult:
        state = RunState.RUNNING
        answer = ""
        while state is RunState.RUNNING:
            index = len(progress.steps) + 1
            if index > self.max_steps:
                raise StepLimitExceededError(self.max_steps, progress.conversation)
            logger.info("agent_step", extra={"step": index, "messages": len(progress.conversation)})
            progress.conversation, outcome = await self.step(progress.conversation, index, cancel)
            progress.steps.append(outcome)
            if progress.conversation.terminated:
                state = RunState.TERMINATED
                answer = outcome.final_answer or ""
        return RunResult(
            answer=answer,
            model=self.model,
            conversation=progress.conversation,
            steps=progress.steps,
        )

    async def _drive(self, conversation: Conversation, cancel: asyncio.Event | None) -> RunResult:
        progress = _RunProgress(conversation)
        try:
            if not self.run_timeout_seconds:
                return await self._loop(progress, cancel)
            try:
                return await asyncio.wait_for(self._loop(progress, cancel), timeout=self.run_timeout_seconds)
            except asyncio.TimeoutError as e:
                raise RunCancelledError(
                    f"run deadline of {self.run_timeout_seconds}s exceeded", progress.conversation
                ) from e
        except AgentError as e:
            if e.conversation is None:
                e.conversation = progress.conversation
            logger.warning(
                "run_failed",
                extra={"error": type(e).__name__, "step": len(progress.steps) + 1, "model": self.model},
            )
            raise

    async def run(self, question: str, cancel: asyncio.Event | None = None) -> RunResult:
        """Answer one question from a fresh conversation. Raises AgentError subclasses on fatal errors."""
        return await self._drive(self.seed(question), cancel)

    async def chat(
        self,
        question: str,
        history: Conversation | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RunResult:
        """Answer a follow-up question on top of a previous run's conversation."""
        if history is None:
            return await self.run(question, cancel)
        return await self._drive(conv.continue_with(history, question), cancel)
