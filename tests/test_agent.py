"""Tests for the agent loop.

A ScriptedModelClient replays canned replies so each test controls exactly what the
model says at every step; the real parser and tool registry are used.
"""

import asyncio

import pytest

from calc_agent.errors import (
    EvaluatorError,
    MalformedResponseError,
    ModelCallError,
    RunCancelledError,
    StepLimitExceededError,
)
from calc_agent.models import Message, Role

from conftest import ScriptedModelClient


def _evaluator_returning(value):
    return lambda expression: value


def _division_by_zero(expression):
    raise EvaluatorError("division by zero")


# ---------------------------------------------------------------------------
# Single steps
# ---------------------------------------------------------------------------


class TestStep:
    async def test_calculator_step_appends_reply_and_observation(self, make_agent):
        """Scenario A."""
        agent, _ = make_agent(["Action: Calculator\nAction Input: 2 + 2"], evaluator=_evaluator_returning(4.0))
        start = agent.seed("What is 2 + 2?")

        after, outcome = await agent.step(start)

        assert len(after) == len(start) + 2
        assert after.messages[-2] == Message(role=Role.ASSISTANT, content="Action: Calculator\nAction Input: 2 + 2")
        assert after.messages[-1] == Message(role=Role.USER, content="Observation: 4.0")
        assert not after.terminated
        assert outcome.observation == "4.0"
        assert outcome.final_answer is None

    async def test_response_to_human_terminates(self, make_agent):
        """Scenario B."""
        agent, _ = make_agent(["Action: Response To Human\nAction Input: The answer is 9."])
        start = agent.seed("What is 3 squared?")

        after, outcome = await agent.step(start)

        assert after.terminated
        assert len(after) == len(start) + 1
        assert after.last.role == Role.ASSISTANT
        assert outcome.final_answer == "The answer is 9."

    async def test_malformed_reply_is_kept_in_trace(self, make_agent):
        """Scenario C."""
        agent, _ = make_agent(["I am not sure what to do"])
        start = agent.seed("q")

        with pytest.raises(MalformedResponseError) as exc:
            await agent.step(start)

        trace = exc.value.conversation
        assert len(trace) == len(start) + 1
        assert trace.last == Message(role=Role.ASSISTANT, content="I am not sure what to do")

    async def test_evaluator_error_is_fed_back(self, make_agent):
        """Scenario D."""
        agent, _ = make_agent(["Action: Calculator\nAction Input: 1/0"], evaluator=_division_by_zero)

        after, _ = await agent.step(agent.seed("q"))

        assert after.last == Message(role=Role.USER, content="Observation: Error in calculation: division by zero")
        assert not after.terminated

    async def test_deeply_nested_expression_is_fed_back(self, make_agent):
        agent, _ = make_agent(["Action: Calculator\nAction Input: " + "-" * 5000 + "1"])
        start = agent.seed("q")

        after, outcome = await agent.step(start)

        assert len(after) == len(start) + 2
        assert after.last.role == Role.USER
        assert after.last.content.startswith("Observation: Error in calculation: ")
        assert not after.terminated
        assert outcome.observation.startswith("Error in calculation: ")

    @pytest.mark.parametrize("name", ["calculator", "CALCULATOR", "Calculator"])
    async def test_action_name_case_insensitive(self, make_agent, name):
        calls = []

        def evaluator(expression):
            calls.append(expression)
            return 3.0

        agent, _ = make_agent([f"Action: {name}\nAction Input: 1 + 2"], evaluator=evaluator)
        await agent.step(agent.seed("q"))
        assert calls == ["1 + 2"]

    async def test_unknown_action_gets_observation(self, make_agent):
        agent, _ = make_agent(["Action: Search\nAction Input: weather"])

        after, outcome = await agent.step(agent.seed("q"))

        assert after.last == Message(role=Role.USER, content="Observation: unknown action 'Search'")
        assert not after.terminated
        assert outcome.action.kind == "unknown"

    async def test_model_error_appends_nothing(self, make_agent):
        agent, _ = make_agent([ModelCallError("boom")])
        start = agent.seed("q")

        with pytest.raises(ModelCallError) as exc:
            await agent.step(start)
        assert exc.value.conversation == start

    async def test_sends_full_conversation_and_model(self, make_agent):
        agent, client = make_agent(["Action: Response To Human\nAction Input: hi"], model="o1")
        start = agent.seed("q")

        await agent.step(start)

        sent, model = client.calls[0]
        assert sent == start
        assert model == "o1"


# ---------------------------------------------------------------------------
# Whole runs
# ---------------------------------------------------------------------------


class TestRun:
    async def test_calculate_then_answer(self, make_agent):
        agent, client = make_agent(
            [
                "Action: Calculator\nAction Input: sqrt(81)",
                "Action: Response To Human\nAction Input: The answer is 9.",
            ]
        )

        result = await agent.run("What is the square root of 81?")

        assert result.answer == "The answer is 9."
        assert result.model == "gpt-4o-mini"
        assert len(result.steps) == 2
        assert result.steps[0].observation == "9.0"
        assert [m.role for m in result.conversation.messages] == [
            Role.SYSTEM,
            Role.USER,
            Role.ASSISTANT,
            Role.USER,
            Role.ASSISTANT,
        ]
        assert result.conversation.terminated
        # The second model call saw the observation
        assert client.calls[1][0].last.content == "Observation: 9.0"

    async def test_system_prompt_lists_tools_and_format(self, make_agent):
        agent, _ = make_agent(["Action: Response To Human\nAction Input: ok"])
        result = await agent.run("q")

        system = result.conversation.messages[0]
        assert system.role == Role.SYSTEM
        assert "Calculator:" in system.content
        assert "Response To Human:" in system.content
        assert "Action: the action to take, should be one of [Calculator, Response To Human]" in system.content
        assert "Action Input:" in system.content

    async def test_recovers_after_calculation_error(self, make_agent):
        agent, _ = make_agent(
            [
                "Action: Calculator\nAction Input: 1/0",
                "Action: Calculator\nAction Input: 1/1",
                "Action: Response To Human\nAction Input: It is 1.",
            ]
        )
        result = await agent.run("q")
        assert result.answer == "It is 1."
        assert result.steps[0].observation == "Error in calculation: division by zero"

    async def test_malformed_reply_ends_run(self, make_agent):
        agent, client = make_agent(["I am not sure what to do", "Action: Response To Human\nAction Input: late"])

        with pytest.raises(MalformedResponseError) as exc:
            await agent.run("q")

        assert len(client.calls) == 1
        assert exc.value.conversation.last.content == "I am not sure what to do"

    async def test_model_error_ends_run_with_trace(self, make_agent):
        agent, _ = make_agent(["Action: Calculator\nAction Input: 2 + 2", ModelCallError("status 500")])

        with pytest.raises(ModelCallError) as exc:
            await agent.run("q")

        assert exc.value.conversation.last.content == "Observation: 4.0"

    async def test_step_limit(self, make_agent):
        agent, client = make_agent(["Action: Calculator\nAction Input: 1 + 1"] * 10, max_steps=3)

        with pytest.raises(StepLimitExceededError) as exc:
            await agent.run("q")

        assert exc.value.max_steps == 3
        assert len(client.calls) == 3
        assert len(exc.value.conversation) == 2 + 3 * 2

    async def test_unknown_actions_hit_step_limit_instead_of_stalling(self, make_agent):
        agent, _ = make_agent(["Action: Search\nAction Input: x"] * 5, max_steps=2)
        with pytest.raises(StepLimitExceededError):
            await agent.run("q")

    async def test_chat_keeps_history(self, make_agent):
        agent, client = make_agent(
            [
                "Action: Response To Human\nAction Input: 4",
                "Action: Response To Human\nAction Input: 8",
            ]
        )
        first = await agent.run("What is 2 + 2?")
        second = await agent.chat("And doubled?", first.conversation)

        assert second.answer == "8"
        sent = client.calls[1][0]
        assert [m.content for m in sent.messages[1:]] == ["What is 2 + 2?", "Action: Response To Human\nAction Input: 4", "And doubled?"]

    async def test_chat_without_history_is_a_fresh_run(self, make_agent):
        agent, _ = make_agent(["Action: Response To Human\nAction Input: ok"])
        result = await agent.chat("q")
        assert len(result.conversation) == 3


# ---------------------------------------------------------------------------
# Cancellation and deadlines
# ---------------------------------------------------------------------------


class _BlockingClient:
    def __init__(self):
        self.started = asyncio.Event()

    async def complete(self, conversation, model):
        self.started.set()
        await asyncio.sleep(30)
        return "Action: Response To Human\nAction Input: too late"


class TestCancellation:
    async def test_cancelled_before_first_step(self, make_agent):
        agent, client = make_agent(["Action: Response To Human\nAction Input: ok"])
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(RunCancelledError):
            await agent.run("q", cancel=cancel)
        assert client.calls == []

    async def test_cancelled_during_model_call(self, settings):
        from calc_agent.reasoning.agent import AgentLoop

        client = _BlockingClient()
        agent = AgentLoop(client=client, settings=settings)
        cancel = asyncio.Event()

        async def cancel_when_started():
            await client.started.wait()
            cancel.set()

        canceller = asyncio.create_task(cancel_when_started())
        with pytest.raises(RunCancelledError) as exc:
            await asyncio.wait_for(agent.run("q", cancel=cancel), timeout=5)
        await canceller
        assert len(exc.value.conversation) == 2

    async def test_deadline(self, settings):
        from calc_agent.reasoning.agent import AgentLoop

        agent = AgentLoop(client=_BlockingClient(), settings=settings, run_timeout_seconds=0.05)

        with pytest.raises(RunCancelledError) as exc:
            await agent.run("q")
        assert not isinstance(exc.value, ModelCallError)
        assert "deadline" in str(exc.value)

    async def test_cancel_between_steps(self, settings):
        from calc_agent.reasoning.agent import AgentLoop

        cancel = asyncio.Event()

        class CancelAfterFirst(ScriptedModelClient):
            async def complete(self, conversation, model):
                reply = await super().complete(conversation, model)
                cancel.set()
                return reply

        client = CancelAfterFirst(["Action: Calculator\nAction Input: 2 + 2", "Action: Response To Human\nAction Input: 4"])
        agent = AgentLoop(client=client, settings=settings)

        with pytest.raises(RunCancelledError) as exc:
            await agent.run("q", cancel=cancel)
        assert len(client.calls) == 1
        assert exc.value.conversation.last.content == "Observation: 4.0"
