"""
Tools the agent can call, and the registry that dispatches parsed actions to them.
Exactly two tools: Calculator (expression evaluator) and Response To Human (final answer).
"""
from typing import Callable, Protocol

from calc_agent.errors import EvaluatorError, UnknownActionError
from calc_agent.logging_config import get_logger
from calc_agent.models import (
    Action,
    CalculatorAction,
    FinalAnswer,
    Observation,
    RespondToHumanAction,
    ToolResult,
    UnknownAction,
)
from calc_agent.reasoning.evaluator import evaluate, format_number
from calc_agent.reasoning.parser import CALCULATOR, RESPONSE_TO_HUMAN

logger = get_logger(__name__)

Evaluator = Callable[[str], float]


class Tool(Protocol):
    name: str
    description: str

    def __call__(self, action_input: str) -> ToolResult:
        ...


def calculator(expression: str, evaluator: Evaluator = evaluate) -> str:
    """
    Evaluate one expression for the model. Returns the formatted number, or
    "Error in calculation: <message>" when the evaluator rejects it. Never raises EvaluatorError.
    """
    try:
        result = evaluator(expression)
    except EvaluatorError as e:
        logger.info("calculator_failed", extra={"expression": expression, "error": str(e)})
        return f"Error in calculation: {e}"
    text = format_number(result)
    logger.info("calculator_result", extra={"expression": expression, "result": text})
    return text


class CalculatorTool:
    name = CALCULATOR
    description = "Useful for when you need to answer questions about math. Use MathJS code, eg: 2 + 2"

    def __init__(self, evaluator: Evaluator = evaluate):
        self._evaluate = evaluator

    def __call__(self, action_input: str) -> ToolResult:
        return Observation(text=calculator(action_input, self._evaluate))


class RespondToHumanTool:
    name = RESPONSE_TO_HUMAN
    description = "When you need to respond to the human you are talking to."

    def __call__(self, action_input: str) -> ToolResult:
        return FinalAnswer(text=action_input)


class ToolRegistry:
    """Explicit mapping from action name (case-insensitive) to tool."""

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        key = tool.name.strip().lower()
        if key in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[key] = tool

    def names(self) -> list[str]:
        return [t.name for t in self._tools.values()]

    def get(self, name: str) -> Tool:
        key = name.strip().lower()
        if key not in self._tools:
            raise UnknownActionError(name)
        return self._tools[key]

    def describe(self) -> str:
        return "\n".join(f"{t.name}: {t.description}" for t in self._tools.values())

    def dispatch(self, action: Action) -> ToolResult:
        if isinstance(action, CalculatorAction):
            return self.get(CALCULATOR)(action.expression)
        if isinstance(action, RespondToHumanAction):
            return self.get(RESPONSE_TO_HUMAN)(action.answer)
        if isinstance(action, UnknownAction):
            logger.warning("unknown_action", extra={"action": action.name})
            return Observation(text=str(UnknownActionError(action.name)))
        raise TypeError(f"Unsupported action type: {type(action).__name__}")


def default_registry(evaluator: Evaluator = evaluate) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(CalculatorTool(evaluator))
    registry.register(RespondToHumanTool())
    return registry
