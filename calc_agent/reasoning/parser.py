"""
Reply parser: turns the model's two-line reply into an action.

Expected reply (after trimming surrounding whitespace):
    Action: <name>
    Action Input: <input>
"""
from calc_agent.errors import MalformedResponseError
from calc_agent.models import (
    Action,
    CalculatorAction,
    ParsedAction,
    RespondToHumanAction,
    UnknownAction,
)

ACTION_LABEL = "Action:"
ACTION_INPUT_LABEL = "Action Input:"

CALCULATOR = "Calculator"
RESPONSE_TO_HUMAN = "Response To Human"


def _after_label(line: str, label: str, reply_text: str) -> str:
    parts = line.split(label)
    if len(parts) < 2:
        raise MalformedResponseError(f"expected '{label}' in line: {line.strip()!r}", reply=reply_text)
    return parts[1].strip()


def parse(reply_text: str) -> ParsedAction:
    """Extract action name and input. Raises MalformedResponseError if the reply does not match."""
    lines = (reply_text or "").strip().split("\n")
    if len(lines) < 2:
        raise MalformedResponseError(
            f"expected two lines ('{ACTION_LABEL}' and '{ACTION_INPUT_LABEL}'), got {len(lines)}",
            reply=reply_text,
        )
    name = _after_label(lines[0], ACTION_LABEL, reply_text)
    action_input = _after_label(lines[1], ACTION_INPUT_LABEL, reply_text)
    return ParsedAction(name=name, input=action_input)


def resolve_action(parsed: ParsedAction) -> Action:
    """Map a parsed name onto the closed action set; names match case-insensitively."""
    name = parsed.name.strip().lower()
    if name == CALCULATOR.lower():
        return CalculatorAction(expression=parsed.input)
    if name == RESPONSE_TO_HUMAN.lower():
        return RespondToHumanAction(answer=parsed.input)
    return UnknownAction(name=parsed.name, input=parsed.input)
