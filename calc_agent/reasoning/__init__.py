from .agent import AgentLoop, build_system_prompt
from .evaluator import evaluate, format_number
from .parser import parse, resolve_action
from .tools import CalculatorTool, RespondToHumanTool, ToolRegistry, default_registry

__all__ = [
    "AgentLoop",
    "build_system_prompt",
    "evaluate",
    "format_number",
    "parse",
    "resolve_action",
    "CalculatorTool",
    "RespondToHumanTool",
    "ToolRegistry",
    "default_registry",
]
