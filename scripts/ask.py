"""
CLI to ask the calculator agent a question.
Usage:
  python -m scripts.ask "What is 17 * 23?"
  python -m scripts.ask OPENAI_API_KEY=sk-... MODEL_NAME=gpt-4o-mini "What is 2 ^ 10?"
  python -m scripts.ask --interactive
  python -m scripts.ask --list-models
Settings come from the environment first, then .env, then NAME=value arguments.
"""
import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Ensure calc_agent is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from calc_agent.config import Settings, get_settings, parse_cli_assignments, require_api_key
from calc_agent.errors import AgentError, ConfigError
from calc_agent.logging_config import configure_logging, get_logger, run_id_ctx
from calc_agent.models import Conversation, KnownModel
from calc_agent.reasoning.agent import AgentLoop

logger = get_logger("calc_agent.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ask the calculator agent a question")
    parser.add_argument(
        "words",
        nargs="*",
        help="Question text and/or NAME=value settings (e.g. MODEL_NAME=gpt-4o-mini)",
    )
    parser.add_argument("--interactive", "-i", action="store_true", help="Keep asking questions in one conversation")
    parser.add_argument("--list-models", action="store_true", help="Print known model ids and exit")
    parser.add_argument("--max-steps", type=int, default=None, help="Step ceiling for one question")
    parser.add_argument("--timeout", type=float, default=None, help="Wall-clock deadline for one question (seconds)")
    return parser


def split_words(words: list[str]) -> tuple[str, list[str]]:
    """Separate NAME=value setting assignments from the question text."""
    assignments = parse_cli_assignments(words)
    settings_args: list[str] = []
    question_words: list[str] = []
    for w in words:
        name = w.partition("=")[0].strip().lower()
        if "=" in w and name in assignments:
            settings_args.append(w)
        else:
            question_words.append(w)
    return " ".join(question_words).strip(), settings_args


def print_models() -> None:
    for m in KnownModel:
        print(f"{m.id}: {m.description}")


async def ask_once(agent: AgentLoop, question: str) -> str:
    run_id_ctx.set(str(uuid.uuid4())[:8])
    result = await agent.run(question)
    return result.answer


async def interactive(agent: AgentLoop, read=input) -> None:
    history: Conversation | None = None
    while True:
        try:
            question = read("User: ").strip()
        except EOFError:
            return
        if not question or question.lower() in ("exit", "quit"):
            return
        run_id_ctx.set(str(uuid.uuid4())[:8])
        try:
            result = await agent.chat(question, history)
        except AgentError as e:
            print(f"Error: {e}", file=sys.stderr)
            # Keep the context that led up to the failure out of the next question
            continue
        history = result.conversation
        print(f"Agent: {result.answer}")


def make_agent(settings: Settings, args: argparse.Namespace) -> AgentLoop:
    return AgentLoop(settings=settings, max_steps=args.max_steps, run_timeout_seconds=args.timeout)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)

    if args.list_models:
        print_models()
        return 0

    question, settings_args = split_words(args.words)
    settings = get_settings(settings_args)
    configure_logging(settings.log_level)

    try:
        require_api_key(settings)
    except ConfigError as e:
        logger.error("startup_failed", extra={"error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        return 1
    agent = make_agent(settings, args)
    logger.info("startup", extra={"model": agent.model, "provider": settings.llm_provider, "api_key": "configured"})
    try:
        if args.interactive:
            asyncio.run(interactive(agent))
            return 0
        answer = asyncio.run(ask_once(agent, question or settings.default_question))
    except AgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    print(answer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
