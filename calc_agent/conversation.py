"""
Conversation state: an append-only message log. Every operation returns a new Conversation;
existing messages are never edited or removed.
"""
from calc_agent.errors import InvalidStateError
from calc_agent.models import Conversation, Message, Role


def seed(system_prompt: str, user_prompt: str) -> Conversation:
    """Start a conversation with the system prompt and the user's question."""
    return Conversation(
        messages=(
            Message(role=Role.SYSTEM, content=system_prompt),
            Message(role=Role.USER, content=user_prompt),
        )
    )


def append(conversation: Conversation, role: Role | str, content: str) -> Conversation:
    if conversation.terminated:
        raise InvalidStateError("cannot append to a terminated conversation", conversation)
    message = Message(role=Role(role), content=content)
    return conversation.model_copy(update={"messages": conversation.messages + (message,)})


def terminate(conversation: Conversation) -> Conversation:
    return conversation.model_copy(update={"terminated": True})


def continue_with(conversation: Conversation, user_prompt: str) -> Conversation:
    """Open a follow-up turn: all previous messages plus a new user question, running again."""
    if not conversation.messages:
        raise InvalidStateError("cannot continue a conversation that was never seeded", conversation)
    message = Message(role=Role.USER, content=user_prompt)
    return Conversation(messages=conversation.messages + (message,))
