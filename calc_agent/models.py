"""
Pydantic models for the agent and the API. Plain shapes; conversation values are frozen.
"""
from enum import Enum
from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Conversation ---
class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def to_openai(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Conversation(BaseModel):
    """Ordered message log sent to the model. Operations in calc_agent.conversation return new values."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    terminated: bool = False

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:  # type: ignore[override]
        return iter(self.messages)

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def to_openai(self) -> list[dict[str, str]]:
        return [m.to_openai() for m in self.messages]


class RunState(str, Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


# --- Actions (parsed from model replies) ---
class ParsedAction(BaseModel):
    name: str
    input: str


class CalculatorAction(BaseModel):
    kind: Literal["calculator"] = "calculator"
    expression: str


class RespondToHumanAction(BaseModel):
    kind: Literal["response_to_human"] = "response_to_human"
    answer: str


class UnknownAction(BaseModel):
    kind: Literal["unknown"] = "unknown"
    name: str
    input: str = ""


Action = Annotated[
    Union[CalculatorAction, RespondToHumanAction, UnknownAction],
    Field(discriminator="kind"),
]


# --- Tool results ---
class Observation(BaseModel):
    text: str

    def as_message_content(self) -> str:
        return f"Observation: {self.text}"


class FinalAnswer(BaseModel):
    text: str


ToolResult = Union[Observation, FinalAnswer]


# --- Run trace ---
class StepOutcome(BaseModel):
    index: int
    reply: str
    action: Action
    observation: str | None = None
    final_answer: str | None = None


class RunResult(BaseModel):
    answer: str
    model: str
    conversation: Conversation
    steps: list[StepOutcome] = Field(default_factory=list)


# --- Model catalogue ---
class KnownModel(Enum):
    """Models the agent is usually run with. See https://platform.openai.com/docs/models"""

    GPT_4O = "A large model like gpt-4o offers a very high level of intelligence and strong performance, with higher cost per token"
    GPT_4O_MINI = "A small model like gpt-4o-mini offers intelligence not quite on the level of the larger model, but it's faster and less expensive per token."
    O1 = "A reasoning model like the o1 family of models is slower to return a result, and uses more tokens to \"think,\" but is capable of advanced reasoning, coding, and multi-step planning."

    @property
    def id(self) -> str:
        return self.name.lower().replace("_", "-")

    @property
    def description(self) -> str:
        return self.value


DEFAULT_MODEL = KnownModel.GPT_4O.id


# --- Ask API ---
class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    model: str | None = None
    max_steps: int | None = Field(default=None, ge=1, le=50)


class AskResponse(BaseModel):
    answer: str = ""
    model: str = ""
    steps: int = 0
    trace: list[Message] = Field(default_factory=list)
    error: str = ""
    error_type: str = ""


class ModelInfo(BaseModel):
    id: str
    description: str
