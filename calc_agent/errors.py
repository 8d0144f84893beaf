"""
Error taxonomy for agent runs.

Fatal errors derive from AgentError and carry the partial conversation so a failed run
can still be inspected. EvaluatorError and UnknownActionError are recoverable: the loop
turns them into observations for the model.
"""


class AgentError(Exception):
    """Base for errors that end a run."""

    def __init__(self, message: str, conversation=None):
        super().__init__(message)
        self.conversation = conversation


class ModelCallError(AgentError):
    """Transport failure, error status or unexpected response shape from the model provider."""


class MalformedResponseError(AgentError):
    """Model reply does not follow the Action / Action Input format."""

    def __init__(self, message: str, reply: str = "", conversation=None):
        super().__init__(message, conversation)
        self.reply = reply


class InvalidStateError(AgentError):
    """Operation not allowed in the conversation's current state."""


class StepLimitExceededError(AgentError):
    def __init__(self, max_steps: int, conversation=None):
        super().__init__(f"step limit exceeded: no answer after {max_steps} steps", conversation)
        self.max_steps = max_steps


class RunCancelledError(AgentError):
    """Run stopped by a cancel signal or its deadline."""


class EvaluatorError(Exception):
    """Expression could not be evaluated. The message is shown to the model verbatim."""


class UnknownActionError(Exception):
    def __init__(self, name: str):
        super().__init__(f"unknown action '{name}'")
        self.name = name


class ConfigError(Exception):
    """Startup configuration is unusable (e.g. missing API key)."""
