from pydantic_settings import BaseSettings

from calc_agent.errors import ConfigError
from calc_agent.models import DEFAULT_MODEL

API_KEY_PLACEHOLDER = "OPENAI_API_KEY"


class Settings(BaseSettings):
    """Load from env (and .env file). NAME=value command-line arguments fill what is left, see get_settings."""

    # LLM: "openai" or "groq"
    llm_provider: str = "openai"
    openai_api_key: str = ""
    model_name: str = DEFAULT_MODEL
    # Groq (OpenAI-compatible API at api.groq.com)
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"

    # Optional thin LangChain wrapper for the model call
    use_langchain: bool = False

    # Model call: one attempt per step, bounded by a timeout (seconds)
    openai_timeout: float = 60.0
    openai_max_retries: int = 0

    # Agent loop
    max_steps: int = 10
    run_timeout_seconds: float | None = None
    default_question: str = "What is the square root of 98237948273498274?"

    # API
    max_concurrent_runs: int = 10

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def parse_cli_assignments(args: list[str] | None) -> dict[str, str]:
    """Pick NAME=value pairs that name a setting; everything else is ignored."""
    out: dict[str, str] = {}
    for arg in args or []:
        name, sep, value = arg.partition("=")
        key = name.strip().lower()
        if sep and key in Settings.model_fields:
            out[key] = value
    return out


def get_settings(cli_args: list[str] | None = None) -> Settings:
    """
    Resolve settings: environment variables first, then the .env file, then NAME=value
    command-line arguments, then defaults.
    """
    settings = Settings()
    overrides = {
        k: v for k, v in parse_cli_assignments(cli_args).items() if k not in settings.model_fields_set
    }
    if not overrides:
        return settings
    return Settings(**overrides)


def active_api_key(settings: Settings) -> str:
    if (settings.llm_provider or "openai").strip().lower() == "groq":
        return (settings.groq_api_key or "").strip()
    return (settings.openai_api_key or "").strip()


def require_api_key(settings: Settings) -> str:
    """Return the usable API key for the active provider or raise ConfigError."""
    key = active_api_key(settings)
    if not key:
        raise ConfigError("cannot start: no API key provided (set OPENAI_API_KEY or GROQ_API_KEY)")
    if len(key) <= 5 or key == API_KEY_PLACEHOLDER:
        raise ConfigError("cannot start: invalid API key provided")
    return key
