import logging
import os
from dataclasses import dataclass
from typing import Tuple

# ==========================================
# Configuration & Setup
# ==========================================
# Point OPENAI_BASE_URL at a local vLLM/Ollama instance running a coder model
# or use a cloud provider like OpenAI.
#
# The config is built once at process start and handed to every component.
# Nothing below reads the environment after that.


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_command(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(raw.split())


@dataclass(frozen=True)
class AgentConfig:
    """Immutable settings threaded through the generator, sandbox, loop and pool."""

    api_key: str = "your-api-key"
    base_url: str = "https://api.openai.com/v1"
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2048

    max_iterations: int = 10

    compile_timeout: float = 30.0
    run_timeout: float = 30.0
    compile_command: Tuple[str, ...] = ("javac",)
    run_command: Tuple[str, ...] = ("java",)

    core_workers: int = 5
    max_workers: int = 10
    queue_capacity: int = 100

    log_level: str = "INFO"

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.compile_timeout <= 0 or self.run_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if self.core_workers < 1 or self.max_workers < self.core_workers:
            raise ValueError("need 1 <= core_workers <= max_workers")
        if self.queue_capacity < 0:
            raise ValueError("queue_capacity must not be negative")
        if not self.compile_command or not self.run_command:
            raise ValueError("compile_command and run_command must not be empty")

    @classmethod
    def from_env(cls) -> "AgentConfig":
        return cls(
            api_key=os.getenv("OPENAI_API_KEY", "your-api-key"),
            base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            model_name=os.getenv("MODEL_NAME", "gpt-4o-mini"),  # E.g., Qwen/Qwen2.5-Coder-7B-Instruct
            temperature=_env_float("AGENT_TEMPERATURE", 0.7),
            max_tokens=_env_int("AGENT_MAX_TOKENS", 2048),
            max_iterations=_env_int("AGENT_MAX_ITERATIONS", 10),
            compile_timeout=_env_float("AGENT_COMPILE_TIMEOUT", 30.0),
            run_timeout=_env_float("AGENT_RUN_TIMEOUT", 30.0),
            compile_command=_env_command("AGENT_COMPILER", ("javac",)),
            run_command=_env_command("AGENT_RUNTIME", ("java",)),
            core_workers=_env_int("AGENT_CORE_WORKERS", 5),
            max_workers=_env_int("AGENT_MAX_WORKERS", 10),
            queue_capacity=_env_int("AGENT_QUEUE_CAPACITY", 100),
            log_level=os.getenv("AGENT_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s",
    )
