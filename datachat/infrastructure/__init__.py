"""Infrastructure layer exports."""

from .llm import LLMClient, LLMError, OpenAIChatClient, configure_llm_client, get_llm_client
from .sandbox import SandboxExecutor

__all__ = [
    "LLMClient",
    "LLMError",
    "OpenAIChatClient",
    "SandboxExecutor",
    "configure_llm_client",
    "get_llm_client",
]
