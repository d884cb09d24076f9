"""LLM access: completion client, structured schemas, prompts and usage."""

from .client import Completion, CompletionService, OpenRouterClient
from .usage import Usage, UsageTracker

__all__ = [
    "Completion",
    "CompletionService",
    "OpenRouterClient",
    "Usage",
    "UsageTracker",
]
