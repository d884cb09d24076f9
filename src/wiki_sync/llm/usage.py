"""Token and cost accounting across the LLM calls of one sync run."""

from __future__ import annotations

import threading
from typing import Any

from pydantic import BaseModel


class Usage(BaseModel):
    """Tokens and cost reported for one or more completions."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0

    model_config = {"frozen": True}

    @classmethod
    def from_response(cls, payload: dict[str, Any] | None) -> Usage:
        """Read an OpenAI-compatible ``usage`` object.

        ``cost`` is OpenRouter's extension and is absent elsewhere.
        """
        if not payload:
            return cls()
        cost = payload.get("cost")
        return cls(
            input_tokens=int(payload.get("prompt_tokens") or 0),
            output_tokens=int(payload.get("completion_tokens") or 0),
            cost=float(cost) if isinstance(cost, (int, float)) else 0.0,
        )

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cost=self.cost + other.cost,
        )


class UsageTracker:
    """Thread-safe running total; completions may finish on worker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = Usage()

    def add(self, usage: Usage) -> None:
        with self._lock:
            self._total = self._total + usage

    @property
    def total(self) -> Usage:
        with self._lock:
            return self._total
