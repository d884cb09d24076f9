"""Completion service used by every LLM step of the pipeline.

``OpenRouterClient`` talks to OpenRouter's OpenAI-compatible chat
completions endpoint with ``requests``. Structured calls send the pydantic
schema as a JSON-schema response format and validate the answer against
it; an absent, empty, or invalid answer becomes ``output=None`` rather than
an exception, so callers treat it as "no proposals".
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

import requests
from pydantic import BaseModel

from ..core.errors import ConfigurationError, LLMError
from ..core.retry import with_retry
from .usage import Usage

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1"

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


@dataclass
class Completion(Generic[T]):
    """Result of one completion call.

    Attributes:
        output: Validated schema instance (structured calls), stripped text
            (text calls), or None when the model produced nothing usable.
        usage: Tokens and cost reported for the call.
        text: Raw message content as returned.
    """

    output: T | None
    usage: Usage = field(default_factory=Usage)
    text: str = ""


class CompletionService(Protocol):
    """What the pipeline needs from a chat completion provider."""

    def complete(
        self,
        prompt: str,
        schema: type[BaseModel] | None = None,
        *,
        system: str | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion[Any]: ...


def extract_json(text: str) -> str:
    """Pull the JSON object out of a reply that may wrap it in prose or fences."""
    text = text.strip()
    fenced = _FENCED_JSON.search(text)
    if fenced:
        return fenced.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def parse_structured(text: str, schema: type[M]) -> M | None:
    """Validate model output against ``schema``; None if it does not fit."""
    if not text or not text.strip():
        return None
    try:
        return schema.model_validate(json.loads(extract_json(text)))
    except ValueError as exc:
        logger.warning(
            "Discarding %s output that failed validation: %s",
            schema.__name__,
            exc,
        )
        return None


class OpenRouterClient:
    """Chat completions over OpenRouter (or any OpenAI-compatible API).

    Args:
        api_key: Bearer token for the API.
        model: Default model identifier, used when a call names none.
        base_url: API root; ``/chat/completions`` is appended.
        timeout: Read timeout in seconds for one call.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = OPENROUTER_API_URL,
        timeout: float = 300,
    ):
        if not api_key or not api_key.strip():
            raise ConfigurationError(
                "OpenRouter API key not configured. Set openrouter_api_key or OPENROUTER_API_KEY."
            )
        if not model or not model.strip():
            raise ConfigurationError(
                "AI model not configured. Set openrouter_model or OPENROUTER_MODEL."
            )
        self.api_key = api_key.strip()
        self.model = model.strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.headers.update(
                {
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "X-Title": "wiki-sync",
                }
            )
            self._thread_local.session = session
        return self._thread_local.session

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        response = self._get_session().post(
            f"{self.base_url}/chat/completions",
            json=body,
            timeout=(10, self.timeout),
        )
        if response.status_code >= 400:
            raise LLMError(
                f"Completion request failed ({response.status_code}): "
                f"{response.text[:500]}",
                status_code=response.status_code,
            )
        payload = response.json()
        if isinstance(payload, dict) and payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise LLMError(f"Completion request failed: {message}")
        return payload

    def complete(
        self,
        prompt: str,
        schema: type[BaseModel] | None = None,
        *,
        system: str | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> Completion[Any]:
        """Run one chat completion.

        Args:
            prompt: User message.
            schema: Pydantic model for structured output; None for plain text.
            system: Optional system message.
            temperature: Sampling temperature; provider default if None.
            model: Model override for this call.

        Returns:
            Completion whose ``output`` is a ``schema`` instance, the
            stripped text, or None.

        Raises:
            LLMError: When the API answers with an error after retries.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        body: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "usage": {"include": True},
        }
        if temperature is not None:
            body["temperature"] = temperature
        if schema is not None:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema(),
                },
            }

        payload = with_retry(lambda: self._post(body))
        usage = Usage.from_response(payload.get("usage"))

        choices = payload.get("choices") or []
        text = ""
        if choices:
            text = (choices[0].get("message") or {}).get("content") or ""

        if schema is None:
            return Completion(output=text.strip() or None, usage=usage, text=text)
        return Completion(
            output=parse_structured(text, schema), usage=usage, text=text
        )
