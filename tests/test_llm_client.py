"""Tests for llm.client and llm.usage — the OpenRouter completion service.

Covers:
- JSON extraction from fenced or chatty replies
- Structured output validation
- Request body, usage accounting and error responses
"""

from unittest.mock import MagicMock

import pytest

from wiki_sync.core.errors import ConfigurationError, LLMError
from wiki_sync.llm.client import OpenRouterClient, extract_json, parse_structured
from wiki_sync.llm.schemas import AnalysisResponse
from wiki_sync.llm.usage import Usage, UsageTracker


def _response(status=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload or {}
    response.text = text
    return response


def _client(*responses):
    client = OpenRouterClient("sk-test", "vendor/model", base_url="https://llm.test/v1/")
    session = MagicMock()
    session.post.side_effect = list(responses)
    client._thread_local.session = session
    return client, session


def _chat(content, usage=None):
    payload = {"choices": [{"message": {"content": content}}]}
    if usage is not None:
        payload["usage"] = usage
    return _response(payload=payload)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_fenced(self):
        assert extract_json('Here:\n```json\n{"a": 1}\n```\nDone') == '{"a": 1}'

    def test_surrounding_prose(self):
        assert extract_json('Sure! {"a": {"b": 2}} Hope it helps') == '{"a": {"b": 2}}'

    def test_plain_text_unchanged(self):
        assert extract_json("  no json  ") == "no json"


class TestParseStructured:
    def test_valid(self):
        parsed = parse_structured('{"summary": "ok"}', AnalysisResponse)
        assert parsed == AnalysisResponse(summary="ok")

    @pytest.mark.parametrize(
        "text", ["", "   ", "not json", '{"documents": "nope"}']
    )
    def test_invalid_is_none(self, text):
        assert parse_structured(text, AnalysisResponse) is None


# ---------------------------------------------------------------------------
# OpenRouterClient
# ---------------------------------------------------------------------------


class TestOpenRouterClient:
    """Tests for OpenRouterClient.complete()."""

    @pytest.mark.parametrize("key,model", [("", "m"), ("k", "  ")])
    def test_requires_key_and_model(self, key, model):
        with pytest.raises(ConfigurationError):
            OpenRouterClient(key, model)

    def test_structured_request(self):
        client, session = _client(
            _chat(
                '{"summary": "Billing changed"}',
                {"prompt_tokens": 120, "completion_tokens": 30, "cost": 0.002},
            )
        )

        completion = client.complete(
            "Analyze", AnalysisResponse, system="You are", temperature=0.2
        )

        assert completion.output == AnalysisResponse(summary="Billing changed")
        assert completion.usage == Usage(
            input_tokens=120, output_tokens=30, cost=0.002
        )
        url = session.post.call_args[0][0]
        body = session.post.call_args[1]["json"]
        assert url == "https://llm.test/v1/chat/completions"
        assert body["model"] == "vendor/model"
        assert body["temperature"] == 0.2
        assert body["messages"][0] == {"role": "system", "content": "You are"}
        assert body["messages"][1] == {"role": "user", "content": "Analyze"}
        schema = body["response_format"]["json_schema"]
        assert schema["name"] == "AnalysisResponse"
        assert "documents" in schema["schema"]["properties"]

    def test_text_request_with_model_override(self):
        client, session = _client(_chat("  Summary text \n"))

        completion = client.complete("Summarize", model="vendor/small")

        assert completion.output == "Summary text"
        body = session.post.call_args[1]["json"]
        assert body["model"] == "vendor/small"
        assert "response_format" not in body
        assert "temperature" not in body
        assert completion.usage == Usage()

    def test_empty_choices(self):
        client, _ = _client(_response(payload={"choices": []}))
        assert client.complete("x", AnalysisResponse).output is None

    def test_error_status_raises(self):
        client, session = _client(_response(status=400, text="bad request"))

        with pytest.raises(LLMError, match="400") as exc_info:
            client.complete("x")

        assert exc_info.value.status_code == 400
        assert session.post.call_count == 1

    def test_error_payload_raises(self):
        client, _ = _client(_response(payload={"error": {"message": "quota"}}))
        with pytest.raises(LLMError, match="quota"):
            client.complete("x")


class TestUsage:
    def test_from_response_without_cost(self):
        usage = Usage.from_response({"prompt_tokens": 3, "completion_tokens": "4"})
        assert usage == Usage(input_tokens=3, output_tokens=4, cost=0.0)

    def test_from_missing_payload(self):
        assert Usage.from_response(None) == Usage()

    def test_tracker_sums(self):
        tracker = UsageTracker()
        tracker.add(Usage(input_tokens=1, output_tokens=2, cost=0.5))
        tracker.add(Usage(input_tokens=3, output_tokens=4, cost=0.25))
        assert tracker.total == Usage(input_tokens=4, output_tokens=6, cost=0.75)
