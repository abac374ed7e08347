"""Tests for the structured inference service."""

from unittest.mock import MagicMock

import pytest

from collab_hub.services.inference_service import (
    InferenceService,
    InferenceServiceError,
    check_schema,
    parse_json_object,
)
from collab_hub.services.openrouter_client import InferenceResult, OpenRouterClientError
from collab_hub.services.prompt_registry import RESULT_SCHEMA


@pytest.fixture
def config():
    return {"openrouter": {"models": {"collaboration": "anthropic/claude-haiku-4.5"}}}


@pytest.fixture
def client():
    mock = MagicMock()
    mock.is_configured = True
    return mock


def _result(text):
    return InferenceResult(
        text=text, input_tokens=1, output_tokens=1, model="m", latency_ms=5,
    )


class TestParseJsonObject:

    def test_plain_object(self):
        assert parse_json_object('{"title": "x"}') == {"title": "x"}

    def test_fenced_object(self):
        assert parse_json_object('```json\n{"title": "x"}\n```') == {"title": "x"}

    def test_invalid_json(self):
        with pytest.raises(InferenceServiceError, match="invalid JSON"):
            parse_json_object("not json at all")

    def test_array_is_wrong_shape(self):
        with pytest.raises(InferenceServiceError, match="expected an object"):
            parse_json_object("[1, 2]")


class TestCheckSchema:

    def test_accepts_matching_result(self):
        check_schema({"title": "t", "recommendations": ["a"]}, RESULT_SCHEMA)

    def test_missing_optional_keys_are_fine(self):
        check_schema({}, RESULT_SCHEMA)

    def test_wrong_type_rejected(self):
        with pytest.raises(InferenceServiceError, match="recommendations"):
            check_schema({"recommendations": "do things"}, RESULT_SCHEMA)

    def test_required_keys_enforced(self):
        with pytest.raises(InferenceServiceError, match="missing"):
            check_schema({}, {"required": ["title"], "properties": {}})


class TestInfer:

    def test_returns_parsed_result(self, config, client):
        client.chat_completion.return_value = _result('{"title": "Plan", "summary": "s"}')
        service = InferenceService(config, client=client)

        assert service.infer("prompt", RESULT_SCHEMA) == {"title": "Plan", "summary": "s"}
        args, kwargs = client.chat_completion.call_args
        assert args[0] == "anthropic/claude-haiku-4.5"
        assert args[1][-1] == {"role": "user", "content": "prompt"}
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["web_search"] is False

    def test_web_search_passed_through(self, config, client):
        client.chat_completion.return_value = _result("{}")
        InferenceService(config, client=client).infer("p", RESULT_SCHEMA, web_search=True)
        assert client.chat_completion.call_args[1]["web_search"] is True

    def test_client_error_becomes_service_error(self, config, client):
        client.chat_completion.side_effect = OpenRouterClientError("API error 500", status_code=500)
        with pytest.raises(InferenceServiceError) as exc:
            InferenceService(config, client=client).infer("p", RESULT_SCHEMA)
        assert exc.value.status_code == 500

    def test_no_model_configured(self, client):
        with pytest.raises(InferenceServiceError, match="No model"):
            InferenceService({}, client=client).infer("p", RESULT_SCHEMA)

    def test_is_available_follows_client(self, config, client):
        client.is_configured = False
        assert InferenceService(config, client=client).is_available is False
