"""Unit tests for OpenRouter API client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from collab_hub.services.openrouter_client import (
    InferenceResult,
    OpenRouterClient,
    OpenRouterClientError,
)


@pytest.fixture
def config():
    return {
        "openrouter": {
            "base_url": "https://openrouter.ai/api/v1",
            "timeout": 10,
        },
    }


@pytest.fixture
def client_with_key(config):
    with patch.dict("os.environ", {"OPENROUTER_API_KEY": "test-key-123"}):
        return OpenRouterClient(config)


def _response(status_code=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    response.text = text
    return response


class TestOpenRouterClientInit:

    def test_is_configured_with_env_key(self, client_with_key):
        assert client_with_key.is_configured is True

    def test_is_not_configured_without_key(self, config):
        with patch.dict("os.environ", {}, clear=True):
            assert OpenRouterClient(config).is_configured is False

    def test_env_key_takes_precedence(self):
        config = {"openrouter": {"api_key": "config-key"}}
        with patch.dict("os.environ", {"OPENROUTER_API_KEY": "env-key"}):
            assert OpenRouterClient(config).api_key == "env-key"

    def test_falls_back_to_config_key(self):
        config = {"openrouter": {"api_key": "config-key"}}
        with patch.dict("os.environ", {}, clear=True):
            assert OpenRouterClient(config).api_key == "config-key"


class TestChatCompletion:

    def test_successful_call(self, client_with_key):
        body = {
            "choices": [{"message": {"content": "Hello world"}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
            "model": "anthropic/claude-haiku-4.5",
        }
        with patch("collab_hub.services.openrouter_client.requests.post",
                   return_value=_response(body=body)) as mock_post:
            result = client_with_key.chat_completion(
                "anthropic/claude-haiku-4.5", [{"role": "user", "content": "Hi"}]
            )

        assert isinstance(result, InferenceResult)
        assert result.text == "Hello world"
        assert result.input_tokens == 10
        assert result.output_tokens == 5
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer test-key-123"

    def test_web_search_uses_online_model(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.post",
                   return_value=_response(body={"choices": [{"message": {"content": "{}"}}]})) as mock_post:
            client_with_key.chat_completion("some/model", [], web_search=True)
        assert mock_post.call_args[1]["json"]["model"] == "some/model:online"

    def test_extra_kwargs_forwarded(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.post",
                   return_value=_response(body={"choices": [{"message": {"content": "{}"}}]})) as mock_post:
            client_with_key.chat_completion("m", [], response_format={"type": "json_object"})
        assert mock_post.call_args[1]["json"]["response_format"] == {"type": "json_object"}

    def test_unconfigured_raises(self, config):
        with patch.dict("os.environ", {}, clear=True):
            client = OpenRouterClient(config)
        with pytest.raises(OpenRouterClientError):
            client.chat_completion("m", [])

    def test_http_error_raises_once(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.post",
                   return_value=_response(status_code=503, text="unavailable")) as mock_post:
            with pytest.raises(OpenRouterClientError) as exc:
                client_with_key.chat_completion("m", [])
        assert exc.value.status_code == 503
        assert mock_post.call_count == 1

    def test_timeout_raises(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.post",
                   side_effect=requests.exceptions.Timeout()):
            with pytest.raises(OpenRouterClientError, match="timed out"):
                client_with_key.chat_completion("m", [])

    def test_connection_error_raises(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.post",
                   side_effect=requests.exceptions.ConnectionError()):
            with pytest.raises(OpenRouterClientError, match="Connection failed"):
                client_with_key.chat_completion("m", [])


class TestCheckConnectivity:

    def test_reachable(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.get",
                   return_value=_response()):
            assert client_with_key.check_connectivity() is True

    def test_unreachable(self, client_with_key):
        with patch("collab_hub.services.openrouter_client.requests.get",
                   side_effect=requests.exceptions.ConnectionError()):
            assert client_with_key.check_connectivity() is False
