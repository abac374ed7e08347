"""OpenRouter API client for LLM inference."""

import logging
import os
import time
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

# OpenRouter's model suffix enabling its web search plugin
ONLINE_SUFFIX = ":online"


@dataclass
class InferenceResult:
    """Structured result from an inference call."""

    text: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: int


class OpenRouterClientError(Exception):
    """Base error for OpenRouter client."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OpenRouterClient:
    """HTTP client for OpenRouter API.

    Each call is a single attempt. A failed request surfaces immediately as
    an ``OpenRouterClientError``; re-running is the caller's decision.
    """

    def __init__(self, config: dict):
        or_config = config.get("openrouter", {})
        self.base_url = or_config.get("base_url", "https://openrouter.ai/api/v1")
        self.timeout = or_config.get("timeout", 60)

        # API key: env var takes precedence
        self.api_key = os.environ.get("OPENROUTER_API_KEY") or or_config.get("api_key")

    @property
    def is_configured(self) -> bool:
        """Check if the client has a valid API key."""
        return bool(self.api_key)

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "Agent Collaboration Hub",
        }

    def chat_completion(
        self,
        model: str,
        messages: list[dict],
        web_search: bool = False,
        **kwargs,
    ) -> InferenceResult:
        """Send a single chat completion request.

        Args:
            model: The model identifier (e.g., "anthropic/claude-haiku-4.5")
            messages: List of message dicts with "role" and "content"
            web_search: Ground the answer with live web results
            **kwargs: Additional parameters passed to the API

        Returns:
            InferenceResult with response data

        Raises:
            OpenRouterClientError: On any transport or API error
        """
        if not self.is_configured:
            raise OpenRouterClientError("OPENROUTER_API_KEY not configured")

        if web_search and not model.endswith(ONLINE_SUFFIX):
            model = f"{model}{ONLINE_SUFFIX}"

        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": model,
            "messages": messages,
            **kwargs,
        }

        try:
            start_time = time.monotonic()
            response = requests.post(
                url,
                json=payload,
                headers=self._get_headers(),
                timeout=self.timeout,
            )
            latency_ms = int((time.monotonic() - start_time) * 1000)
        except requests.exceptions.Timeout:
            raise OpenRouterClientError("Request timed out") from None
        except requests.exceptions.ConnectionError:
            raise OpenRouterClientError("Connection failed") from None
        except requests.exceptions.RequestException as e:
            raise OpenRouterClientError(f"Request failed: {e}") from e

        if response.status_code != 200:
            raise OpenRouterClientError(
                f"API error {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise OpenRouterClientError("API returned a non-JSON body") from None

        choices = data.get("choices") or [{}]
        usage = data.get("usage") or {}
        logger.debug(f"OpenRouter {model} answered in {latency_ms}ms")

        return InferenceResult(
            text=(choices[0].get("message") or {}).get("content") or "",
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            model=data.get("model", model),
            latency_ms=latency_ms,
        )

    def check_connectivity(self) -> bool:
        """Check if OpenRouter API is reachable.

        Returns:
            True if API responds, False otherwise
        """
        if not self.is_configured:
            return False

        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers=self._get_headers(),
                timeout=5,
            )
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False
