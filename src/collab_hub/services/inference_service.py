"""Inference backend: prompt + schema in, parsed JSON object out."""

import json
import logging
import re

from .openrouter_client import OpenRouterClient, OpenRouterClientError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_JSON_TYPES = {
    "string": str,
    "object": dict,
    "array": list,
    "number": (int, float),
    "integer": int,
    "boolean": bool,
}


class InferenceServiceError(Exception):
    """Error from the inference service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def parse_json_object(text: str) -> dict:
    """Parse a model reply into a JSON object, tolerating a code fence."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match:
        stripped = match.group(1)
    try:
        value = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise InferenceServiceError(f"Model returned invalid JSON: {e.msg}") from e
    if not isinstance(value, dict):
        raise InferenceServiceError(
            f"Model returned {type(value).__name__}, expected an object"
        )
    return value


def check_schema(value: dict, schema: dict) -> None:
    """Shallow check of a result against a JSON-schema-like dict.

    Only ``required`` and top-level property types are enforced. Properties
    the model left out are fine unless required.
    """
    missing = [key for key in schema.get("required", []) if key not in value]
    if missing:
        raise InferenceServiceError(f"Result missing required keys: {missing}")
    for key, spec in schema.get("properties", {}).items():
        expected = _JSON_TYPES.get(spec.get("type"))
        if key in value and value[key] is not None and expected:
            if not isinstance(value[key], expected):
                raise InferenceServiceError(
                    f"Result key '{key}' should be {spec['type']}, "
                    f"got {type(value[key]).__name__}"
                )


class InferenceService:
    """Structured inference over OpenRouter chat completions."""

    def __init__(self, config: dict, client: OpenRouterClient | None = None):
        self.config = config
        self.client = client or OpenRouterClient(config)
        or_config = config.get("openrouter", {})
        self.models = or_config.get("models", {})

    @property
    def is_available(self) -> bool:
        """Check if the service is operational (API key configured)."""
        return self.client.is_configured

    def get_model(self, purpose: str = "collaboration") -> str:
        model = self.models.get(purpose)
        if not model:
            raise InferenceServiceError(f"No model configured for '{purpose}'")
        return model

    def infer(self, prompt: str, schema: dict, web_search: bool = False) -> dict:
        """Run a prompt and return the parsed object matching ``schema``.

        Raises:
            InferenceServiceError: unconfigured key, transport or API failure,
                non-JSON reply, or a reply of the wrong shape.
        """
        model = self.get_model()
        messages = [
            {
                "role": "system",
                "content": (
                    "Reply with a single JSON object matching this schema and "
                    "nothing else:\n" + json.dumps(schema)
                ),
            },
            {"role": "user", "content": prompt},
        ]

        try:
            result = self.client.chat_completion(
                model,
                messages,
                web_search=web_search,
                response_format={"type": "json_object"},
            )
        except OpenRouterClientError as e:
            logger.warning(f"Inference call failed: {e}")
            raise InferenceServiceError(str(e), status_code=e.status_code) from e

        logger.info(
            f"Inference complete: model={result.model} "
            f"tokens={result.input_tokens}/{result.output_tokens} "
            f"latency={result.latency_ms}ms"
        )
        value = parse_json_object(result.text)
        check_schema(value, schema)
        return value
