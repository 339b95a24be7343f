"""
Provider request builders.

Turns a compiled JSON Schema and a user prompt into the HTTP request a given
LLM provider expects for structured output. Nothing here sends a request; the
result is meant for display (for example as a cURL command).
"""

import json
import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant designed to output JSON data strictly "
    "according to the provided JSON schema."
)
RESPONSE_SCHEMA_NAME = 'generated_schema'


@dataclass
class LLMRequest:
    """Endpoint, headers and JSON body of a provider request."""
    endpoint: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)


def _messages(prompt: str):
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def _json_schema_response_format(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": RESPONSE_SCHEMA_NAME,
            "strict": True,
            "schema": schema,
        },
    }


def _chat_completions_request(endpoint: str, model: str, placeholder_key: str):
    """Build a strategy for an OpenAI-compatible chat completions API."""

    def build(schema: Dict[str, Any], prompt: str, api_key: Optional[str]) -> LLMRequest:
        return LLMRequest(
            endpoint=endpoint,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {api_key or placeholder_key}",
            },
            body={
                "model": model,
                "messages": _messages(prompt),
                "response_format": _json_schema_response_format(schema),
            },
        )

    return build


def _gemini_request(schema: Dict[str, Any], prompt: str, api_key: Optional[str]) -> LLMRequest:
    # Gemini takes the key as a query parameter and the schema inline in the prompt
    schema_text = json.dumps(schema, indent=2, ensure_ascii=False)
    return LLMRequest(
        endpoint=(
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"gemini-pro:generateContent?key={api_key or 'YOUR_GEMINI_API_KEY'}"
        ),
        headers={"Content-Type": "application/json"},
        body={
            "contents": [
                {"role": "user", "parts": [{"text": f"{prompt}\n\nHere is the schema:\n\n{schema_text}"}]},
            ],
            "generationConfig": {"responseMimeType": "application/json"},
        },
    )


def _openrouter_request(schema: Dict[str, Any], prompt: str, api_key: Optional[str]) -> LLMRequest:
    request = _chat_completions_request(
        "https://openrouter.ai/api/v1/chat/completions", "openai/o4-mini", "YOUR_OPENROUTER_API_KEY"
    )(schema, prompt, api_key)
    request.headers["HTTP-Referer"] = "YOUR_APP_URL"
    return request


PROVIDERS: Dict[str, Callable[[Dict[str, Any], str, Optional[str]], LLMRequest]] = {
    'openai': _chat_completions_request(
        "https://api.openai.com/v1/chat/completions", "gpt-4o", "YOUR_OPENAI_API_KEY"
    ),
    'gemini': _gemini_request,
    'mistral': _chat_completions_request(
        "https://api.mistral.ai/v1/chat/completions", "mistral-large-latest", "YOUR_MISTRAL_API_KEY"
    ),
    'openrouter': _openrouter_request,
}


def build_request(provider: str, schema: Dict[str, Any], prompt: str,
                  api_key: Optional[str] = None) -> LLMRequest:
    """
    Build the structured-output request for a provider.

    Args:
        provider: One of the PROVIDERS keys
        schema: Compiled JSON Schema document
        prompt: User prompt
        api_key: API key; a placeholder is used when empty

    Returns:
        LLMRequest for the provider

    Raises:
        ValueError: If the provider is unknown
    """
    builder = PROVIDERS.get(provider)
    if builder is None:
        raise ValueError(f"Unknown LLM provider '{provider}'. Supported providers: {sorted(PROVIDERS)}")
    logger.debug(f"Building {provider} request")
    return builder(schema, prompt, api_key)


def to_curl(request: LLMRequest) -> str:
    """Render a request as a multi-line cURL command."""
    parts = [f"curl -X POST {shlex.quote(request.endpoint)}"]
    for key, value in request.headers.items():
        parts.append(f"-H {shlex.quote(f'{key}: {value}')}")
    parts.append(f"-d {shlex.quote(json.dumps(request.body, indent=2, ensure_ascii=False))}")
    return " \\\n  ".join(parts)
