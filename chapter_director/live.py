"""Live client — HTTP connection to the Gemini generateContent endpoint.

    POST {base_url}/v1beta/models/{model}:generateContent
    x-goog-api-key: {api_key}
    body:     GenerateContentRequest (see chapter_director.wire)
    response: {"candidates": [{"content": {"parts": [{"text": "<JSON event>"}]}}]}

The first candidate's text must be a JSON-encoded NarrativeEventResponse.
Every failure surfaces as RemoteDispatchError with a reason:

    http_status        non-2xx status (status_code is set)
    no_candidates      empty or missing candidates array
    malformed_payload  body or candidate text is not what we expect
    timeout            the configured per-call timeout elapsed
    transport          connection refused, DNS failure, ...

There is no retry loop; callers decide whether to retry or fall back.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from chapter_director.errors import RemoteDispatchError
from chapter_director.models import NarrativeEventResponse
from chapter_director.prompts import PromptAssembly
from chapter_director.wire import GenerateContentResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-1.5-pro"
DEFAULT_TIMEOUT_MILLIS = 15_000
API_KEY_HEADER = "x-goog-api-key"


class LiveClientConfig(BaseModel):
    """Connection settings for the Gemini backend."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout_millis: int = Field(default=DEFAULT_TIMEOUT_MILLIS, gt=0)

    @field_validator("api_key", "model", "base_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


def _strip_fences(text: str) -> str:
    """Drop a surrounding markdown code fence, if the model added one."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


class LiveClient:
    """Async HTTP client for Gemini generateContent.

    Args:
        config: Connection settings; the timeout applies to each call
                independently of any rate-limit delay in front of it.
    """

    def __init__(self, config: LiveClientConfig) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._timeout = config.timeout_millis / 1000

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1beta/models/{self._config.model}:generateContent"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            API_KEY_HEADER: self._config.api_key,
        }

    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse:
        body = assembly.payload.model_dump(mode="json")
        logger.debug(
            "gemini call player=%s url=%s prompt_len=%d",
            assembly.request.player_state.id, self.url, len(assembly.user_prompt),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise RemoteDispatchError(
                f"Gemini request failed with status {status}",
                reason="http_status",
                status_code=status,
            ) from e
        except httpx.TimeoutException as e:
            raise RemoteDispatchError(
                f"Gemini request timed out after {self._timeout}s", reason="timeout",
            ) from e
        except httpx.HTTPError as e:
            raise RemoteDispatchError(
                f"Cannot reach Gemini at {self._base_url}: {e}", reason="transport",
            ) from e

        event = self._parse_response(resp)
        logger.debug("gemini response title=%r snippets=%d", event.title, len(event.snippets))
        return event

    def _parse_response(self, resp: httpx.Response) -> NarrativeEventResponse:
        try:
            parsed = GenerateContentResponse.model_validate(resp.json())
        except ValueError as e:
            raise RemoteDispatchError(
                "Gemini returned a malformed payload: response body is not a "
                "generateContent JSON object",
                reason="malformed_payload",
            ) from e

        if not parsed.candidates:
            raise RemoteDispatchError(
                "Gemini returned no candidates", reason="no_candidates",
            )

        text = parsed.candidates[0].first_text()
        if text is None or not text.strip():
            raise RemoteDispatchError(
                "Gemini returned a malformed payload: first candidate has no text",
                reason="malformed_payload",
            )

        try:
            return NarrativeEventResponse.model_validate_json(_strip_fences(text))
        except ValidationError as e:
            raise RemoteDispatchError(
                "Gemini returned a malformed payload: candidate text is not a "
                f"valid narrative event ({e.error_count()} errors)",
                reason="malformed_payload",
            ) from e
