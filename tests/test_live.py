"""Tests for chapter_director.live — LiveClient against a mocked Gemini endpoint."""

import json

import httpx
import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock, patch

from chapter_director.errors import RemoteDispatchError
from chapter_director.live import LiveClient, LiveClientConfig
from chapter_director.models import NarrativeEventResponse
from chapter_director.prompts import PromptAssembly


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _candidates(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


EVENT_JSON = json.dumps({
    "world_event_title": "A Tiny Triumph",
    "world_event_summary": "Jalmar finds a glimmering seed.",
    "snippets": [{
        "id": "snippet-1",
        "event_text": "A chance discovery.",
        "choice_options": ["Pocket it", "Share it", "Ignore it"],
        "consequences": {"Pocket it": {"add_choice_tags": ["gain_seed"]}},
        "conditions": {},
    }],
})


@pytest.fixture
def client() -> LiveClient:
    return LiveClient(LiveClientConfig(api_key="test-key", model="gemini-test"))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestLiveClientSuccess:
    async def test_returns_decoded_event(
        self, client: LiveClient, assembly: PromptAssembly, sample_event: NarrativeEventResponse,
    ) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_candidates(EVENT_JSON)))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.generate(assembly)
        assert result == sample_event

    async def test_posts_to_generate_content_url(
        self, client: LiveClient, assembly: PromptAssembly,
    ) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_candidates(EVENT_JSON)))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.generate(assembly)
        url = mock_post.call_args[0][0]
        assert url == (
            "https://generativelanguage.googleapis.com"
            "/v1beta/models/gemini-test:generateContent"
        )

    async def test_sends_api_key_header(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_candidates(EVENT_JSON)))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.generate(assembly)
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["x-goog-api-key"] == "test-key"
        assert headers["Content-Type"] == "application/json"

    async def test_body_is_assembled_payload(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_candidates(EVENT_JSON)))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.generate(assembly)
        body = mock_post.call_args.kwargs["json"]
        assert body == assembly.payload.model_dump(mode="json")
        assert body["system_instruction"]["parts"][0]["text"] == assembly.system_prompt
        assert body["contents"][0]["role"] == "user"
        assert body["contents"][0]["parts"][0]["text"] == assembly.user_prompt

    async def test_accepts_fenced_json(self, client: LiveClient, assembly: PromptAssembly) -> None:
        fenced = f"```json\n{EVENT_JSON}\n```"
        mock_post = AsyncMock(return_value=_mock_response(_candidates(fenced)))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.generate(assembly)
        assert result.title == "A Tiny Triumph"

    async def test_custom_base_url_trailing_slash(self, assembly: PromptAssembly) -> None:
        client = LiveClient(LiveClientConfig(api_key="k", base_url="http://localhost:9000/"))
        mock_post = AsyncMock(return_value=_mock_response(_candidates(EVENT_JSON)))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.generate(assembly)
        assert mock_post.call_args[0][0] == (
            "http://localhost:9000/v1beta/models/gemini-1.5-pro:generateContent"
        )


# ---------------------------------------------------------------------------
# Failures: every one surfaces as RemoteDispatchError with a reason
# ---------------------------------------------------------------------------

class TestLiveClientFailures:
    async def test_http_error_status(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"error": "denied"}, status=401))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "http_status"
        assert exc_info.value.status_code == 401
        assert "401" in str(exc_info.value)

    async def test_empty_candidates(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"candidates": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError, match="no candidates") as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "no_candidates"

    async def test_missing_candidates(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "no_candidates"

    async def test_candidate_text_not_json(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_candidates("Once upon a time...")))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError, match="malformed") as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "malformed_payload"

    async def test_candidate_json_wrong_shape(self, client: LiveClient, assembly: PromptAssembly) -> None:
        text = json.dumps({"world_event_title": "   ", "snippets": []})
        mock_post = AsyncMock(return_value=_mock_response(_candidates(text)))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "malformed_payload"

    async def test_candidate_without_text(self, client: LiveClient, assembly: PromptAssembly) -> None:
        body = {"candidates": [{"finishReason": "SAFETY"}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "malformed_payload"

    async def test_body_not_json(self, client: LiveClient, assembly: PromptAssembly) -> None:
        resp = _mock_response(None)
        resp.json.side_effect = ValueError("Expecting value")
        mock_post = AsyncMock(return_value=resp)
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "malformed_payload"

    async def test_body_wrong_type(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(return_value=_mock_response(["not", "an", "object"]))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError) as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "malformed_payload"

    async def test_timeout(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("too slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError, match="timed out") as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "timeout"

    async def test_connection_refused(self, client: LiveClient, assembly: PromptAssembly) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(RemoteDispatchError, match="Cannot reach") as exc_info:
                await client.generate(assembly)
        assert exc_info.value.reason == "transport"
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestLiveClientConfig:
    def test_defaults(self) -> None:
        config = LiveClientConfig(api_key="k")
        assert config.model == "gemini-1.5-pro"
        assert config.base_url == "https://generativelanguage.googleapis.com"
        assert config.timeout_millis == 15_000

    def test_strips_whitespace(self) -> None:
        assert LiveClientConfig(api_key="  k  ").api_key == "k"

    def test_blank_api_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LiveClientConfig(api_key="   ")

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LiveClientConfig(api_key="k", timeout_millis=0)
