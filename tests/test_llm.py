"""Tests for the LLM transport layer."""

from unittest.mock import AsyncMock, Mock, call, patch

import pytest
import requests

from contui.llm.base import LLMResponse, Message, is_finished
from contui.llm.manager import LLMManager
from contui.llm.providers import GeminiProvider
from contui.utils.config import LLMConfig
from contui.utils.errors import RateLimitError, TransportError


def gemini_reply(*texts):
    return {
        "candidates": [
            {"content": {"parts": [{"text": text}]}, "finishReason": "STOP"} for text in texts
        ],
        "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 5, "totalTokenCount": 8},
    }


def http_response(status_code, body=None, text=""):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    response.json.return_value = body
    return response


@pytest.fixture
def provider():
    return GeminiProvider(api_key="test-key", model="gemini-test")


@pytest.fixture
def scripted_manager():
    """Manager whose provider raises or returns the given outcomes in order."""
    def _create(*outcomes, max_retries=3):
        provider = Mock()
        provider.name = "scripted"
        provider.generate_response = AsyncMock(side_effect=list(outcomes))
        config = LLMConfig(api_key="test-key", max_retries=max_retries)
        return LLMManager(config, provider=provider), provider

    return _create


class TestGeminiPayload:

    def test_system_prompt_and_roles(self, provider):
        payload = provider.build_payload([
            Message(role="system", content="be brief"),
            Message(role="user", content="hi"),
            Message(role="assistant", content="hello"),
            Message(role="user", content="list files"),
        ], temperature=0.2, max_tokens=50)

        assert payload["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert [turn["role"] for turn in payload["contents"]] == ["user", "model", "user"]
        assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 50}

    def test_consecutive_turns_are_merged(self, provider):
        payload = provider.build_payload([
            Message(role="user", content="one"),
            Message(role="user", content="two"),
        ])

        assert payload["contents"] == [{"role": "user", "parts": [{"text": "one"}, {"text": "two"}]}]
        assert "systemInstruction" not in payload


class TestGeminiResponse:

    async def test_first_candidate_is_content(self, provider):
        with patch.object(provider, "_post", return_value=http_response(200, gemini_reply("a", "b"))):
            response = await provider.generate_response([Message(role="user", content="hi")])

        assert response.content == "a"
        assert response.candidates == ["a", "b"]
        assert response.usage["total_tokens"] == 8
        assert response.finish_reason == "stop"

    async def test_429_is_rate_limit(self, provider):
        with patch.object(provider, "_post", return_value=http_response(429, text="slow down")):
            with pytest.raises(RateLimitError) as exc_info:
                await provider.generate_response([Message(role="user", content="hi")])

        assert exc_info.value.status_code == 429

    async def test_other_status_is_transport_error(self, provider):
        with patch.object(provider, "_post", return_value=http_response(500, text="boom")):
            with pytest.raises(TransportError) as exc_info:
                await provider.generate_response([Message(role="user", content="hi")])

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 500

    async def test_network_failure_is_transport_error(self, provider):
        with patch.object(provider, "_post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(TransportError):
                await provider.generate_response([Message(role="user", content="hi")])

    def test_no_candidates(self, provider):
        with pytest.raises(TransportError):
            provider.parse_response({"candidates": []})

    async def test_missing_api_key(self):
        with pytest.raises(TransportError):
            await GeminiProvider(api_key=None).initialize()


class TestRetryPolicy:

    async def test_retries_rate_limits_with_linear_backoff(self, scripted_manager):
        ok = LLMResponse(content="done")
        manager, provider = scripted_manager(RateLimitError("429"), RateLimitError("429"), ok)

        with patch("contui.llm.manager.asyncio.sleep", new_callable=AsyncMock) as sleep:
            response = await manager.generate_response([Message(role="user", content="hi")])

        assert response.content == "done"
        assert provider.generate_response.await_count == 3
        assert sleep.await_args_list == [call(1.0), call(2.0)]

    async def test_third_rate_limit_propagates(self, scripted_manager):
        manager, provider = scripted_manager(*[RateLimitError("429")] * 3)

        with patch("contui.llm.manager.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(RateLimitError):
                await manager.generate_response([Message(role="user", content="hi")])

        assert provider.generate_response.await_count == 3
        assert sleep.await_count == 2

    async def test_other_errors_are_not_retried(self, scripted_manager):
        manager, provider = scripted_manager(TransportError("500", status_code=500))

        with patch("contui.llm.manager.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(TransportError):
                await manager.generate_response([Message(role="user", content="hi")])

        assert provider.generate_response.await_count == 1
        sleep.assert_not_awaited()

    async def test_chat_sends_system_context_and_message(self, scripted_manager):
        manager, provider = scripted_manager(LLMResponse(content="reply"))
        context = [Message(role="user", content="earlier"), Message(role="assistant", content="noted")]

        assert await manager.chat("now", context) == "reply"

        messages = provider.generate_response.await_args.args[0]
        assert messages[0].role == "system"
        assert [m.content for m in messages[1:]] == ["earlier", "noted", "now"]

    async def test_unknown_provider(self):
        manager = LLMManager(LLMConfig(provider="nope", api_key="k"))

        with pytest.raises(TransportError):
            await manager.initialize()


class TestIsFinished:

    @pytest.mark.parametrize("text", [
        "All done.\nSTATUS: COMPLETE",
        "**STATUS:** complete",
        "The task is complete.",
        "タスクは完了しました",
    ])
    def test_finished(self, text):
        assert is_finished(text)

    @pytest.mark.parametrize("text", [
        "Created the file.\nSTATUS: CONTINUE",
        "Let me read the file first.",
        "",
    ])
    def test_not_finished(self, text):
        assert not is_finished(text)

    def test_last_status_line_wins(self):
        assert not is_finished("STATUS: COMPLETE\n...actually more to do\nSTATUS: CONTINUE")
        assert LLMManager.is_finished("STATUS: CONTINUE\nSTATUS: COMPLETE")
