import httpx
import pytest

from chat_core.api import service
from chat_core.domain.exceptions import ApiError
from chat_core.providers.openai_client import OpenAIChatClient


class SettingsStub:
    openai_api_key = "sk-test-key"
    openai_base_url = "https://api.openai.test/v1"
    openai_model = "gpt-3.5-turbo"
    max_model_tokens = 100
    max_response_tokens = 20
    http_timeout = 1.0
    debug = False


def _client(handler, store, counter):
    return OpenAIChatClient(
        SettingsStub(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        message_store=store,
        token_counter=counter,
        system_message="",
    )


@pytest.mark.asyncio
async def test_chat_returns_plain_dict(store, word_counter):
    def handler(request):
        return httpx.Response(
            200,
            json={"id": "r1", "choices": [{"message": {"content": "pong"}}], "usage": {"total_tokens": 3}},
        )

    result = await service.chat("ping", client=_client(handler, store, word_counter))

    assert result["id"] == "r1"
    assert result["text"] == "pong"
    assert result["role"] == "assistant"
    assert result["usage"] == {"total_tokens": 3}

    stored = await service.get_message("r1", store=store)
    assert stored["text"] == "pong"
    assert await service.get_message("missing", store=store) is None


@pytest.mark.asyncio
async def test_chat_reraises_errors(store, word_counter):
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(ApiError):
        await service.chat("ping", client=_client(handler, store, word_counter))
