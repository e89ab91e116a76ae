from typing import get_args

import pytest

from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers import DefaultProviderName, create_provider
from chat_core.providers.openai_client import OpenAIChatClient
from chat_core.providers.proxy_client import ProxyChatClient
from chat_core.providers.registry import get_provider_config


class DummySettings:
    default_provider = "openai"
    openai_api_key = "sk-dummy-key"
    openai_base_url = "https://api.openai.com/v1"
    openai_model = "gpt-3.5-turbo"
    proxy_access_token = "token-dummy-123"
    proxy_url = "https://proxy.test/api/conversation"
    proxy_model = "text-davinci-002-render-sha"
    max_model_tokens = 4000
    max_response_tokens = 1000
    http_timeout = 1.0
    debug = False


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenAIChatClient)
    assert provider.api_key == "sk-dummy-key"


def test_create_provider_explicit(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider("proxy")
    assert isinstance(provider, ProxyChatClient)


def test_registry_lookup_is_case_insensitive():
    cfg = get_provider_config("OpenAI")
    assert cfg.base_url == "https://api.openai.com/v1"
    params = cfg.model("gpt-3.5-turbo").completion_params()
    assert params == {"model": "gpt-3.5-turbo", "temperature": 0.8, "top_p": 1.0, "presence_penalty": 1.0}


def test_create_provider_name_is_case_insensitive(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    assert isinstance(create_provider("PROXY"), ProxyChatClient)


def test_create_provider_unknown_name(monkeypatch):
    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    with pytest.raises(ConfigurationError) as exc_info:
        create_provider("kimi")
    assert exc_info.value.code == "UNKNOWN_PROVIDER"
    assert get_args(DefaultProviderName) == ("openai", "proxy")
