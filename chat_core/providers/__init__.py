"""对话 Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base) 与扩展点 (hooks)。
- 维护 Provider 与模型配置 (registry)。
- 超时与取消 (cancellation)。
- 具体实现：openai_client（官方 chat completions）、proxy_client（网页版反向代理）。
"""

from typing import Literal, Optional, get_args

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers.base import ProviderClient
from chat_core.providers.openai_client import OpenAIChatClient
from chat_core.providers.proxy_client import ProxyChatClient


DefaultProviderName = Literal["openai", "proxy"]


def create_provider(name: Optional[DefaultProviderName] = None, **opts) -> ProviderClient:
    """根据名称创建客户端实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "openai")).lower()
    if provider_name not in get_args(DefaultProviderName):
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name!r}")
    if provider_name == "proxy":
        return ProxyChatClient(settings, **opts)
    return OpenAIChatClient(settings, **opts)
