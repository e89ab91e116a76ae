"""Provider 与模型配置。

集中记录两种接入方式的默认端点，以及 chat completions 请求里
模型参数（temperature/top_p/presence_penalty）的默认值。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping


@dataclass
class ModelConfig:
    """单个模型的默认请求参数。"""

    provider_model: str
    default_temperature: float = 0.8
    top_p: float = 1.0
    presence_penalty: float = 1.0

    def completion_params(self) -> Dict[str, Any]:
        return {
            "model": self.provider_model,
            "temperature": self.default_temperature,
            "top_p": self.top_p,
            "presence_penalty": self.presence_penalty,
        }


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    default_model: str
    models: Dict[str, ModelConfig] = field(default_factory=dict)

    def model(self, name: str) -> ModelConfig:
        return self.models.get(name) or ModelConfig(provider_model=name)


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    default_model="gpt-3.5-turbo",
    models={
        "gpt-3.5-turbo": ModelConfig(provider_model="gpt-3.5-turbo"),
    },
)

PROXY_CONFIG = ProviderConfig(
    name="proxy",
    base_url="https://bypass.duti.tech/api/conversation",
    default_model="text-davinci-002-render-sha",
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
    "proxy": PROXY_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
