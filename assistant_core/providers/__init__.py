"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 适配器抽象接口 (base)。
- 从配置构建并校验 Provider 描述 (registry)。
- 提供各 Provider 家族的具体实现 (cloud_client、local_client)。
"""

from assistant_core.config.settings import settings
from assistant_core.domain.models import CloudGenerativeDescriptor, ProviderDescriptor
from assistant_core.providers.base import ProviderAdapter
from assistant_core.providers.cloud_client import CloudGenerativeClient
from assistant_core.providers.local_client import LocalInferenceClient
from assistant_core.providers.registry import ProviderRegistry, load_providers


def create_adapter(descriptor: ProviderDescriptor, cfg=None) -> ProviderAdapter:
    """根据 Provider 家族创建适配器实例。"""

    cfg = cfg or settings
    if isinstance(descriptor, CloudGenerativeDescriptor):
        return CloudGenerativeClient(descriptor, cfg)
    return LocalInferenceClient(descriptor, cfg)


__all__ = [
    "CloudGenerativeClient",
    "LocalInferenceClient",
    "ProviderAdapter",
    "ProviderRegistry",
    "create_adapter",
    "load_providers",
]
