"""Provider 注册表。

本模块把扁平的配置键值（见 config.settings.collect_provider_config）
校验并转换成不可变的 ProviderDescriptor：

- 每个声明的 id 读取 TYPE / NAME，以及该家族的必填字段
  （cloud-generative 需要 API_KEY，local-inference 需要 MODEL）。
- 缺少必填字段的 Provider 会被整体排除并记录诊断日志，而不是部分注册；
  注册表因此可能只剩更少的 Provider，甚至为空。

注册表构建后不再变化，"当前激活的 Provider" 由 ConversationEngine 持有。"""

import logging
from typing import Dict, Iterator, List, Mapping, Optional

from assistant_core.config.settings import PROVIDER_LIST_KEY, provider_key
from assistant_core.domain.exceptions import ConfigurationError
from assistant_core.domain.models import (
    CloudGenerativeDescriptor,
    LocalInferenceDescriptor,
    ProviderDescriptor,
    ProviderKind,
    SamplingConfig,
)
from assistant_core.infrastructure.logging.logger import log_event


# 云端生成式 API 的固定采样参数
CLOUD_SAMPLING = SamplingConfig(temperature=0.9, top_p=0.95, max_output_tokens=1024, top_k=40)
# 本地推理服务的固定采样参数
LOCAL_SAMPLING = SamplingConfig(temperature=0.7, top_p=0.95, max_output_tokens=1024)

DEFAULT_CLOUD_MODEL = "gemini-2.5-flash"
DEFAULT_CLOUD_ENDPOINT = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={api_key}"
)
DEFAULT_LOCAL_BASE_URL = "http://localhost:1234"

KIND_ALIASES: Mapping[str, ProviderKind] = {
    "cloud-generative": ProviderKind.CLOUD_GENERATIVE,
    "cloud": ProviderKind.CLOUD_GENERATIVE,
    "gemini": ProviderKind.CLOUD_GENERATIVE,
    "local-inference": ProviderKind.LOCAL_INFERENCE,
    "local": ProviderKind.LOCAL_INFERENCE,
    "lmstudio": ProviderKind.LOCAL_INFERENCE,
}


def declared_ids(config: Mapping[str, str]) -> List[str]:
    """按声明顺序返回去重后的小写 Provider id。"""

    ids: List[str] = []
    for raw in (config.get(PROVIDER_LIST_KEY) or "").split(","):
        pid = raw.strip().lower()
        if pid and pid not in ids:
            ids.append(pid)
    return ids


def _field(config: Mapping[str, str], pid: str, name: str) -> Optional[str]:
    value = config.get(provider_key(pid, name))
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(config: Mapping[str, str], pid: str, name: str) -> str:
    value = _field(config, pid, name)
    if value is None:
        raise ConfigurationError(
            code=f"MISSING_{name}",
            message=f"{provider_key(pid, name)} not set",
            provider_id=pid,
        )
    return value


def build_descriptor(pid: str, config: Mapping[str, str]) -> ProviderDescriptor:
    """构建单个 Provider 描述，任何必填字段缺失都会抛出 ConfigurationError。"""

    kind_raw = _require(config, pid, "TYPE")
    kind = KIND_ALIASES.get(kind_raw.lower())
    if kind is None:
        raise ConfigurationError(
            code="UNKNOWN_TYPE",
            message=f"Unknown provider type {kind_raw!r}",
            provider_id=pid,
        )
    name = _require(config, pid, "NAME")
    icon = _field(config, pid, "ICON")

    if kind is ProviderKind.CLOUD_GENERATIVE:
        descriptor = CloudGenerativeDescriptor(
            id=pid,
            display_name=name,
            api_key=_require(config, pid, "API_KEY"),
            model_name=_field(config, pid, "MODEL") or DEFAULT_CLOUD_MODEL,
            endpoint_template=_field(config, pid, "API_URL") or DEFAULT_CLOUD_ENDPOINT,
            sampling=CLOUD_SAMPLING,
            icon=icon,
        )
        try:
            descriptor.endpoint
        except (KeyError, IndexError, ValueError):
            raise ConfigurationError(
                code="INVALID_API_URL",
                message=f"Bad endpoint template {descriptor.endpoint_template!r}",
                provider_id=pid,
            )
        return descriptor

    return LocalInferenceDescriptor(
        id=pid,
        display_name=name,
        base_url=_field(config, pid, "API_URL") or DEFAULT_LOCAL_BASE_URL,
        model_name=_require(config, pid, "MODEL"),
        sampling=LOCAL_SAMPLING,
        api_key=_field(config, pid, "API_KEY"),
        icon=icon,
    )


def load_providers(config: Mapping[str, str]) -> Dict[str, ProviderDescriptor]:
    """加载全部声明的 Provider，无效的 Provider 被排除而不是中断启动。"""

    descriptors: Dict[str, ProviderDescriptor] = {}
    for pid in declared_ids(config):
        try:
            descriptors[pid] = build_descriptor(pid, config)
        except ConfigurationError as e:
            log_event(
                logging.WARNING,
                "Provider excluded",
                {"component": "registry"},
                provider_id=pid,
                code=e.code,
                reason=e.message,
            )
    return descriptors


class ProviderRegistry:
    """启动时构建的只读 Provider 集合。"""

    def __init__(self, descriptors: Mapping[str, ProviderDescriptor]):
        self._descriptors: Dict[str, ProviderDescriptor] = dict(descriptors)

    @classmethod
    def load(cls, config: Mapping[str, str]) -> "ProviderRegistry":
        return cls(load_providers(config))

    @property
    def default_id(self) -> Optional[str]:
        """第一个注册成功的 Provider，注册表为空时为 None。"""

        return next(iter(self._descriptors), None)

    def ids(self) -> List[str]:
        return list(self._descriptors)

    def get(self, provider_id: str) -> ProviderDescriptor:
        """根据 id 获取 Provider，名称不区分大小写。"""

        key = provider_id.strip().lower()
        if key not in self._descriptors:
            raise ConfigurationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_id!r}")
        return self._descriptors[key]

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.strip().lower() in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(list(self._descriptors.values()))
