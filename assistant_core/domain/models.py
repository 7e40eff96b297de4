"""统一的消息、Provider 描述与语音配置模型。

本模块定义了引擎、Provider 适配层与持久化层之间共享的标准数据结构：

- Message: 会话中的一条消息（user/assistant），带状态 final/pending/error。
- ProviderDescriptor: 启动时由配置构建的 Provider 描述，封闭的两种变体：
  CloudGenerativeDescriptor 与 LocalInferenceDescriptor。
- VoiceProfile: 朗读时使用的语速/音调/音量/音色索引。

所有模型都是不可变的 dataclass，引擎替换消息而不是原地修改，
持久化层拿到的永远是副本。
"""

import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Union


# 消息角色与状态
Role = Literal["user", "assistant"]
MessageStatus = Literal["final", "pending", "error"]

# 以启动时刻为种子的递增序列，保证进程内单调且跨重启不重复
_message_sequence = itertools.count(time.time_ns())


def new_message_id() -> str:
    """生成单调递增的消息 ID。"""

    return f"m-{next(_message_sequence)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class Message:
    """会话中的一条消息。

    - status="pending": 正在等待回复的占位消息（UI 显示为“正在输入”）。
    - status="error": Provider 调用失败后替换占位消息的错误消息。
    - provider_id / provider_label: 实际产生该回复的 Provider。
    """

    id: str
    role: Role
    text: str
    status: MessageStatus = "final"
    created_at: datetime = field(default_factory=_utcnow)
    provider_id: Optional[str] = None
    provider_label: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "status": self.status,
            "createdAt": _format_ts(self.created_at),
            "providerId": self.provider_id,
            "providerLabel": self.provider_label,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        role = data.get("role") or ("user" if data.get("isUser") else "assistant")
        status = data.get("status") or ("error" if data.get("isError") else "final")
        created = data.get("createdAt") or data.get("timestamp")
        return cls(
            id=str(data["id"]),
            role=role,
            text=data.get("text") or "",
            status=status,
            created_at=_parse_ts(created) if created else _utcnow(),
            provider_id=data.get("providerId"),
            provider_label=data.get("providerLabel"),
        )


def user_message(text: str) -> Message:
    return Message(id=new_message_id(), role="user", text=text)


def pending_message(provider_id: Optional[str] = None, provider_label: Optional[str] = None) -> Message:
    return Message(
        id=new_message_id(),
        role="assistant",
        text="",
        status="pending",
        provider_id=provider_id,
        provider_label=provider_label,
    )


class ProviderKind(str, Enum):
    """Provider 家族。"""

    CLOUD_GENERATIVE = "cloud-generative"
    LOCAL_INFERENCE = "local-inference"


@dataclass(frozen=True)
class SamplingConfig:
    """单次生成请求使用的固定采样参数。"""

    temperature: float
    top_p: float
    max_output_tokens: int
    top_k: Optional[int] = None


@dataclass(frozen=True)
class CloudGenerativeDescriptor:
    """云端生成式 API（generateContent 协议）。api_key 为必填项。"""

    id: str
    display_name: str
    api_key: str
    model_name: str
    endpoint_template: str
    sampling: SamplingConfig
    icon: Optional[str] = None
    kind: ProviderKind = ProviderKind.CLOUD_GENERATIVE

    @property
    def endpoint(self) -> str:
        return self.endpoint_template.format(model=self.model_name, api_key=self.api_key)


@dataclass(frozen=True)
class LocalInferenceDescriptor:
    """本地推理服务（OpenAI 兼容 chat/completions 协议）。model_name 为必填项。"""

    id: str
    display_name: str
    base_url: str
    model_name: str
    sampling: SamplingConfig
    api_key: Optional[str] = None
    icon: Optional[str] = None
    kind: ProviderKind = ProviderKind.LOCAL_INFERENCE

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/chat/completions"


ProviderDescriptor = Union[CloudGenerativeDescriptor, LocalInferenceDescriptor]


@dataclass(frozen=True)
class Exchange:
    """适配器内部保留的一问一答记录，仅用于观测。"""

    prompt: str
    reply: str
    created_at: datetime = field(default_factory=_utcnow)


# 朗读参数的合法范围与默认值
RATE_RANGE = (0.5, 2.0)
PITCH_RANGE = (0.5, 2.0)
VOLUME_RANGE = (0.0, 1.0)
DEFAULT_RATE = 0.95
DEFAULT_PITCH = 1.0
DEFAULT_VOLUME = 0.9


def _in_range(value: Any, bounds: tuple, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    low, high = bounds
    if not low <= value <= high:
        return default
    return float(value)


@dataclass(frozen=True)
class VoiceProfile:
    """朗读配置，独立于会话持久化。"""

    rate: float = DEFAULT_RATE
    pitch: float = DEFAULT_PITCH
    volume: float = DEFAULT_VOLUME
    selected_voice_index: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "VoiceProfile":
        """从存储的字典构建，缺失或非法字段回退到默认值。"""

        data = data or {}
        index = data.get("selectedVoiceIndex", 0)
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            index = 0
        return cls(
            rate=_in_range(data.get("rate"), RATE_RANGE, DEFAULT_RATE),
            pitch=_in_range(data.get("pitch"), PITCH_RANGE, DEFAULT_PITCH),
            volume=_in_range(data.get("volume"), VOLUME_RANGE, DEFAULT_VOLUME),
            selected_voice_index=index,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "pitch": self.pitch,
            "volume": self.volume,
            "selectedVoiceIndex": self.selected_voice_index,
        }

    def updated(self, **changes: Any) -> "VoiceProfile":
        """返回修改后的副本，非法取值同样回退到默认值。"""

        merged = {**self.to_dict(), **_camel_keys(changes)}
        return VoiceProfile.from_dict(merged)


_FIELD_ALIASES = {"selected_voice_index": "selectedVoiceIndex"}


def _camel_keys(changes: Mapping[str, Any]) -> Dict[str, Any]:
    return {_FIELD_ALIASES.get(k, k): v for k, v in changes.items()}

