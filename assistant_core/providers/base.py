"""Provider 适配器抽象接口。

ConversationEngine 不直接依赖具体厂商的 HTTP 协议，而是依赖此协议：

- 每个 Provider 家族实现一个适配器（CloudGenerativeClient / LocalInferenceClient）。
- 负责：把单轮提示词转成该家族的请求 JSON，并把响应规整为纯文本回复，
  或把失败规整为 ProviderError。

适配器之间不共享会话状态；history 只追加，用于观测，
适配器永远不会直接修改引擎的消息列表。
"""

from typing import List, Protocol

from assistant_core.domain.models import Exchange, ProviderDescriptor


class ProviderAdapter(Protocol):
    """Provider 适配器协议。

    实现者需要提供：
    - descriptor: 该适配器服务的 Provider 描述。
    - history: 成功调用的一问一答记录。
    - send_prompt(text): 发送单轮请求，返回回复文本，失败时抛出 ProviderError。
    """

    descriptor: ProviderDescriptor
    history: List[Exchange]

    async def send_prompt(self, text: str) -> str:
        ...
