"""Assistant Core 顶层包。

该包提供多 Provider 对话助手的核心实现，
包括配置加载、领域模型、Provider 适配、语音输入/输出桥接、
会话引擎与本地持久化等能力。
"""

from assistant_core.engine import ConversationEngine

__all__ = ["ConversationEngine"]
