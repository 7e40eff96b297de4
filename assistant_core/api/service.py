"""对外 API 服务模块。

提供简化的函数接口供上层应用（CLI、桌面壳、Web 壳）调用。
"""

from typing import Any, Dict, List, Optional

from assistant_core.config.settings import PROVIDER_LIST_KEY, collect_provider_config, settings
from assistant_core.engine import ConversationEngine
from assistant_core.infrastructure.logging.logger import logger
from assistant_core.infrastructure.storage.chat_store import ChatStore
from assistant_core.infrastructure.storage.local_storage import FileLocalStorage
from assistant_core.infrastructure.storage.voice_store import VoiceSettingsStore
from assistant_core.providers.registry import ProviderRegistry


_chat_store: Optional[ChatStore] = None
_voice_store: Optional[VoiceSettingsStore] = None
_engine: Optional[ConversationEngine] = None


def _stores() -> None:
    global _chat_store, _voice_store
    if _chat_store is None or _voice_store is None:
        storage = FileLocalStorage(root=settings.storage_root)
        _chat_store = ChatStore(storage, max_conversations=settings.max_conversations)
        _voice_store = VoiceSettingsStore(storage)


def get_default_engine() -> ConversationEngine:
    """获取默认的会话引擎实例（单例）。"""
    global _engine
    if _engine is None:
        _stores()
        config = collect_provider_config()
        if settings.models:
            config.setdefault(PROVIDER_LIST_KEY, settings.models)
        _engine = ConversationEngine(
            registry=ProviderRegistry.load(config),
            store=_chat_store,
            conversation_id=settings.conversation_id,
            greeting=settings.greeting,
            voice_profile=_voice_store.load_or_default(),
        )
    return _engine


def _message_dict(message) -> Dict[str, Any]:
    return message.to_dict()


async def send_message(text: str) -> Optional[Dict[str, Any]]:
    """发送一条消息并返回 assistant 回复。

    Returns:
        回复消息字典；空输入或已有请求在途时返回 None。

    Raises:
        ConfigurationError: 没有可用的 Provider。
    """
    engine = get_default_engine()
    try:
        reply = await engine.send(text)
    except Exception as e:
        logger.error(f"Send failed: {e}", extra={"extra": {
            "conversation_id": engine.conversation_id,
            "provider_id": engine.active_provider_id,
            "error": str(e),
        }})
        raise
    return _message_dict(reply) if reply else None


def list_conversations() -> List[Dict[str, Any]]:
    """列出已保存的会话，最近修改的在前。"""
    get_default_engine()
    return [
        {
            "id": s.id,
            "timestamp": s.timestamp.isoformat(),
            "message_count": s.message_count,
            "preview": s.preview,
        }
        for s in _chat_store.list()
    ]


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    get_default_engine()
    messages = _chat_store.load(conversation_id) or []
    return [_message_dict(m) for m in messages]


def switch_provider(provider_id: str) -> Dict[str, Any]:
    engine = get_default_engine()
    try:
        descriptor = engine.set_active_provider(provider_id)
    except Exception as e:
        logger.error(f"Switch provider failed: {e}", extra={"extra": {
            "provider_id": provider_id,
            "error": str(e),
        }})
        raise
    return {"id": descriptor.id, "display_name": descriptor.display_name, "kind": descriptor.kind.value}


def export_conversations() -> Optional[str]:
    get_default_engine()
    return _chat_store.export_all()


def import_conversations(blob: str) -> bool:
    get_default_engine()
    return _chat_store.import_all(blob)


def get_voice_profile() -> Dict[str, Any]:
    _stores()
    return _voice_store.load_or_default().to_dict()


def update_voice_setting(field: str, value: Any) -> bool:
    """更新单个朗读配置，并同步到引擎。"""
    _stores()
    if not _voice_store.update(field, value):
        return False
    if _engine is not None:
        _engine.set_voice_profile(_voice_store.load_or_default())
    return True


def reset_service() -> None:
    """丢弃单例（测试或重新加载配置时使用）。"""
    global _chat_store, _voice_store, _engine
    _chat_store = None
    _voice_store = None
    _engine = None
