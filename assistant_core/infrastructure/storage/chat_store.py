"""会话持久化。

所有会话保存在同一个存储键下，结构为
conversationId -> {id, messages, timestamp, messageCount}。

save 每次都会重新读取完整集合、写入当前会话、按修改时间倒序排序并截断到
max_conversations，再整体写回；因此重复调用是幂等的，存储规模也是确定的。
存储中的数据损坏时按空集合处理，不会中断调用方。
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from assistant_core.domain.conversation import Conversation, ConversationSummary
from assistant_core.domain.exceptions import StorageError
from assistant_core.domain.models import Message
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.infrastructure.storage.local_storage import KeyValueStorage

CHAT_STORAGE_KEY = "ai_assistant_chat_history"
MAX_CONVERSATIONS = 20
PREVIEW_LENGTH = 50

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _message_count(entry: Dict[str, Any], messages: List[Any]) -> int:
    count = entry.get("messageCount")
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        return len(messages)
    return count


def _valid_messages(entry: Any) -> bool:
    """messages 必须是由带 id 的对象组成的列表。"""

    if not isinstance(entry, dict) or not isinstance(entry.get("messages"), list):
        return False
    return all(isinstance(m, dict) and "id" in m for m in entry["messages"])


def _entry_time(entry: Dict[str, Any]) -> datetime:
    try:
        ts = datetime.fromisoformat(str(entry.get("timestamp")).replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class ChatStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        max_conversations: int = MAX_CONVERSATIONS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage
        self._max = max(1, max_conversations)
        self._clock = clock or _utcnow
        self._log_ctx = {"component": "chat_store", "key": CHAT_STORAGE_KEY}

    @property
    def max_conversations(self) -> int:
        return self._max

    def save(self, conversation_id: str, messages: Sequence[Message]) -> bool:
        try:
            conversations = self._read_all()
            entry = {
                "id": conversation_id,
                "messages": [m.to_dict() for m in messages],
                "timestamp": self._clock().astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
                "messageCount": len(messages),
            }
            others = [(cid, data) for cid, data in conversations.items() if cid != conversation_id]
            # 当前会话总是最新的，其余按修改时间倒序
            ordered = [(conversation_id, entry)] + self._by_recency(others)
            evicted = [cid for cid, _ in ordered[self._max:]]
            self._write_all(dict(ordered[: self._max]))
        except StorageError as e:
            log_event(logging.ERROR, "Failed to save conversation", self._log_ctx,
                      conversation_id=conversation_id, code=e.code, error=e.message)
            return False
        if evicted:
            log_event(logging.INFO, "Evicted conversations", self._log_ctx, evicted=evicted)
        return True

    def load(self, conversation_id: str) -> Optional[List[Message]]:
        entry = self._read_all().get(conversation_id)
        if not _valid_messages(entry):
            if entry is not None:
                log_event(logging.WARNING, "Stored conversation is unreadable", self._log_ctx,
                          conversation_id=conversation_id, error="malformed messages")
            return None
        try:
            return [Message.from_dict(m) for m in entry["messages"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            log_event(logging.WARNING, "Stored conversation is unreadable", self._log_ctx,
                      conversation_id=conversation_id, error=str(e))
            return None

    def get(self, conversation_id: str) -> Optional[Conversation]:
        messages = self.load(conversation_id)
        if messages is None:
            return None
        entry = self._read_all()[conversation_id]
        return Conversation(id=conversation_id, messages=tuple(messages), last_modified=_entry_time(entry))

    def list(self) -> List[ConversationSummary]:
        summaries: List[ConversationSummary] = []
        for cid, entry in self._by_recency(self._read_all().items()):
            msgs = entry.get("messages") if isinstance(entry.get("messages"), list) else []
            first = msgs[0] if msgs and isinstance(msgs[0], dict) else {}
            preview = str(first.get("text") or "")[:PREVIEW_LENGTH] or "Empty conversation"
            summaries.append(
                ConversationSummary(
                    id=str(entry.get("id") or cid),
                    timestamp=_entry_time(entry),
                    message_count=_message_count(entry, msgs),
                    preview=preview,
                )
            )
        return summaries

    def delete(self, conversation_id: str) -> bool:
        try:
            conversations = self._read_all()
            conversations.pop(conversation_id, None)
            self._write_all(conversations)
        except StorageError as e:
            log_event(logging.ERROR, "Failed to delete conversation", self._log_ctx,
                      conversation_id=conversation_id, error=e.message)
            return False
        return True

    def clear(self) -> bool:
        try:
            self._storage.remove_item(CHAT_STORAGE_KEY)
        except StorageError as e:
            log_event(logging.ERROR, "Failed to clear conversations", self._log_ctx, error=e.message)
            return False
        return True

    def export_all(self) -> Optional[str]:
        try:
            return json.dumps(self._read_all(), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            log_event(logging.ERROR, "Failed to export conversations", self._log_ctx, error=str(e))
            return None

    def import_all(self, blob: str) -> bool:
        try:
            parsed = json.loads(blob)
        except (TypeError, ValueError) as e:
            log_event(logging.WARNING, "Rejected import payload", self._log_ctx, error=str(e))
            return False
        if not isinstance(parsed, dict):
            log_event(logging.WARNING, "Rejected import payload", self._log_ctx, error="not an object")
            return False
        valid = [
            (str(cid), entry)
            for cid, entry in parsed.items()
            if _valid_messages(entry)
        ]
        try:
            self._write_all(dict(self._by_recency(valid)[: self._max]))
        except StorageError as e:
            log_event(logging.ERROR, "Failed to import conversations", self._log_ctx, error=e.message)
            return False
        return True

    def storage_info(self) -> Dict[str, Any]:
        try:
            raw = self._storage.get_item(CHAT_STORAGE_KEY) or ""
        except StorageError:
            raw = ""
        size = len(raw.encode("utf-8"))
        return {
            "total_conversations": len(self._read_all()),
            "size_in_bytes": size,
            "size_in_kb": f"{size / 1024:.2f}",
            "max_conversations": self._max,
        }

    # ---- 辅助方法 ----

    def _read_all(self) -> Dict[str, Dict[str, Any]]:
        try:
            raw = self._storage.get_item(CHAT_STORAGE_KEY)
            data = json.loads(raw) if raw else {}
        except (StorageError, ValueError) as e:
            log_event(logging.WARNING, "Stored conversations unreadable, treating as empty",
                      self._log_ctx, error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}

    def _write_all(self, conversations: Dict[str, Dict[str, Any]]) -> None:
        try:
            payload = json.dumps(conversations, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(code="STORE_SERIALIZE_ERROR", message=str(e))
        self._storage.set_item(CHAT_STORAGE_KEY, payload)

    @staticmethod
    def _by_recency(items) -> List[Tuple[str, Dict[str, Any]]]:
        return sorted(items, key=lambda kv: _entry_time(kv[1]), reverse=True)
