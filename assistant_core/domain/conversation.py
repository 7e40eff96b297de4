from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from .models import Message


@dataclass(frozen=True)
class Conversation:
    id: str
    messages: Tuple[Message, ...]
    last_modified: datetime


@dataclass(frozen=True)
class ConversationSummary:
    id: str
    timestamp: datetime
    message_count: int
    preview: str


class ConversationStore(Protocol):
    def save(self, conversation_id: str, messages: Sequence[Message]) -> bool:
        ...

    def load(self, conversation_id: str) -> Optional[List[Message]]:
        ...

    def list(self) -> List[ConversationSummary]:
        ...

    def delete(self, conversation_id: str) -> bool:
        ...

    def clear(self) -> bool:
        ...

    def export_all(self) -> Optional[str]:
        ...

    def import_all(self, blob: str) -> bool:
        ...
