"""朗读配置的持久化，与会话存储互相独立。"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from assistant_core.domain.exceptions import StorageError
from assistant_core.domain.models import VoiceProfile
from assistant_core.infrastructure.logging.logger import log_event
from assistant_core.infrastructure.storage.local_storage import KeyValueStorage

VOICE_SETTINGS_KEY = "ai_assistant_voice_settings"
VOICE_FIELDS = {"rate", "pitch", "volume", "selected_voice_index", "selectedVoiceIndex"}


class VoiceSettingsStore:
    def __init__(self, storage: KeyValueStorage):
        self._storage = storage
        self._log_ctx = {"component": "voice_store", "key": VOICE_SETTINGS_KEY}

    def save(self, profile: VoiceProfile) -> bool:
        payload = profile.to_dict()
        payload["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        try:
            self._storage.set_item(VOICE_SETTINGS_KEY, json.dumps(payload))
        except StorageError as e:
            log_event(logging.ERROR, "Failed to save voice settings", self._log_ctx, error=e.message)
            return False
        return True

    def load(self) -> Optional[VoiceProfile]:
        """读取已保存的配置，不存在或损坏时返回 None。"""

        raw = self._read_raw()
        if raw is None:
            return None
        return VoiceProfile.from_dict(raw)

    def load_or_default(self) -> VoiceProfile:
        return self.load() or VoiceProfile()

    def update(self, field: str, value: Any) -> bool:
        """只修改一个字段，其余字段保持已保存的值。"""

        if field not in VOICE_FIELDS:
            log_event(logging.WARNING, "Rejected unknown voice setting", self._log_ctx, field=field)
            return False
        return self.save(self.load_or_default().updated(**{field: value}))

    def clear(self) -> bool:
        try:
            self._storage.remove_item(VOICE_SETTINGS_KEY)
        except StorageError as e:
            log_event(logging.ERROR, "Failed to clear voice settings", self._log_ctx, error=e.message)
            return False
        return True

    def info(self) -> Dict[str, Any]:
        raw = self._read_raw()
        profile = VoiceProfile.from_dict(raw)
        return {
            "has_settings": raw is not None,
            **profile.to_dict(),
            "last_saved": raw.get("timestamp") if raw else None,
        }

    def _read_raw(self) -> Optional[Dict[str, Any]]:
        try:
            data = self._storage.get_item(VOICE_SETTINGS_KEY)
            parsed = json.loads(data) if data else None
        except (StorageError, ValueError) as e:
            log_event(logging.WARNING, "Voice settings unreadable", self._log_ctx, error=str(e))
            return None
        return parsed if isinstance(parsed, dict) else None
