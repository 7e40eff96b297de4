"""键值型本地存储。

模拟浏览器 localStorage 的语义：字符串键 -> 字符串值，带总配额。
FileLocalStorage 把每个键写成一个 JSON 文件（先写临时文件再原子替换），
MemoryLocalStorage 用于测试和不落盘的会话。
"""

import json
import os
import re
from pathlib import Path
from typing import Dict, Optional, Protocol
from uuid import uuid4

from assistant_core.domain.exceptions import StorageError

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryLocalStorage:
    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self._quota = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota is not None:
            others = sum(len(v.encode("utf-8")) for k, v in self._items.items() if k != key)
            if others + len(value.encode("utf-8")) > self._quota:
                raise StorageError(code="QUOTA_EXCEEDED", message=f"Storage quota exceeded for {key}")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileLocalStorage:
    def __init__(self, root: str | Path, quota_bytes: Optional[int] = DEFAULT_QUOTA_BYTES):
        self._root = Path(root).resolve()
        self._quota = quota_bytes
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(code="STORE_INIT_ERROR", message=str(e))

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(code="STORE_READ_ERROR", message=str(e))
        if not isinstance(data, dict) or not isinstance(data.get("value"), str):
            raise StorageError(code="STORE_READ_ERROR", message=f"Malformed entry for {key}")
        return data["value"]

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        content = json.dumps({"key": key, "value": value}, ensure_ascii=False)
        self._check_quota(path, content)
        tmp_path = self._root / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(code="STORE_WRITE_ERROR", message=str(e))

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(code="STORE_DELETE_ERROR", message=str(e))

    def _path(self, key: str) -> Path:
        return self._root / f"{_SAFE_KEY.sub('_', key)}.json"

    def _check_quota(self, path: Path, content: str) -> None:
        if self._quota is None:
            return
        used = sum(p.stat().st_size for p in self._root.glob("*.json") if p != path)
        if used + len(content.encode("utf-8")) > self._quota:
            raise StorageError(code="QUOTA_EXCEEDED", message=f"Storage quota exceeded writing {path.name}")
