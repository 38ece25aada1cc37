import json
from pathlib import Path
from typing import Any

from loguru import logger


class LocalStore:
    """Small key/value file kept per chat: phone number, cached user, language."""

    def __init__(self, root: Path, namespace: str):
        self.path = Path(root) / f"{namespace}.json"

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Local state {self.path} is unreadable, starting empty: {e}")
            return {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, *keys: str) -> None:
        data = self._load()
        for key in keys:
            data.pop(key, None)
        self._save(data)
