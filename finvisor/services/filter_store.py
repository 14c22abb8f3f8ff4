"""Persisted filter preferences behind an injectable key-value storage."""
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from finvisor.core.config import settings
from finvisor.schemas.filters import FilterPreferences

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self):
        self.values: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileStorage:
    """All keys in one JSON object on disk."""

    def __init__(self, path: str):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class FilterStore:
    """Load and save ``FilterPreferences`` under a fixed storage key."""

    def __init__(self, storage: KeyValueStorage, key: Optional[str] = None):
        self.storage = storage
        self.key = key or settings.FILTERS_STORAGE_KEY

    def load(self) -> FilterPreferences:
        raw = self.storage.get(self.key)
        if not raw:
            return FilterPreferences()
        try:
            return FilterPreferences.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Stored filter preferences are invalid, using defaults: %s", e)
            return FilterPreferences()

    def save(self, preferences: FilterPreferences) -> FilterPreferences:
        self.storage.set(self.key, preferences.model_dump_json())
        return preferences

    def set_date_range(self, date_from, date_to) -> FilterPreferences:
        return self.save(self.load().model_copy(update={"date_from": date_from, "date_to": date_to}))

    def set_client_id(self, client_id: str) -> FilterPreferences:
        return self.save(self.load().model_copy(update={"client_id": client_id}))

    def set_member_id(self, member_id: str) -> FilterPreferences:
        return self.save(self.load().model_copy(update={"member_id": member_id}))

    def reset(self) -> FilterPreferences:
        self.storage.delete(self.key)
        return FilterPreferences()
