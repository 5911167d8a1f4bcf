"""Durable local state: generation history and voice presets."""

import json
import logging
import time
from pathlib import Path
from typing import List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, TypeAdapter

from speechstudio.config import settings
from speechstudio.errors import StorageParseError
from speechstudio.models import HistoryEntry, VoicePreset, VoiceSettings

logger = logging.getLogger(__name__)

HISTORY_KEY = "audioHistory"
PRESETS_KEY = "voicePresets"

T = TypeVar("T", bound=BaseModel)


class KeyValueStorage(Protocol):
    """String key/value surface the store persists into."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class JsonFileStorage:
    """One JSON document per key, kept under a directory."""

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory is not None else settings.STATE_DIR

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")


class LocalStateStore:
    """
    History entries and presets, persisted in full on every mutation.

    History is most-recent-first and capped at ``history_limit`` entries;
    the oldest entries are dropped silently. Stored data that cannot be
    parsed is logged and replaced by an empty collection.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        history_limit: Optional[int] = None,
    ):
        self.storage = storage if storage is not None else JsonFileStorage()
        self.history_limit = history_limit or settings.HISTORY_LIMIT
        self._last_id = 0
        self._history: List[HistoryEntry] = self._load(HISTORY_KEY, HistoryEntry)
        self._presets: List[VoicePreset] = self._load(PRESETS_KEY, VoicePreset)
        logger.info(
            f"Loaded {len(self._history)} history entries and {len(self._presets)} presets"
        )

    def _load(self, key: str, model: Type[T]) -> List[T]:
        try:
            raw = self.storage.get(key)
            if raw is None:
                return []
            return self._parse(key, raw, model)
        except UnicodeDecodeError as e:
            error = StorageParseError(key, f"not valid UTF-8: {e}")
        except StorageParseError as e:
            error = e
        logger.warning(f"Discarding stored {key}: {error}")
        return []

    @staticmethod
    def _parse(key: str, raw: str, model: Type[T]) -> List[T]:
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            return TypeAdapter(List[model]).validate_python(data)
        except ValueError as e:
            raise StorageParseError(key, str(e)) from e

    def _persist(self, key: str, items: List[BaseModel]) -> None:
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        self.storage.set(key, payload)

    def new_id(self) -> str:
        """Clock-based id, strictly increasing within this store."""
        candidate = int(time.time() * 1000)
        self._last_id = max(candidate, self._last_id + 1)
        return str(self._last_id)

    # History

    @property
    def history(self) -> List[HistoryEntry]:
        return list(self._history)

    def add_history(self, entry: HistoryEntry) -> HistoryEntry:
        self._history = [entry, *self._history][: self.history_limit]
        self._persist(HISTORY_KEY, self._history)
        return entry

    def remove_history(self, entry_id: str) -> bool:
        remaining = [e for e in self._history if e.id != entry_id]
        if len(remaining) == len(self._history):
            return False
        self._history = remaining
        self._persist(HISTORY_KEY, self._history)
        return True

    def clear_history(self) -> None:
        self._history = []
        self._persist(HISTORY_KEY, self._history)

    # Presets

    @property
    def presets(self) -> List[VoicePreset]:
        return list(self._presets)

    def add_preset(self, name: str, voice_id: str, voice_settings: VoiceSettings) -> VoicePreset:
        preset = VoicePreset(
            id=self.new_id(),
            name=name,
            voice_id=voice_id,
            settings=voice_settings.model_copy(),
        )
        self._presets = [*self._presets, preset]
        self._persist(PRESETS_KEY, self._presets)
        logger.info(f"Saved preset {preset.name} ({preset.id})")
        return preset

    def get_preset(self, preset_id: str) -> Optional[VoicePreset]:
        return next((p for p in self._presets if p.id == preset_id), None)

    def remove_preset(self, preset_id: str) -> bool:
        remaining = [p for p in self._presets if p.id != preset_id]
        if len(remaining) == len(self._presets):
            return False
        self._presets = remaining
        self._persist(PRESETS_KEY, self._presets)
        return True
