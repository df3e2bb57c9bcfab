"""JSON-file persistence for streamer configs and viewer collections."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from packrip.cards.errors import ConfigurationError, PersistError
from packrip.cards.models import (
    Collection,
    CollectionConfig,
    Item,
    LeaderboardEntry,
    ViewerRecord,
    total_value,
)
from packrip.utils.logger import get_logger

logger = get_logger(__name__)

# Config key used for channels without a config of their own
DEFAULT_CHANNEL = "*"


class JsonDataFile:
    """A small JSON document on disk, read and rewritten under one lock."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = RLock()

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {"configs": {}, "viewers": {}}

    def read(self) -> Dict[str, Any]:
        with self._lock:
            if not self.path.exists():
                return self._empty()
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"{self.path} does not hold a JSON object")
            data.setdefault("configs", {})
            data.setdefault("viewers", {})
            return data

    def write(self, data: Dict[str, Any]) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def update(self, mutate: Callable[[Dict[str, Any]], Any]) -> Any:
        """Read, apply ``mutate`` and write back atomically; returns mutate's result."""
        with self._lock:
            data = self.read()
            result = mutate(data)
            self.write(data)
            return result


class ConfigStore:
    """Streamer collection configs keyed by channel."""

    def __init__(self, data_file: JsonDataFile) -> None:
        self._file = data_file

    def sync_config(self, channel_id: Optional[str], payload: Dict[str, Any]) -> CollectionConfig:
        """Validate and store ``payload`` for ``channel_id`` (or the shared default)."""
        try:
            config = CollectionConfig.model_validate(payload)
        except ValidationError as exc:
            raise ConfigurationError(_first_error(exc)) from exc

        key = channel_id or DEFAULT_CHANNEL

        def _store(data: Dict[str, Any]) -> None:
            data["configs"][key] = payload

        self._file.update(_store)
        logger.info(
            "Stored config for %s: %s collections, default %s",
            key, len(config.collections), config.default_collection_id,
        )
        return config

    def get_config(self, channel_id: str) -> Optional[CollectionConfig]:
        """Re-read the stored config for ``channel_id``; never cached."""
        try:
            configs = self._file.read()["configs"]
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Could not read stored config: {exc}") from exc
        if not isinstance(configs, dict):
            raise ConfigurationError("Stored configs are not a mapping")
        raw = configs.get(channel_id) or configs.get(DEFAULT_CHANNEL)
        if not raw:
            return None
        try:
            return CollectionConfig.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(_first_error(exc)) from exc

    def get_active_collection(self, channel_id: str) -> Optional[Collection]:
        config = self.get_config(channel_id)
        if config is None:
            return None
        return config.active_collection()


class CollectionLedger:
    """Append-only per-viewer card collections with a derived total value."""

    def __init__(self, data_file: JsonDataFile) -> None:
        self._file = data_file

    def append(self, channel_id: str, viewer_id: str, item: Item | Dict[str, Any]) -> ViewerRecord:
        """Add one card to a viewer and recompute their total value.

        Raises
        ------
        PersistError
            If the data file cannot be read or written, or the viewer's
            stored record is malformed.
        """
        card = item.as_card() if isinstance(item, Item) else dict(item)

        def _append(data: Dict[str, Any]) -> ViewerRecord:
            viewers = data["viewers"].setdefault(channel_id, {})
            entry = viewers.setdefault(viewer_id, {"cards": [], "totalValue": 0})
            entry.setdefault("cards", []).append(card)
            value = total_value(entry["cards"])
            entry["totalValue"] = float(value)
            return ViewerRecord(viewer_id=viewer_id, cards=list(entry["cards"]), total_value=value)

        try:
            record = self._file.update(_append)
        except Exception as exc:
            raise PersistError(f"Could not save card for {viewer_id} on {channel_id}: {exc}") from exc
        logger.debug("Ledger %s/%s now holds %s cards", channel_id, viewer_id, len(record.cards))
        return record

    # Manual grants share the append path
    give = append

    def get(self, channel_id: str, viewer_id: str) -> ViewerRecord:
        entry = self._file.read()["viewers"].get(channel_id, {}).get(viewer_id)
        if not entry:
            return ViewerRecord(viewer_id=viewer_id)
        cards = list(entry.get("cards", []))
        return ViewerRecord(viewer_id=viewer_id, cards=cards, total_value=total_value(cards))

    def top_n(self, channel_id: str, n: int) -> List[LeaderboardEntry]:
        """Viewers by total value, highest first; ties keep insertion order."""
        viewers = self._file.read()["viewers"].get(channel_id, {})
        entries = [
            LeaderboardEntry(
                viewer_id=viewer_id,
                card_count=len(entry.get("cards", [])),
                total_value=total_value(entry.get("cards", [])),
            )
            for viewer_id, entry in viewers.items()
        ]
        # sorted() is stable, so equal totals stay in insertion order
        entries = sorted(entries, key=lambda e: e.total_value, reverse=True)
        return entries[:max(0, n)]


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid config")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{location}: {message}" if location else message
