"""Durable storage for configs and viewer collections."""

from .store import CollectionLedger, ConfigStore, DEFAULT_CHANNEL, JsonDataFile

__all__ = ["CollectionLedger", "ConfigStore", "DEFAULT_CHANNEL", "JsonDataFile"]
