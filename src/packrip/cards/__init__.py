"""Participation windows, weighted draws and resolution."""

from .draw import RarityDrawEngine, rarity_weights
from .errors import BroadcastError, ConfigurationError, EmptyPoolError, PersistError, RipError
from .models import (
    Collection,
    CollectionConfig,
    DrawResult,
    EnrollStatus,
    Item,
    RarityTier,
    ResolutionReport,
    ViewerRecord,
    WindowState,
)
from .window import ParticipationWindow

__all__ = [
    "BroadcastError",
    "Collection",
    "CollectionConfig",
    "ConfigurationError",
    "DrawResult",
    "EmptyPoolError",
    "EnrollStatus",
    "Item",
    "ParticipationWindow",
    "PersistError",
    "RarityDrawEngine",
    "RarityTier",
    "ResolutionReport",
    "RipError",
    "ViewerRecord",
    "WindowState",
    "rarity_weights",
]
