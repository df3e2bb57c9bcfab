"""Core data models for the pack rip backend."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from packrip.utils.logger import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")


def parse_price(value: Any) -> Decimal:
    """Return ``value`` as a non-negative Decimal; anything malformed counts as 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, float) and not math.isfinite(value):
        return ZERO
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not price.is_finite() or price < 0:
        return ZERO
    return price


def total_value(cards: List[Dict[str, Any]]) -> Decimal:
    """Sum of card prices, recomputed from scratch."""
    return sum((parse_price(card.get("price")) for card in cards if isinstance(card, dict)), ZERO)


# ----------------------------------------------------------------------
# Collection configuration
# ----------------------------------------------------------------------
class RarityTier(BaseModel):
    """A named rarity; rank 1 is the most common tier."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    rank: Optional[int] = Field(default=None, validation_alias=AliasChoices("rank", "ordinalRank"))

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("rarity name must not be blank")
        return value


class Item(BaseModel):
    """A card definition. Extra display fields are carried through untouched."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    rarity: str
    price: Decimal = ZERO

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> Decimal:
        return parse_price(value)

    def as_card(self) -> Dict[str, Any]:
        """Plain dict stored in the ledger and sent to overlays."""
        card = self.model_dump()
        card["price"] = float(self.price)
        return card


class Collection(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    rarities: List[RarityTier] = Field(default_factory=list)
    items: List[Item] = Field(default_factory=list, validation_alias=AliasChoices("items", "cards"))

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)

    def ladder(self) -> List[RarityTier]:
        """Rarities ordered by rank; a missing rank falls back to list position."""
        ranked = [
            (tier.rank if tier.rank is not None else index + 1, index, tier)
            for index, tier in enumerate(self.rarities)
        ]
        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        return [tier.model_copy(update={"rank": rank}) for rank, _, tier in ranked]

    def pool(self) -> Dict[str, List[Item]]:
        """Group items by rarity; items naming an unknown rarity are unreachable."""
        known = {tier.name for tier in self.rarities}
        buckets: Dict[str, List[Item]] = {}
        for item in self.items:
            if item.rarity not in known:
                logger.debug("Card %r references unknown rarity %r in collection %s", item.name, item.rarity, self.id)
                continue
            buckets.setdefault(item.rarity, []).append(item)
        return buckets


class CollectionConfig(BaseModel):
    """Validated streamer configuration with exactly one active collection."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    collections: List[Collection]
    default_collection_id: str = Field(
        validation_alias=AliasChoices("defaultCollectionId", "default_collection_id"),
        serialization_alias="defaultCollectionId",
    )

    @field_validator("default_collection_id", mode="before")
    @classmethod
    def _default_as_str(cls, value: Any) -> str:
        if value is None:
            raise ValueError("defaultCollectionId is required")
        return str(value)

    @model_validator(mode="after")
    def _check_active(self) -> "CollectionConfig":
        if not self.collections:
            raise ValueError("No collections found in config")
        active = self.active_collection()
        if active is None:
            raise ValueError("Default collection not found in config")
        if not active.rarities:
            raise ValueError("No rarities defined")
        return self

    def active_collection(self) -> Optional[Collection]:
        for collection in self.collections:
            if collection.id == self.default_collection_id:
                return collection
        return None


# ----------------------------------------------------------------------
# Window, draws and ledger records
# ----------------------------------------------------------------------
class WindowState(IntEnum):
    CLOSED = 0
    OPEN = 1


class EnrollStatus(Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    CLOSED = "closed"


@dataclass(frozen=True)
class DrawResult:
    channel_id: str
    viewer_id: str
    rarity: RarityTier
    item: Item
    display_name: Optional[str] = None

    def envelope(self) -> Dict[str, Any]:
        """Message pushed to the display surface."""
        return {
            "type": "rip-result",
            "viewerId": self.viewer_id,
            "rarity": self.rarity.name,
            "item": self.item.as_card(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "viewerId": self.viewer_id,
            "displayName": self.display_name,
            "rarity": self.rarity.name,
            "card": self.item.as_card(),
        }


@dataclass
class ViewerRecord:
    viewer_id: str
    cards: List[Dict[str, Any]] = field(default_factory=list)
    total_value: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewerId": self.viewer_id,
            "cards": list(self.cards),
            "totalValue": float(self.total_value),
        }


@dataclass
class LeaderboardEntry:
    viewer_id: str
    card_count: int
    total_value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewerId": self.viewer_id,
            "cardCount": self.card_count,
            "totalValue": float(self.total_value),
        }


@dataclass
class ParticipantFailure:
    viewer_id: str
    stage: str  # "draw" or "persist"
    error: str


@dataclass
class ResolutionReport:
    """Outcome of resolving one window."""

    channel_id: str
    window_id: int
    results: List[DrawResult] = field(default_factory=list)
    failures: List[ParticipantFailure] = field(default_factory=list)
    config_error: Optional[str] = None

    @property
    def participant_count(self) -> int:
        return len(self.results) + len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channelId": self.channel_id,
            "windowId": self.window_id,
            "results": [result.to_dict() for result in self.results],
            "failures": [
                {"viewerId": f.viewer_id, "stage": f.stage, "error": f.error}
                for f in self.failures
            ],
            "configError": self.config_error,
        }
