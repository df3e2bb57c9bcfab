"""Turns one draw into a persisted card for one viewer."""

from __future__ import annotations

from typing import Optional

from packrip.cards.draw import RarityDrawEngine
from packrip.cards.errors import ConfigurationError
from packrip.cards.models import Collection, DrawResult
from packrip.ledger.store import CollectionLedger, ConfigStore


class CardAwarder:
    def __init__(
        self,
        config_store: ConfigStore,
        ledger: CollectionLedger,
        engine: Optional[RarityDrawEngine] = None,
    ) -> None:
        self.config_store = config_store
        self.ledger = ledger
        self.engine = engine or RarityDrawEngine()

    def load_collection(self, channel_id: str) -> Collection:
        """Fetch the channel's active collection fresh from the config store.

        Raises
        ------
        ConfigurationError
            If no config is stored, the default collection is missing, or it
            defines no rarities.
        """
        collection = self.config_store.get_active_collection(channel_id)
        if collection is None:
            raise ConfigurationError(f"No collections configured for channel {channel_id}")
        if not collection.rarities:
            raise ConfigurationError(f"No rarities defined in collection {collection.id}")
        return collection

    def draw(self, channel_id: str, viewer_id: str, collection: Collection,
             display_name: Optional[str] = None) -> DrawResult:
        rarity, item = self.engine.draw(collection.ladder(), collection.pool())
        return DrawResult(
            channel_id=channel_id,
            viewer_id=viewer_id,
            rarity=rarity,
            item=item,
            display_name=display_name,
        )

    def award(self, channel_id: str, viewer_id: str, collection: Optional[Collection] = None,
              display_name: Optional[str] = None) -> DrawResult:
        """Draw a card and append it to the viewer's ledger entry."""
        collection = collection or self.load_collection(channel_id)
        result = self.draw(channel_id, viewer_id, collection, display_name)
        self.ledger.append(channel_id, viewer_id, result.item)
        return result
