"""
Rarity Draw Engine - weighted rarity selection and card picks
"""

from __future__ import annotations

import random
from typing import List, Mapping, Optional, Sequence, Tuple

from packrip.cards.errors import EmptyPoolError
from packrip.cards.models import Item, RarityTier


def rarity_weights(count: int) -> List[int]:
    """Squared descending weights: the first of ``count`` tiers gets count**2, the last 1."""
    return [(count - index) ** 2 for index in range(count)]


class RarityDrawEngine:
    """Stateless weighted draw over an ordered rarity ladder.

    Tiers earlier in the ladder are always more likely than later ones. Tiers
    with an empty pool are removed before weighting, so the remaining tiers
    keep their relative order and only the normalisation changes.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def available_tiers(
        self,
        rarities: Sequence[RarityTier],
        pool: Mapping[str, Sequence[Item]],
    ) -> List[RarityTier]:
        return [tier for tier in rarities if pool.get(tier.name)]

    def pick_rarity(
        self,
        rarities: Sequence[RarityTier],
        pool: Mapping[str, Sequence[Item]],
    ) -> RarityTier:
        valid = self.available_tiers(rarities, pool)
        if not valid:
            raise EmptyPoolError("No available cards for any rarity")

        weights = rarity_weights(len(valid))
        roll = self._rng.random() * sum(weights)
        cumulative = 0
        for tier, weight in zip(valid, weights):
            cumulative += weight
            if roll <= cumulative:
                return tier
        # Rounding pushed the roll past the last boundary
        return valid[-1]

    def pick_item(self, items: Sequence[Item]) -> Item:
        if not items:
            raise EmptyPoolError("Card pool is empty")
        return items[self._rng.randrange(len(items))]

    def draw(
        self,
        rarities: Sequence[RarityTier],
        pool: Mapping[str, Sequence[Item]],
    ) -> Tuple[RarityTier, Item]:
        """Return one ``(rarity, item)`` pair.

        Raises
        ------
        EmptyPoolError
            When no rarity in ``rarities`` has a non-empty pool entry.
        """
        tier = self.pick_rarity(rarities, pool)
        return tier, self.pick_item(pool[tier.name])
