from __future__ import annotations

import random
from collections import Counter

import pytest

from packrip.cards.draw import RarityDrawEngine, rarity_weights
from packrip.cards.errors import EmptyPoolError
from packrip.cards.models import Item, RarityTier

# chi-square critical values at p = 0.001
CHI2_CRITICAL = {2: 13.816, 4: 18.467}


def _ladder(*names: str) -> list[RarityTier]:
    return [RarityTier(name=name, rank=index + 1) for index, name in enumerate(names)]


def _pool(*names: str) -> dict[str, list[Item]]:
    return {name: [Item(name=f"{name} card", rarity=name, price=1)] for name in names}


def _chi_square(counts: Counter, ladder: list[RarityTier], samples: int) -> float:
    weights = rarity_weights(len(ladder))
    total = sum(weights)
    stat = 0.0
    for tier, weight in zip(ladder, weights):
        expected = samples * weight / total
        stat += (counts[tier.name] - expected) ** 2 / expected
    return stat


def test_weights_are_squared_descending_rank() -> None:
    assert rarity_weights(1) == [1]
    assert rarity_weights(3) == [9, 4, 1]
    assert rarity_weights(5) == [25, 16, 9, 4, 1]


@pytest.mark.parametrize("names", [("Common", "Rare", "Legendary"), ("C", "U", "R", "E", "L")])
def test_draw_distribution_matches_weights(names) -> None:
    engine = RarityDrawEngine(random.Random(20240611))
    ladder = _ladder(*names)
    pool = _pool(*names)
    samples = 100_000
    counts = Counter(engine.draw(ladder, pool)[0].name for _ in range(samples))
    assert _chi_square(counts, ladder, samples) < CHI2_CRITICAL[len(names) - 1]


def test_common_drawn_most_and_legendary_least() -> None:
    engine = RarityDrawEngine(random.Random(42))
    ladder = _ladder("Common", "Rare", "Legendary")
    pool = _pool("Common", "Rare", "Legendary")
    counts = Counter(engine.draw(ladder, pool)[0].name for _ in range(10_000))
    assert counts["Common"] > counts["Rare"] > counts["Legendary"] > 0
    # 9:4:1 puts Common near 64% and Legendary near 7%
    assert 0.60 < counts["Common"] / 10_000 < 0.69
    assert 0.05 < counts["Legendary"] / 10_000 < 0.09


def test_empty_tier_behaves_like_shorter_ladder() -> None:
    full_ladder = _ladder("Common", "Rare", "Legendary")
    pool = _pool("Common", "Rare")
    pool["Legendary"] = []

    with_empty = RarityDrawEngine(random.Random(7))
    without = RarityDrawEngine(random.Random(7))
    first = [with_empty.draw(full_ladder, pool)[0].name for _ in range(5_000)]
    second = [without.draw(_ladder("Common", "Rare"), pool)[0].name for _ in range(5_000)]
    assert first == second

    counts = Counter(first)
    assert "Legendary" not in counts
    assert 3.4 < counts["Common"] / counts["Rare"] < 4.6


def test_removing_a_tier_keeps_relative_order() -> None:
    engine = RarityDrawEngine()
    ladder = _ladder("Common", "Uncommon", "Rare", "Legendary")
    pool = _pool("Common", "Rare", "Legendary")
    valid = engine.available_tiers(ladder, pool)
    assert [tier.name for tier in valid] == ["Common", "Rare", "Legendary"]
    weights = rarity_weights(len(valid))
    assert weights == sorted(weights, reverse=True)


def test_no_available_cards_raises() -> None:
    engine = RarityDrawEngine(random.Random(1))
    with pytest.raises(EmptyPoolError):
        engine.draw(_ladder("Common", "Rare"), {"Common": [], "Rare": []})
    with pytest.raises(EmptyPoolError):
        engine.draw([], {})


class _OvershootRandom:
    """Rolls past the top of the cumulative weights, as float rounding can."""

    def random(self) -> float:
        return 1.5

    def randrange(self, stop: int) -> int:
        return stop - 1


def test_roll_past_last_boundary_returns_last_tier() -> None:
    engine = RarityDrawEngine(_OvershootRandom())
    tier, item = engine.draw(_ladder("Common", "Rare"), _pool("Common", "Rare"))
    assert tier.name == "Rare"
    assert item.rarity == "Rare"


def test_item_pick_is_uniform_within_tier() -> None:
    engine = RarityDrawEngine(random.Random(3))
    items = [Item(name=f"card-{i}", rarity="Common") for i in range(4)]
    counts = Counter(engine.draw(_ladder("Common"), {"Common": items})[1].name for _ in range(8_000))
    assert set(counts) == {item.name for item in items}
    assert all(1_700 < count < 2_300 for count in counts.values())
