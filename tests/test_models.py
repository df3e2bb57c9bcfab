from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from conftest import make_config
from packrip.cards.models import Collection, CollectionConfig, Item, parse_price


@pytest.mark.parametrize(
    "raw, expected",
    [
        (3, Decimal("3")),
        ("2.50", Decimal("2.50")),
        (" 1.5 ", Decimal("1.5")),
        (None, Decimal("0")),
        ("abc", Decimal("0")),
        ("", Decimal("0")),
        (float("nan"), Decimal("0")),
        (float("inf"), Decimal("0")),
        ("NaN", Decimal("0")),
        (-4, Decimal("0")),
        (True, Decimal("0")),
        ({"amount": 3}, Decimal("0")),
    ],
)
def test_parse_price(raw, expected) -> None:
    assert parse_price(raw) == expected


def test_config_picks_default_collection() -> None:
    config = CollectionConfig.model_validate(make_config())
    active = config.active_collection()
    assert active is not None
    assert active.id == "base"
    assert [tier.name for tier in active.ladder()] == ["Common", "Rare", "Legendary"]
    assert [tier.rank for tier in active.ladder()] == [1, 2, 3]


def test_numeric_collection_ids_are_matched_as_strings() -> None:
    raw = make_config(default_id=7)
    raw["collections"][0]["id"] = 7
    config = CollectionConfig.model_validate(raw)
    assert config.active_collection().id == "7"


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda raw: raw.update(collections=[]), "No collections found"),
        (lambda raw: raw.update(defaultCollectionId="missing"), "Default collection not found"),
        (lambda raw: raw["collections"][0].update(rarities=[]), "No rarities defined"),
    ],
)
def test_invalid_config_rejected(mutate, message) -> None:
    raw = make_config()
    mutate(raw)
    with pytest.raises(ValidationError, match=message):
        CollectionConfig.model_validate(raw)


def test_ladder_follows_explicit_ranks() -> None:
    collection = Collection.model_validate(
        {
            "id": "x",
            "rarities": [
                {"name": "Legendary", "ordinalRank": 3},
                {"name": "Common", "ordinalRank": 1},
                {"name": "Rare", "rank": 2},
            ],
        }
    )
    assert [tier.name for tier in collection.ladder()] == ["Common", "Rare", "Legendary"]


def test_cards_with_unknown_rarity_are_unreachable() -> None:
    collection = Collection.model_validate(
        {
            "id": "x",
            "rarities": [{"name": "Common"}],
            "items": [
                {"name": "A", "rarity": "Common"},
                {"name": "B", "rarity": "Mythic"},
            ],
        }
    )
    pool = collection.pool()
    assert list(pool) == ["Common"]
    assert [item.name for item in pool["Common"]] == ["A"]


def test_item_keeps_display_fields() -> None:
    item = Item.model_validate({"name": "Mewtwo", "rarity": "Legendary", "price": "120.50", "image": "m.png"})
    card = item.as_card()
    assert card == {"name": "Mewtwo", "rarity": "Legendary", "price": 120.5, "image": "m.png"}
