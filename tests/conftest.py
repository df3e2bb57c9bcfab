from __future__ import annotations

from typing import Any

import pytest

from packrip.cards.awarder import CardAwarder
from packrip.ledger.store import CollectionLedger, ConfigStore, JsonDataFile


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(
    *,
    legendary_cards: bool = True,
    default_id: Any = "base",
) -> dict[str, Any]:
    cards = [
        {"name": "Pidgey", "rarity": "Common", "price": 0.25},
        {"name": "Rattata", "rarity": "Common", "price": "0.10"},
        {"name": "Pikachu", "rarity": "Rare", "price": 4},
    ]
    if legendary_cards:
        cards.append({"name": "Mewtwo", "rarity": "Legendary", "price": "120.50", "image": "mewtwo.png"})
    return {
        "defaultCollectionId": default_id,
        "collections": [
            {
                "id": "base",
                "name": "Base Set",
                "rarities": [{"name": "Common"}, {"name": "Rare"}, {"name": "Legendary"}],
                "cards": cards,
            },
            {
                "id": "promo",
                "rarities": [{"name": "Promo"}],
                "cards": [{"name": "Promo Pikachu", "rarity": "Promo", "price": 9}],
            },
        ],
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_file(tmp_path) -> JsonDataFile:
    return JsonDataFile(tmp_path / "data.json")


@pytest.fixture
def config_store(data_file) -> ConfigStore:
    return ConfigStore(data_file)


@pytest.fixture
def ledger(data_file) -> CollectionLedger:
    return CollectionLedger(data_file)


@pytest.fixture
def awarder(config_store, ledger) -> CardAwarder:
    return CardAwarder(config_store, ledger)
