from __future__ import annotations

from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict


class Suit(str, Enum):
    man = "Man"
    pin = "Pin"
    sou = "Sou"
    wind = "Wind"
    dragon = "Dragon"


class Tile(BaseModel):
    id: str
    name: str
    suit: Suit

    model_config = ConfigDict(frozen=True)

    @property
    def is_red(self) -> bool:
        return self.id in RED_FIVES

    @property
    def number(self) -> int | None:
        if self.suit in {Suit.wind, Suit.dragon}:
            return None
        return int(self.id[1])

    @property
    def is_simple(self) -> bool:
        return self.number is not None and 2 <= self.number <= 8

    @property
    def is_terminal_or_honor(self) -> bool:
        return not self.is_simple


RED_FIVES = frozenset({"M5R", "P5R", "S5R"})
PLAIN_FIVES = frozenset({"M5", "P5", "S5"})
WIND_ORDER = ["E", "S", "W", "N"]
DRAGON_ORDER = ["w", "g", "r"]

_SUIT_PREFIX = {Suit.man: "M", Suit.pin: "P", Suit.sou: "S"}
_WIND_NAMES = {"E": "East Wind", "S": "South Wind", "W": "West Wind", "N": "North Wind"}
_DRAGON_NAMES = {"w": "White Dragon", "g": "Green Dragon", "r": "Red Dragon"}


def _build_catalog() -> MappingProxyType:
    tiles: dict[str, Tile] = {}
    for suit, prefix in _SUIT_PREFIX.items():
        for n in range(1, 10):
            tiles[f"{prefix}{n}"] = Tile(id=f"{prefix}{n}", name=f"{n} of {suit.value}", suit=suit)
            if n == 5:
                tiles[f"{prefix}5R"] = Tile(id=f"{prefix}5R", name=f"Red 5 of {suit.value}", suit=suit)
    for tile_id, name in _WIND_NAMES.items():
        tiles[tile_id] = Tile(id=tile_id, name=name, suit=Suit.wind)
    for tile_id, name in _DRAGON_NAMES.items():
        tiles[tile_id] = Tile(id=tile_id, name=name, suit=Suit.dragon)
    return MappingProxyType(tiles)


CATALOG = _build_catalog()


def resolve(tile_id: str) -> Tile | None:
    return CATALOG.get(tile_id)


def all_tiles() -> list[Tile]:
    return list(CATALOG.values())


def is_red_five(tile_id: str) -> bool:
    return tile_id in RED_FIVES


def is_simple(tile_id: str) -> bool:
    tile = resolve(tile_id)
    return tile is not None and tile.is_simple


def is_terminal_or_honor(tile_id: str) -> bool:
    tile = resolve(tile_id)
    return tile is not None and tile.is_terminal_or_honor


def normalize_red(tile_id: str) -> str:
    """Map a red five onto its plain five; other ids pass through."""
    if tile_id in RED_FIVES:
        return tile_id[:2]
    return tile_id


def max_copies(tile_id: str) -> int:
    """Physical copies of a tile id in the 136-tile wall."""
    if tile_id in RED_FIVES:
        return 1
    if tile_id in PLAIN_FIVES:
        return 3
    return 4


def build_deck() -> list[str]:
    deck: list[str] = []
    for tile_id in CATALOG:
        deck.extend([tile_id] * max_copies(tile_id))
    return deck


def dora_from_indicator(indicator: str) -> str | None:
    """Tile kind that scores as dora for the given indicator."""
    tile = resolve(indicator)
    if tile is None:
        return None
    if tile.suit == Suit.wind:
        return WIND_ORDER[(WIND_ORDER.index(tile.id) + 1) % len(WIND_ORDER)]
    if tile.suit == Suit.dragon:
        return DRAGON_ORDER[(DRAGON_ORDER.index(tile.id) + 1) % len(DRAGON_ORDER)]
    n = tile.number
    return f"{tile.id[0]}{1 if n == 9 else n + 1}"
