"""Deterministic quiz identifiers.

A quiz id is the first 16 hex characters of the SHA-256 of a canonical
string. Tile order inside a hand or discard pile never changes the id;
any change to the tile multiset or to the context does.
"""

from __future__ import annotations

import hashlib
from collections import Counter
from collections.abc import Iterable

from riichi_club.schemas import Meld, PlayerScenario, RoundWind, Wind

ID_LENGTH = 16
_SEAT_RANK = {Wind.E: 0, Wind.S: 1, Wind.W: 2, Wind.N: 3}


def _code(value: Wind | RoundWind | str) -> str:
    return value.value if isinstance(value, (Wind, RoundWind)) else value


def _digest(canonical: str) -> str:
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:ID_LENGTH]


def _context_suffix(dora_indicator: str, seat: Wind | str, round_wind: RoundWind | str) -> str:
    return f"|dora:{dora_indicator}|seat:{_code(seat)}|round:{_code(round_wind)}"


def canonical_hand_string(
    hand: Iterable[str], dora_indicator: str, seat: Wind | str, round_wind: RoundWind | str
) -> str:
    return ",".join(sorted(hand)) + _context_suffix(dora_indicator, seat, round_wind)


def generate_id(hand: Iterable[str], dora_indicator: str, seat: Wind | str, round_wind: RoundWind | str) -> str:
    return _digest(canonical_hand_string(hand, dora_indicator, seat, round_wind))


def generate_readable_id(
    hand: Iterable[str], dora_indicator: str, seat: Wind | str, round_wind: RoundWind | str
) -> str:
    """Debug form of the id, e.g. ``M7:1,P7:3,S:2|dora:M4|seat:E|round:E``."""
    counts = Counter(hand)
    parts = [f"{tile}:{counts[tile]}" for tile in sorted(counts)]
    return ",".join(parts) + _context_suffix(dora_indicator, seat, round_wind)


def _meld_string(meld: Meld) -> str:
    tiles = ",".join(sorted(meld.tiles))
    if meld.stolen_tile_index is not None and meld.stolen_from_seat is not None:
        return f"{tiles}|stolen:{meld.stolen_tile_index}:{meld.stolen_from_seat.value}"
    if meld.stolen_tile_index is None and meld.stolen_from_seat is None:
        return f"{tiles}|closed"
    return tiles


def _player_strings(players: Iterable[PlayerScenario]) -> list[str]:
    ordered = sorted(players, key=lambda p: _SEAT_RANK[p.seat])
    parts = []
    for index, player in enumerate(ordered):
        melds = sorted(player.melds, key=lambda m: ",".join(sorted(m.tiles)))
        parts.append(
            f"p{index}:h[{','.join(sorted(player.hand))}]"
            f"d[{','.join(sorted(player.discard))}]"
            f"m[{';'.join(_meld_string(m) for m in melds)}]"
            f"s[{player.seat.value}]sc[{player.score}]"
        )
    return parts


def generate_decision_id(
    players: Iterable[PlayerScenario],
    dora_indicators: Iterable[str],
    round_wind: RoundWind | str,
    round_number: int,
) -> str:
    dora = ",".join(sorted(dora_indicators))
    canonical = f"{'|'.join(_player_strings(players))}|dora:[{dora}]|round:{_code(round_wind)}|roundNum:{round_number}"
    return _digest(canonical)


def generate_readable_decision_id(
    players: Iterable[PlayerScenario],
    dora_indicators: Iterable[str],
    round_wind: RoundWind | str,
    round_number: int,
) -> str:
    dora = ",".join(dora_indicators)
    return f"{'|'.join(_player_strings(players))}|dora:[{dora}]|round:{_code(round_wind)}|roundNum:{round_number}"
