from __future__ import annotations

from collections.abc import Callable

from riichi_club.schemas import FuBreakdownItem, FuCalculationInput, MeldCounts, PairType, WaitType

FuRule = Callable[[FuCalculationInput], list[FuBreakdownItem] | None]

CLOSED_RON_BASE = 30
BASE = 20
WAIT_FU = 2
TSUMO_FU = 2

FU_WAITS = {WaitType.kanchan, WaitType.penchan, WaitType.tanki}
PAIR_FU = {
    PairType.dragon: 2,
    PairType.seat_wind: 2,
    PairType.round_wind: 2,
    PairType.both_winds: 4,
}
MELD_FU = {
    "open_triplets_simples": ("明刻 中張牌", 2),
    "closed_triplets_simples": ("暗刻 中張牌", 4),
    "open_triplets_honors": ("明刻 么九牌", 4),
    "closed_triplets_honors": ("暗刻 么九牌", 8),
    "open_kans_simples": ("明槓 中張牌", 8),
    "closed_kans_simples": ("暗槓 中張牌", 16),
    "open_kans_honors": ("明槓 么九牌", 16),
    "closed_kans_honors": ("暗槓 么九牌", 32),
}


def _seven_pairs(inp: FuCalculationInput) -> list[FuBreakdownItem] | None:
    if inp.seven_pairs:
        return [FuBreakdownItem(name="七対子", fu=25)]
    return None


def _pinfu_tsumo(inp: FuCalculationInput) -> list[FuBreakdownItem] | None:
    if inp.pinfu and inp.tsumo:
        return [FuBreakdownItem(name="副底", fu=BASE)]
    return None


def _open_all_sequences(inp: FuCalculationInput) -> list[FuBreakdownItem] | None:
    # Open pinfu shape: a 1-han hand is lifted to 30 fu, anything larger stays at 20.
    if inp.open_all_sequences:
        return [FuBreakdownItem(name="喰い平和形", fu=30 if inp.han_count == 1 else 20)]
    return None


SPECIAL_RULES: tuple[FuRule, ...] = (_seven_pairs, _pinfu_tsumo, _open_all_sequences)


def _meld_items(melds: MeldCounts) -> list[FuBreakdownItem]:
    items = []
    for field, (name, per_meld) in MELD_FU.items():
        count = getattr(melds, field)
        if count:
            items.append(FuBreakdownItem(name=name, fu=count * per_meld))
    return items


def _regular_items(inp: FuCalculationInput) -> list[FuBreakdownItem]:
    items = [FuBreakdownItem(name="副底", fu=BASE)]
    if not inp.tsumo and not inp.hand_open:
        items.append(FuBreakdownItem(name="門前ロン", fu=CLOSED_RON_BASE - BASE))

    if inp.wait in FU_WAITS:
        items.append(FuBreakdownItem(name="待ち", fu=WAIT_FU))

    pair_fu = PAIR_FU.get(inp.pair, 0)
    if pair_fu:
        items.append(FuBreakdownItem(name="雀頭", fu=pair_fu))

    items.extend(_meld_items(inp.melds))

    if inp.tsumo and not inp.pinfu:
        items.append(FuBreakdownItem(name="ツモ", fu=TSUMO_FU))

    total = sum(item.fu for item in items)
    rounded = ((total + 9) // 10) * 10
    if rounded > total:
        items.append(FuBreakdownItem(name="切り上げ", fu=rounded - total))
    return items


def fu_breakdown(inp: FuCalculationInput) -> list[FuBreakdownItem]:
    """Itemised fu for a hand description; the items sum to ``compute_fu``."""
    for rule in SPECIAL_RULES:
        items = rule(inp)
        if items is not None:
            return items
    return _regular_items(inp)


def compute_fu(inp: FuCalculationInput) -> int:
    return sum(item.fu for item in fu_breakdown(inp))
