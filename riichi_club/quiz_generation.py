from __future__ import annotations

import math
import random

from riichi_club.schemas import DecisionQuizInput, DiscardQuizInput, PlayerScenario, RoundWind, Wind
from riichi_club.tiles import build_deck

SEATS = [Wind.E, Wind.S, Wind.W, Wind.N]
ROUND_WINDS = [RoundWind.E, RoundWind.S]
DORA_WEIGHTS = [50, 30, 15, 5]
DEAD_WALL = 14
STARTING_SCORE = 25000


def random_discard_scenario(rng: random.Random | None = None) -> DiscardQuizInput:
    """Deal a 14-tile hand and a dora indicator from a shuffled wall."""
    rng = rng or random.Random()
    wall = build_deck()
    rng.shuffle(wall)
    return DiscardQuizInput(
        hand=wall[:14],
        dora_indicator=wall[14],
        seat=rng.choice(SEATS),
        round_wind=rng.choice(ROUND_WINDS),
    )


def generate_num_dora(rng: random.Random | None = None) -> int:
    rng = rng or random.Random()
    return rng.choices(range(1, len(DORA_WEIGHTS) + 1), weights=DORA_WEIGHTS)[0]


def _max_adjustment(round_value: int) -> int:
    # in hundreds of points
    if round_value <= 1:
        return 0
    if round_value <= 2:
        return 40
    if round_value <= 4:
        return 80
    if round_value <= 6:
        return 120
    return 160


def calculate_player_scores(round_number: int, round_wind: RoundWind, rng: random.Random | None = None) -> list[int]:
    """Four scores, multiples of 100 summing to 100000, spread wider later in the game."""
    rng = rng or random.Random()
    limit = _max_adjustment(round_number + (0 if round_wind == RoundWind.E else 4))
    adjustments = [rng.randint(-limit, limit) * 100 for _ in range(4)]

    drift = sum(adjustments)
    if drift:
        per_player = math.floor(drift / 400 + 0.5) * 100
        adjustments = [a - per_player for a in adjustments]
        adjustments[0] -= drift - per_player * 4
    return [STARTING_SCORE + a for a in adjustments]


def random_decision_scenario(rng: random.Random | None = None) -> DecisionQuizInput:
    rng = rng or random.Random()
    user_seat = rng.choice(SEATS)
    round_wind = rng.choice(ROUND_WINDS)
    round_number = rng.randint(1, 4)
    num_dora = generate_num_dora(rng)

    wall = build_deck()
    rng.shuffle(wall)
    cursor = 0

    def draw(count: int) -> list[str]:
        nonlocal cursor
        tiles = wall[cursor : cursor + count]
        cursor += len(tiles)
        return tiles

    hands = {seat: draw(13) for seat in SEATS}
    hands[user_seat].extend(draw(1))

    # Seats ahead of the user in turn order have already discarded this go-around.
    base_discards = rng.randint(1, 15)
    user_index = SEATS.index(user_seat)
    discards = {seat: draw(base_discards + (1 if i < user_index else 0)) for i, seat in enumerate(SEATS)}

    dora_indicators = draw(num_dora)
    scores = calculate_player_scores(round_number, round_wind, rng)

    players = [
        PlayerScenario(
            seat=seat,
            hand=sorted(hands[seat]),
            discard=discards[seat],
            score=scores[i],
            is_user=seat == user_seat,
        )
        for i, seat in enumerate(SEATS)
    ]
    return DecisionQuizInput(
        players=players,
        dora_indicators=dora_indicators,
        round_wind=round_wind,
        round_number=round_number,
        remaining_tile_count=len(wall) - cursor - (DEAD_WALL - num_dora),
    )
