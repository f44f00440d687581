from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException

from riichi_club.schemas import (
    MELD_LIMIT,
    DecisionQuizInput,
    DiscardQuizInput,
    ErrorBody,
    Meld,
    MeldCounts,
    TournamentRound,
    Wind,
)
from riichi_club.tiles import RED_FIVES, Suit, max_copies, normalize_red, resolve

HAND_SIZE = 14
NON_USER_HAND_SIZE = 13
STARTING_SCORE_TOTAL = 100000
SEAT_ORDER = [Wind.E, Wind.S, Wind.W, Wind.N]


class ErrorKind(str, Enum):
    invalid_tile_reference = "InvalidTileReference"
    multiplicity_exceeded = "MultiplicityExceeded"
    malformed_hand_size = "MalformedHandSize"
    orphan_response_key = "OrphanResponseKey"
    too_many_melds = "TooManyMelds"
    duplicate_pairing_constraint = "DuplicatePairingConstraint"
    invalid_meld_shape = "InvalidMeldShape"
    invalid_seat_assignment = "InvalidSeatAssignment"
    invalid_discard_history = "InvalidDiscardHistory"
    invalid_score = "InvalidScore"


@dataclass(frozen=True)
class ValidationIssue:
    kind: ErrorKind
    message: str
    tile: str | None = None

    def to_error_body(self) -> ErrorBody:
        details = {"tile": self.tile} if self.tile else None
        return ErrorBody(code=self.kind.value, message=self.message, details=details)


def raise_for_issue(issue: ValidationIssue | None) -> None:
    if issue is not None:
        raise HTTPException(status_code=422, detail=issue.to_error_body().model_dump())


def validate_tile_references(tile_ids: Iterable[str]) -> ValidationIssue | None:
    for tile_id in tile_ids:
        if resolve(tile_id) is None:
            return ValidationIssue(ErrorKind.invalid_tile_reference, f"Unknown tile id: {tile_id}", tile_id)
    return None


def validate_hand_multiplicity(tile_ids: Iterable[str]) -> ValidationIssue | None:
    for tile_id, count in Counter(tile_ids).items():
        if tile_id in RED_FIVES:
            if count > 1:
                return ValidationIssue(
                    ErrorKind.multiplicity_exceeded,
                    f"Red 5 tile {tile_id} can only appear once in hand",
                    tile_id,
                )
        elif count > 4:
            return ValidationIssue(
                ErrorKind.multiplicity_exceeded,
                f"Tile {tile_id} cannot appear more than 4 times in hand",
                tile_id,
            )
    return None


def validate_hand_size(tile_ids: list[str], expected: int = HAND_SIZE) -> ValidationIssue | None:
    if len(tile_ids) != expected:
        return ValidationIssue(
            ErrorKind.malformed_hand_size,
            f"Hand must contain exactly {expected} tiles, got {len(tile_ids)}",
        )
    return None


def validate_response_keys(responses: Mapping[str, object], hand_tile_ids: Iterable[str]) -> ValidationIssue | None:
    held = set(hand_tile_ids)
    for tile_id in responses:
        if tile_id not in held:
            return ValidationIssue(
                ErrorKind.orphan_response_key,
                f"Response tileId {tile_id} is not part of the hand",
                tile_id,
            )
    return None


def validate_meld_set(melds: MeldCounts) -> ValidationIssue | None:
    if melds.total > MELD_LIMIT:
        return ValidationIssue(
            ErrorKind.too_many_melds,
            f"A hand holds at most {MELD_LIMIT} melds, got {melds.total}",
        )
    return None


def validate_pairing_structure(tournament_round: TournamentRound) -> ValidationIssue | None:
    table_numbers: set[int] = set()
    seated: list[str] = []
    for pairing in tournament_round.pairings:
        if pairing.table_number in table_numbers:
            return ValidationIssue(
                ErrorKind.duplicate_pairing_constraint,
                f"Table number {pairing.table_number} is duplicated in round {tournament_round.round_number}",
            )
        table_numbers.add(pairing.table_number)

        if len(pairing.players) != 4:
            return ValidationIssue(ErrorKind.duplicate_pairing_constraint, "Each pairing must have exactly 4 players")
        player_ids = [entry.player_id for entry in pairing.players]
        if len(set(player_ids)) != 4:
            return ValidationIssue(ErrorKind.duplicate_pairing_constraint, "All players in a pairing must be unique")
        if len({entry.seat for entry in pairing.players}) != 4:
            return ValidationIssue(ErrorKind.duplicate_pairing_constraint, "All seats in a pairing must be unique")
        seated.extend(player_ids)

    if len(set(seated)) != len(seated):
        return ValidationIssue(
            ErrorKind.duplicate_pairing_constraint,
            "No player can appear in more than one pairing within a round",
        )
    return None


def validate_tournament_players(player_ids: Iterable[str]) -> ValidationIssue | None:
    ids = list(player_ids)
    if len(set(ids)) != len(ids):
        return ValidationIssue(ErrorKind.duplicate_pairing_constraint, "All players in tournament must be unique")
    return None


def validate_discard_quiz(quiz: DiscardQuizInput, responses: Mapping[str, object] | None = None) -> ValidationIssue | None:
    return (
        validate_tile_references(quiz.hand)
        or validate_tile_references([quiz.dora_indicator])
        or validate_hand_size(quiz.hand)
        or validate_hand_multiplicity(quiz.hand)
        or validate_response_keys(responses or {}, quiz.hand)
    )


# Decision quiz rules


def _meld_numbers(tiles: list[str]) -> tuple[Suit, list[int]] | None:
    resolved = [resolve(t) for t in tiles]
    if any(t is None for t in resolved):
        return None
    suits = {t.suit for t in resolved}
    if len(suits) != 1 or resolved[0].number is None:
        return None
    return resolved[0].suit, sorted(t.number for t in resolved)


def is_sequence(meld: Meld) -> bool:
    if len(meld.tiles) != 3:
        return False
    parsed = _meld_numbers(meld.tiles)
    if parsed is None:
        return False
    _, numbers = parsed
    return numbers[0] + 1 == numbers[1] and numbers[1] + 1 == numbers[2]


def validate_meld_shape(meld: Meld) -> ValidationIssue | None:
    if len(meld.tiles) not in {3, 4}:
        return ValidationIssue(
            ErrorKind.invalid_meld_shape,
            f"Meld must contain exactly 3 or 4 tiles, got {len(meld.tiles)}",
        )
    issue = validate_tile_references(meld.tiles)
    if issue:
        return issue
    if len({normalize_red(t) for t in meld.tiles}) == 1:
        return None
    if _meld_numbers(meld.tiles) is None:
        return ValidationIssue(ErrorKind.invalid_meld_shape, "All tiles in a meld must share a suit or be identical")
    if is_sequence(meld):
        return None
    return ValidationIssue(ErrorKind.invalid_meld_shape, "Meld must be identical tiles or a 3-tile sequence")


def _previous_seat(seat: Wind) -> Wind:
    return SEAT_ORDER[(SEAT_ORDER.index(seat) + 3) % 4]


def _validate_stolen_tile(meld: Meld, owner: Wind, where: str) -> ValidationIssue | None:
    if len(meld.tiles) == 3:
        if meld.stolen_tile_index is None or meld.stolen_from_seat is None:
            return ValidationIssue(ErrorKind.invalid_meld_shape, f"{where}: 3-tile meld must record the claimed tile")
    elif meld.is_closed_kan:
        return None
    elif meld.stolen_from_seat is None:
        return ValidationIssue(
            ErrorKind.invalid_meld_shape,
            f"{where}: if stolen_tile_index is set, stolen_from_seat must also be set",
        )

    if meld.stolen_tile_index is not None and meld.stolen_tile_index >= len(meld.tiles):
        return ValidationIssue(
            ErrorKind.invalid_meld_shape,
            f"{where}: stolen_tile_index {meld.stolen_tile_index} is out of bounds",
        )
    if is_sequence(meld):
        expected = _previous_seat(owner)
        if meld.stolen_from_seat != expected:
            return ValidationIssue(
                ErrorKind.invalid_meld_shape,
                f"{where}: sequence meld must be claimed from the previous seat ({expected.value})",
            )
    elif meld.stolen_from_seat == owner:
        return ValidationIssue(ErrorKind.invalid_meld_shape, f"{where}: meld cannot be claimed from its owner")
    return None


def _validate_table_multiplicity(quiz: DecisionQuizInput) -> ValidationIssue | None:
    counts: Counter[str] = Counter()
    for player in quiz.players:
        counts.update(player.hand)
        counts.update(player.discard)
        for meld in player.melds:
            counts.update(meld.tiles)
    for tile_id, count in counts.items():
        if count > max_copies(tile_id):
            return ValidationIssue(
                ErrorKind.multiplicity_exceeded,
                f"Tile {tile_id} appears {count} times across all players, limit is {max_copies(tile_id)}",
                tile_id,
            )
    return None


def _validate_discard_counts(quiz: DecisionQuizInput, user_seat: Wind) -> ValidationIssue | None:
    # Undo every call, then credit the seats still to act before East comes round again.
    base = {player.seat: len(player.discard) for player in quiz.players}
    for player in quiz.players:
        for meld in player.melds:
            if meld.stolen_from_seat is None:
                continue
            base[meld.stolen_from_seat] += 1
            idx = (SEAT_ORDER.index(meld.stolen_from_seat) + 1) % 4
            while SEAT_ORDER[idx] != player.seat:
                base[SEAT_ORDER[idx]] += 1
                idx = (idx + 1) % 4

    idx = SEAT_ORDER.index(user_seat)
    while SEAT_ORDER[idx] != Wind.E:
        base[SEAT_ORDER[idx]] += 1
        idx = (idx + 1) % 4

    expected = base[user_seat]
    for seat in SEAT_ORDER:
        if base[seat] != expected:
            return ValidationIssue(
                ErrorKind.invalid_discard_history,
                f"Player {seat.value}: adjusted base discard count is {base[seat]}, expected {expected}",
            )
    return None


def validate_decision_quiz(quiz: DecisionQuizInput, responses: Mapping[str, object] | None = None) -> ValidationIssue | None:
    if len(quiz.players) != 4:
        return ValidationIssue(ErrorKind.invalid_seat_assignment, "Must have exactly 4 players")

    all_tiles = list(quiz.dora_indicators)
    for player in quiz.players:
        all_tiles.extend(player.hand)
        all_tiles.extend(player.discard)
        for meld in player.melds:
            all_tiles.extend(meld.tiles)
    issue = validate_tile_references(all_tiles) or _validate_table_multiplicity(quiz)
    if issue:
        return issue

    users = [p for p in quiz.players if p.is_user]
    if len(users) != 1:
        return ValidationIssue(ErrorKind.invalid_seat_assignment, "Exactly one player must be marked as the user")
    if len({p.seat for p in quiz.players}) != 4:
        return ValidationIssue(ErrorKind.invalid_seat_assignment, "All 4 players must have unique seat winds")
    user = users[0]

    issue = validate_response_keys(responses or {}, user.hand)
    if issue:
        return issue

    for i, player in enumerate(quiz.players):
        if len(player.melds) > MELD_LIMIT:
            return ValidationIssue(
                ErrorKind.too_many_melds,
                f"Player {i}: a hand holds at most {MELD_LIMIT} melds, got {len(player.melds)}",
            )
        expected = HAND_SIZE if player.is_user else NON_USER_HAND_SIZE
        total = len(player.hand) + 3 * len(player.melds)
        if total != expected:
            return ValidationIssue(
                ErrorKind.malformed_hand_size,
                f"Player {i}: hand ({len(player.hand)}) + melds ({3 * len(player.melds)}) = {total}, expected {expected}",
            )
        for j, meld in enumerate(player.melds):
            issue = _validate_stolen_tile(meld, player.seat, f"Player {i}, meld {j}")
            if issue:
                return issue

    issue = _validate_discard_counts(quiz, user.seat)
    if issue:
        return issue

    for i, player in enumerate(quiz.players):
        if player.score % 100 != 0:
            return ValidationIssue(
                ErrorKind.invalid_score,
                f"Player {i} ({player.seat.value}): score {player.score} is not a multiple of 100",
            )
    total_score = sum(p.score for p in quiz.players)
    if total_score != STARTING_SCORE_TOTAL:
        return ValidationIssue(
            ErrorKind.invalid_score,
            f"Total score must equal {STARTING_SCORE_TOTAL}, but got {total_score}",
        )

    for i, player in enumerate(quiz.players):
        if player.riichi_tile is None:
            continue
        if player.riichi_tile >= len(player.discard):
            return ValidationIssue(
                ErrorKind.invalid_discard_history,
                f"Player {i}: riichi_tile index {player.riichi_tile} is out of bounds for {len(player.discard)} discards",
            )
        if player.melds:
            return ValidationIssue(ErrorKind.invalid_discard_history, f"Player {i}: riichi_tile cannot be set with melds")

    for i, player in enumerate(quiz.players):
        for j, meld in enumerate(player.melds):
            issue = validate_meld_shape(meld)
            if issue:
                return ValidationIssue(issue.kind, f"Player {i}, meld {j}: {issue.message}", issue.tile)
    return None
