from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator

from riichi_club.tiles import Suit


class Wind(str, Enum):
    E = "E"
    S = "S"
    W = "W"
    N = "N"


class RoundWind(str, Enum):
    E = "E"
    S = "S"


class TableSeat(str, Enum):
    east = "East"
    south = "South"
    west = "West"
    north = "North"


class WaitType(str, Enum):
    none = "none"
    ryanmen = "ryanmen"
    kanchan = "kanchan"
    penchan = "penchan"
    tanki = "tanki"
    shanpon = "shanpon"


class PairType(str, Enum):
    none = "none"
    dragon = "dragon"
    seat_wind = "seat_wind"
    round_wind = "round_wind"
    both_winds = "both_winds"


TileCode = str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict | None = None


class TileOut(BaseModel):
    id: TileCode
    name: str
    suit: Suit


class TileListResponse(BaseModel):
    tiles: list[TileOut]


# Fu calculator input

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")
# longer digit runs are garbage, not counts
_MAX_COUNT_DIGITS = 9


def _coerce_count(value: Any) -> int:
    """Read a live form counter; blanks, junk and negatives count as zero."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0) if math.isfinite(value) else 0
    match = _LEADING_DIGITS.match(str(value))
    if match is None or len(match.group(1)) > _MAX_COUNT_DIGITS:
        return 0
    return int(match.group(1))


MELD_LIMIT = 4


class MeldCounts(BaseModel):
    open_triplets_simples: int = 0
    closed_triplets_simples: int = 0
    open_triplets_honors: int = 0
    closed_triplets_honors: int = 0
    open_kans_simples: int = 0
    closed_kans_simples: int = 0
    open_kans_honors: int = 0
    closed_kans_honors: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _lenient_count(cls, value: Any) -> int:
        return _coerce_count(value)

    @property
    def total(self) -> int:
        return sum(getattr(self, name) for name in type(self).model_fields)

    def with_count(self, field: str, value: Any) -> MeldCounts:
        """Set one counter, clamped so the hand never exceeds four melds."""
        others = self.total - getattr(self, field)
        allowed = max(0, min(MELD_LIMIT, MELD_LIMIT - others))
        return self.model_copy(update={field: max(0, min(allowed, _coerce_count(value)))})


class FuCalculationInput(BaseModel):
    tsumo: bool = False
    hand_open: bool = False
    seven_pairs: bool = False
    pinfu: bool = False
    open_all_sequences: bool = False
    han_count: int = 0
    wait: WaitType = WaitType.none
    pair: PairType = PairType.none
    melds: MeldCounts = Field(default_factory=MeldCounts)

    @field_validator("han_count", mode="before")
    @classmethod
    def _lenient_han(cls, value: Any) -> int:
        return _coerce_count(value)


class FuBreakdownItem(BaseModel):
    name: str
    fu: int


class FuResponse(BaseModel):
    fu: int
    breakdown: list[FuBreakdownItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# Quiz documents


class QuizResponse(BaseModel):
    user_ids: list[str] = Field(default_factory=list)


class Meld(BaseModel):
    tiles: list[TileCode]
    stolen_tile_index: conint(ge=0, le=3) | None = None
    stolen_from_seat: Wind | None = None

    @property
    def is_closed_kan(self) -> bool:
        return len(self.tiles) == 4 and self.stolen_tile_index is None and self.stolen_from_seat is None


class PlayerScenario(BaseModel):
    seat: Wind
    hand: list[TileCode]
    melds: list[Meld] = Field(default_factory=list)
    discard: list[TileCode] = Field(default_factory=list)
    score: int
    is_user: bool = False
    riichi_tile: conint(ge=0) | None = None


class DiscardQuizInput(BaseModel):
    hand: list[TileCode]
    dora_indicator: TileCode
    seat: Wind
    round_wind: RoundWind

    model_config = ConfigDict(extra="forbid")


class DiscardQuiz(DiscardQuizInput):
    id: str
    responses: dict[TileCode, QuizResponse] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def response_hand(self) -> list[TileCode]:
        return self.hand


class DecisionQuizInput(BaseModel):
    players: list[PlayerScenario]
    dora_indicators: list[TileCode] = Field(min_length=1, max_length=4)
    round_wind: RoundWind
    round_number: conint(ge=1, le=4)
    remaining_tile_count: int = 0

    model_config = ConfigDict(extra="forbid")

    def user_player(self) -> PlayerScenario | None:
        return next((p for p in self.players if p.is_user), None)


class DecisionQuiz(DecisionQuizInput):
    id: str
    responses: dict[TileCode, QuizResponse] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def response_hand(self) -> list[TileCode]:
        user = self.user_player()
        return user.hand if user else []


class DiscardQuizOut(DiscardQuiz):
    dora: TileCode | None = None


class DecisionQuizOut(DecisionQuiz):
    doras: list[TileCode | None] = Field(default_factory=list)


class ResponseSubmission(BaseModel):
    tile_id: TileCode
    user_id: str = Field(min_length=1)


# Tournament pairings


class PairingSeat(BaseModel):
    player_id: str
    seat: TableSeat


class Pairing(BaseModel):
    table_number: conint(ge=1)
    players: list[PairingSeat]
    game_id: str | None = None


class TournamentRound(BaseModel):
    round_number: conint(ge=1)
    pairings: list[Pairing] = Field(default_factory=list)
    # tournament entrants, checked alongside the pairings
    players: list[str] = Field(default_factory=list)


class RoundValidationResponse(BaseModel):
    status: Literal["ok"]
    round_number: int
    tables: int
