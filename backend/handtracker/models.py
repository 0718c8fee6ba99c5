"""Pydantic models shared by the engines and the API."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Street(str, Enum):
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"


STREET_ORDER: list[Street] = [Street.PREFLOP, Street.FLOP, Street.TURN, Street.RIVER]


class ActionType(str, Enum):
    POST_BLIND = "post-blind"
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    ALL_IN = "all-in"
    WIN = "win"


# --- Table / hand values ---


class TablePlayer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    stack: Optional[int] = Field(default=None, ge=0)  # None = unknown
    is_temp: bool = False


class Seat(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, le=8)
    seat_number: Optional[int] = Field(default=None, ge=1, le=9)
    player: Optional[TablePlayer] = None
    player_id: Optional[str] = None

    @property
    def number(self) -> int:
        return self.seat_number if self.seat_number is not None else self.index + 1

    @property
    def is_occupied(self) -> bool:
        return self.player is not None or bool(self.player_id)

    @property
    def stack(self) -> Optional[int]:
        return self.player.stack if self.player is not None else None


class HandAction(BaseModel):
    """One entry of a hand's action log."""

    model_config = ConfigDict(frozen=True)

    seat_number: int
    type: ActionType
    amount: Optional[int] = None
    street: Street
    timestamp: float
    sequence: int = 0


class SidePot(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: int
    eligible_seats: tuple[int, ...]

    @property
    def key(self) -> tuple[int, ...]:
        return tuple(sorted(self.eligible_seats))


class PotAssignment(BaseModel):
    pot_index: int = Field(..., ge=0)
    winner_seats: list[int] = Field(..., min_length=1)


# --- Request models ---


class CreateHandRequest(BaseModel):
    seats: list[Seat] = Field(..., min_length=2, max_length=9)
    button_position: int = Field(default=1, ge=1, le=9)
    small_blind: int = Field(default=1, ge=0)
    big_blind: int = Field(default=2, ge=0)
    straddle_count: int = Field(default=0, ge=0, le=7)
    is_mississippi_active: bool = False
    hero_seat: Optional[int] = Field(default=None, ge=1, le=9)
    session_id: Optional[str] = None
    # Straddles or other amounts posted before the hand starts
    bets: dict[int, int] = Field(default_factory=dict)


class HandActionRequest(BaseModel):
    action: str  # fold, check, call, bet, all-in
    amount: int = Field(default=0, ge=0)


class SetCardsRequest(BaseModel):
    hand_cards: Optional[dict[int, list[str]]] = None
    community_cards: Optional[list[str]] = None


class PayoutRequest(BaseModel):
    assignments: list[PotAssignment] = Field(..., min_length=1)


# --- Response models ---


class HandView(BaseModel):
    """Live hand state returned to clients."""

    hand_id: str
    accepted: bool = True
    state: dict
    positions: dict[int, str]
    can_undo: bool


class CreateHandResponse(BaseModel):
    hand_id: str
    hand: HandView


class ReplayFrame(BaseModel):
    index: int
    state: dict
    action_text: str
    progress: str
    can_go_next: bool
    can_go_prev: bool
    hole_cards: dict[int, list[str]] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    detail: str
