"""Action log and the persisted record of a finished hand."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from handtracker.models import ActionType, HandAction, Seat, SidePot, Street

if TYPE_CHECKING:
    from handtracker.engine import HandState


class ActionLog(BaseModel):
    """Append-only, ordered record of every action in one hand.

    ``append`` never mutates the log; it returns a new one whose last entry
    carries the next sequence number.
    """

    model_config = ConfigDict(frozen=True)

    actions: tuple[HandAction, ...] = ()

    def __len__(self) -> int:
        return len(self.actions)

    def __getitem__(self, idx: int) -> HandAction:
        return self.actions[idx]

    def append(
        self,
        seat_number: int,
        action_type: ActionType,
        street: Street,
        amount: Optional[int] = None,
    ) -> ActionLog:
        action = HandAction(
            seat_number=seat_number,
            type=action_type,
            amount=amount,
            street=street,
            timestamp=time.time(),
            sequence=len(self.actions),
        )
        return ActionLog(actions=self.actions + (action,))

    @property
    def last(self) -> Optional[HandAction]:
        return self.actions[-1] if self.actions else None

    def for_seat(self, seat_number: int) -> list[HandAction]:
        return [a for a in self.actions if a.seat_number == seat_number]

    def for_street(self, street: Street) -> list[HandAction]:
        return [a for a in self.actions if a.street == street]

    def first_discretionary_index(self) -> int:
        """Index of the first action that is not a blind post.

        Equals ``len(self)`` when the log holds nothing but blinds.
        """
        for i, action in enumerate(self.actions):
            if action.type != ActionType.POST_BLIND:
                return i
        return len(self.actions)

    def total_committed(self, seat_number: int) -> int:
        """Chips the seat put into the pot over the whole hand."""
        return sum(
            a.amount or 0
            for a in self.actions
            if a.seat_number == seat_number and a.type != ActionType.WIN
        )

    def total_wagered(self) -> int:
        """Chips every seat put in, blinds included."""
        return sum(a.amount or 0 for a in self.actions if a.type != ActionType.WIN)

    def total_won(self, seat_number: int) -> int:
        return sum(
            a.amount or 0
            for a in self.actions
            if a.seat_number == seat_number and a.type == ActionType.WIN
        )


class HandRecord(BaseModel):
    """Terminal snapshot of a hand, as handed to storage.

    Created once when the hand ends and treated as read-only afterwards.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    session_id: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)
    button_position: int = 1
    hero_seat: Optional[int] = None
    small_blind: int = 0
    big_blind: int = 0
    seats: tuple[Seat, ...] = ()
    community_cards: tuple[str, ...] = ()
    pot: int = 0  # left unawarded at the end
    total_pot: int = 0
    side_pots: tuple[SidePot, ...] = ()
    street: Street = Street.PREFLOP
    actions: ActionLog = ActionLog()
    hole_cards: dict[int, list[str]] = Field(default_factory=dict)
    winners: tuple[int, ...] = ()

    @classmethod
    def from_state(
        cls,
        state: HandState,
        hand_id: str,
        session_id: Optional[str] = None,
    ) -> HandRecord:
        return cls(
            id=hand_id,
            session_id=session_id,
            button_position=state.button_position,
            hero_seat=state.hero_seat,
            small_blind=state.small_blind,
            big_blind=state.big_blind,
            seats=state.seats,
            community_cards=state.community_cards,
            pot=state.pot,
            total_pot=state.actions.total_wagered(),
            side_pots=state.side_pots,
            street=state.street,
            actions=state.actions,
            hole_cards={k: list(v) for k, v in state.original_hand_cards.items()},
            winners=state.winners,
        )

    def seat(self, seat_number: int) -> Optional[Seat]:
        for s in self.seats:
            if s.number == seat_number:
                return s
        return None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HandRecord:
        return cls.model_validate(data)
