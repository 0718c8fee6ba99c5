"""Betting state machine for a single recorded hand.

``HandState`` is an immutable value.  Every transition (``start_hand``,
``fold``, ``check``, ``call``, ``bet``, ``distribute_pot``) takes a state and
returns a new one.  An illegal action is a *rejected transition*: the very
same state object comes back and nothing is raised, so callers detect a
no-op with ``new is old``.

Stacks are advisory.  A seat may have no recorded stack at all, and bets or
blinds larger than a recorded stack are accepted rather than refused.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from handtracker.history import ActionLog
from handtracker.models import (
    STREET_ORDER,
    ActionType,
    PotAssignment,
    Seat,
    SidePot,
    Street,
)
from handtracker.seating import next_active_seat, position_short_name

logger = logging.getLogger(__name__)

EMPTY_BOARD: tuple[str, ...] = ("", "", "", "", "")


class HandState(BaseModel):
    """Everything the engine knows about one hand."""

    model_config = ConfigDict(frozen=True)

    seats: tuple[Seat, ...] = ()
    bets: dict[int, int] = Field(default_factory=dict)  # current street only
    pot: int = 0  # swept off the betting line and not yet awarded
    side_pots: tuple[SidePot, ...] = ()
    street: Street = Street.PREFLOP
    current_action_seat: Optional[int] = None
    current_bet: int = 0
    min_raise: int = 0
    folded_seats: frozenset[int] = frozenset()
    acted_seats: frozenset[int] = frozenset()
    hand_cards: dict[int, list[str]] = Field(default_factory=dict)
    original_hand_cards: dict[int, list[str]] = Field(default_factory=dict)
    community_cards: tuple[str, ...] = EMPTY_BOARD
    button_position: int = 1
    hero_seat: Optional[int] = None
    small_blind: int = 0
    big_blind: int = 0
    straddle_count: int = 0
    is_mississippi_active: bool = False
    is_hand_started: bool = False
    is_picking_board: bool = False
    is_hand_complete: bool = False
    actions: ActionLog = ActionLog()
    winners: tuple[int, ...] = ()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def occupied_seats(self) -> list[Seat]:
        """Occupied seats sorted by seat number."""
        return sorted((s for s in self.seats if s.is_occupied), key=lambda s: s.number)

    def occupied_numbers(self) -> list[int]:
        return [s.number for s in self.occupied_seats()]

    def live_numbers(self) -> list[int]:
        """Occupied seats that have not folded."""
        return [n for n in self.occupied_numbers() if n not in self.folded_seats]

    def seat(self, seat_number: int) -> Optional[Seat]:
        for s in self.seats:
            if s.number == seat_number:
                return s
        return None

    def stack_of(self, seat_number: int) -> Optional[int]:
        s = self.seat(seat_number)
        return s.stack if s is not None else None

    def bet_of(self, seat_number: int) -> int:
        return self.bets.get(seat_number, 0)

    def positions(self) -> dict[int, str]:
        return {
            n: position_short_name(n, self.button_position)
            for n in self.occupied_numbers()
        }

    def chips_on_table(self) -> int:
        """pot + outstanding bets + every known stack."""
        stacks = sum(s.stack or 0 for s in self.occupied_seats())
        return self.pot + sum(self.bets.values()) + stacks

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HandState:
        return cls.model_validate(data)


def new_hand(
    seats: Iterable[Seat],
    button_position: int = 1,
    small_blind: int = 0,
    big_blind: int = 0,
    straddle_count: int = 0,
    is_mississippi_active: bool = False,
    hero_seat: Optional[int] = None,
    bets: Optional[dict[int, int]] = None,
) -> HandState:
    """Build a not-yet-started hand from the caller's table setup."""
    return HandState(
        seats=tuple(seats),
        button_position=button_position,
        small_blind=small_blind,
        big_blind=big_blind,
        straddle_count=straddle_count,
        is_mississippi_active=is_mississippi_active,
        hero_seat=hero_seat,
        bets={k: v for k, v in (bets or {}).items() if v > 0},
    )


# ----------------------------------------------------------------------
# Stack helpers
# ----------------------------------------------------------------------


def _with_stack(
    seats: tuple[Seat, ...], seat_number: int, stack: Optional[int]
) -> tuple[Seat, ...]:
    updated = []
    for s in seats:
        if s.number == seat_number and s.player is not None:
            s = s.model_copy(update={"player": s.player.model_copy(update={"stack": stack})})
        updated.append(s)
    return tuple(updated)


def _deduct(seats: tuple[Seat, ...], seat_number: int, amount: int) -> tuple[Seat, ...]:
    """Take ``amount`` off a known stack, never below zero."""
    for s in seats:
        if s.number == seat_number:
            if s.stack is None:
                return seats
            return _with_stack(seats, seat_number, max(0, s.stack - amount))
    return seats


def _credit(seats: tuple[Seat, ...], seat_number: int, amount: int) -> tuple[Seat, ...]:
    for s in seats:
        if s.number == seat_number:
            return _with_stack(seats, seat_number, (s.stack or 0) + amount)
    return seats


def _actor(state: HandState) -> Optional[int]:
    """The seat allowed to act, or None when no action is possible."""
    if not state.is_hand_started or state.is_hand_complete:
        return None
    seat_no = state.current_action_seat
    if seat_no is None:
        return None
    s = state.seat(seat_no)
    if s is None or not s.is_occupied:
        return None
    return seat_no


def _next_actor(state: HandState, seat_number: int, folded: Iterable[int]) -> Optional[int]:
    return next_active_seat(seat_number, state.occupied_numbers(), set(folded))


# ----------------------------------------------------------------------
# Hand start
# ----------------------------------------------------------------------


def start_hand(state: HandState) -> HandState:
    """Post blinds and any pre-seeded straddles, then pick the first actor."""
    if state.is_hand_started:
        return state
    numbers = state.occupied_numbers()
    if len(numbers) < 2:
        logger.debug("Cannot start hand with %d occupied seat(s)", len(numbers))
        return state

    button = state.button_position
    sb_idx = next((i for i, n in enumerate(numbers) if n > button), 0)
    sb_seat = numbers[sb_idx]
    bb_seat = numbers[(sb_idx + 1) % len(numbers)]

    preseeded = dict(state.bets)
    bets: dict[int, int] = {}
    seats = state.seats
    actions = state.actions

    # Walk clockwise from the small blind so the log reads in table order
    for offset in range(len(numbers)):
        seat_no = numbers[(sb_idx + offset) % len(numbers)]
        if seat_no in preseeded:
            amount = preseeded[seat_no]
        elif seat_no == sb_seat:
            amount = state.small_blind
        elif seat_no == bb_seat:
            amount = state.big_blind
        else:
            continue
        if amount <= 0:
            continue
        # Posted in full even when the stack is shorter
        bets[seat_no] = amount
        seats = _deduct(seats, seat_no, amount)
        actions = actions.append(seat_no, ActionType.POST_BLIND, Street.PREFLOP, amount)

    folded = state.folded_seats
    if len(numbers) == 2:
        first = button if button in numbers else next_active_seat(button, numbers, folded)
    elif state.is_mississippi_active:
        first = next_active_seat(button, numbers, folded) or button
    else:
        first = button
        # button -> SB -> BB -> UTG, then one more seat per straddle
        for _ in range(3 + state.straddle_count):
            nxt = next_active_seat(first, numbers, folded)
            if nxt is not None:
                first = nxt

    return state.model_copy(
        update={
            "seats": seats,
            "bets": bets,
            "actions": actions,
            "is_hand_started": True,
            "acted_seats": frozenset(),
            "original_hand_cards": {k: list(v) for k, v in state.hand_cards.items()},
            "current_action_seat": first,
            "current_bet": max([state.big_blind, *bets.values()]),
            "min_raise": state.big_blind,
        }
    )


# ----------------------------------------------------------------------
# Player actions
# ----------------------------------------------------------------------


def fold(state: HandState) -> HandState:
    actor = _actor(state)
    if actor is None:
        return state

    folded = state.folded_seats | {actor}
    hand_cards = {k: v for k, v in state.hand_cards.items() if k != actor}
    actions = state.actions.append(actor, ActionType.FOLD, state.street)

    remaining = [n for n in state.occupied_numbers() if n not in folded]
    if len(remaining) == 1:
        # Everyone else is out: the survivor takes everything without a showdown
        winner = remaining[0]
        total = state.pot + sum(state.bets.values())
        swept = state.model_copy(update={"folded_seats": folded})
        logger.debug("Seat %s wins %d uncontested", winner, total)
        return state.model_copy(
            update={
                "folded_seats": folded,
                "hand_cards": hand_cards,
                "side_pots": build_side_pots(swept),
                # The whole pot moves onto the winner's stack
                "pot": 0,
                "bets": {},
                "seats": _credit(state.seats, winner, total),
                "actions": actions.append(winner, ActionType.WIN, state.street, total),
                "current_action_seat": None,
                "is_hand_complete": True,
                "winners": (winner,),
            }
        )

    return _with_round_check(
        state.model_copy(
            update={
                "folded_seats": folded,
                "hand_cards": hand_cards,
                "actions": actions,
                "current_action_seat": _next_actor(state, actor, folded),
            }
        )
    )


def check(state: HandState) -> HandState:
    actor = _actor(state)
    if actor is None:
        return state
    if state.current_bet > state.bet_of(actor):
        logger.debug(
            "Rejected check from seat %s facing %d", actor, state.current_bet
        )
        return state

    return _with_round_check(
        state.model_copy(
            update={
                "acted_seats": state.acted_seats | {actor},
                "actions": state.actions.append(actor, ActionType.CHECK, state.street),
                "current_action_seat": _next_actor(state, actor, state.folded_seats),
            }
        )
    )


def call(state: HandState) -> HandState:
    actor = _actor(state)
    if actor is None:
        return state
    prior = state.bet_of(actor)
    owed = state.current_bet - prior
    if owed <= 0:
        logger.debug("Rejected call from seat %s: nothing to call", actor)
        return state

    stack = state.stack_of(actor)
    seats = state.seats
    if stack is None:
        paid = owed
    else:
        # A short stack calls all-in for what it has
        paid = min(owed, stack)
        seats = _with_stack(seats, actor, stack - paid)

    return _with_round_check(
        state.model_copy(
            update={
                "seats": seats,
                "bets": {**state.bets, actor: prior + paid},
                "acted_seats": state.acted_seats | {actor},
                "actions": state.actions.append(actor, ActionType.CALL, state.street, paid),
                "current_action_seat": _next_actor(state, actor, state.folded_seats),
            }
        )
    )


def bet(state: HandState, amount: int, is_all_in: bool = False) -> HandState:
    """Bet or raise *to* ``amount`` on the current street."""
    actor = _actor(state)
    if actor is None:
        return state
    prior = state.bet_of(actor)
    if amount <= prior or (amount < state.current_bet and not is_all_in):
        logger.debug(
            "Rejected bet of %d from seat %s (current bet %d)",
            amount, actor, state.current_bet,
        )
        return state

    current_bet = state.current_bet
    min_raise = state.min_raise
    acted = state.acted_seats
    if amount > current_bet:
        min_raise = amount - current_bet
        current_bet = amount
        # A raise reopens the action for everyone else
        acted = frozenset()

    owed = amount - prior
    stack = state.stack_of(actor)
    seats = state.seats
    if stack is not None:
        # Over-bets are taken at face value: the stack was really `owed`
        new_stack = 0 if is_all_in or owed > stack else stack - owed
        seats = _with_stack(seats, actor, new_stack)

    action_type = ActionType.ALL_IN if is_all_in else ActionType.BET
    return _with_round_check(
        state.model_copy(
            update={
                "seats": seats,
                "bets": {**state.bets, actor: amount},
                "current_bet": current_bet,
                "min_raise": min_raise,
                "acted_seats": acted | {actor},
                "actions": state.actions.append(actor, action_type, state.street, owed),
                "current_action_seat": _next_actor(state, actor, state.folded_seats),
            }
        )
    )


# ----------------------------------------------------------------------
# Round / Street Management
# ----------------------------------------------------------------------


def is_round_complete(state: HandState) -> bool:
    """True once every live seat is all-in or has acted and matched."""
    live = [s for s in state.occupied_seats() if s.number not in state.folded_seats]
    if len(live) <= 1:
        return True

    for s in live:
        if s.stack == 0:
            continue
        if s.number not in state.acted_seats:
            return False
        if state.bet_of(s.number) != state.current_bet:
            return False
    return True


def _with_round_check(state: HandState) -> HandState:
    if is_round_complete(state):
        return advance_street(state)
    return state


def _merge_pot(pots: list[SidePot], eligible: tuple[int, ...], amount: int) -> None:
    for i, pot in enumerate(pots):
        if pot.key == eligible:
            pots[i] = pot.model_copy(update={"amount": pot.amount + amount})
            return
    pots.append(SidePot(amount=amount, eligible_seats=eligible))


def build_side_pots(state: HandState) -> tuple[SidePot, ...]:
    """Fold the current street's bets into the hand's pots.

    Bets are sliced into tiers at each distinct bet size.  A tier's chips
    come from every seat (folded ones included); only non-folded seats that
    bet at least the tier boundary may win it.  Tiers whose eligible set
    matches an existing pot are added to that pot.
    """
    occupied = state.occupied_numbers()
    folded = state.folded_seats

    pots: list[SidePot] = []
    for pot in state.side_pots:
        # Seats that folded on a later street forfeit earlier pots
        eligible = tuple(n for n in pot.key if n not in folded)
        _merge_pot(pots, eligible, pot.amount)

    levels = sorted({state.bet_of(n) for n in occupied if state.bet_of(n) > 0})
    last_level = 0
    for level in levels:
        tier_total = sum(
            max(0, min(state.bet_of(n), level) - last_level) for n in occupied
        )
        eligible = tuple(
            n for n in occupied if n not in folded and state.bet_of(n) >= level
        )
        if tier_total > 0:
            _merge_pot(pots, eligible, tier_total)
        last_level = level

    return tuple(pots)


def advance_street(state: HandState) -> HandState:
    """Close the betting round and move to the next street."""
    update: dict[str, Any] = {
        "side_pots": build_side_pots(state),
        "pot": state.pot + sum(state.bets.values()),
        "bets": {},
        "current_bet": 0,
        "min_raise": state.big_blind,
        "acted_seats": frozenset(),
    }

    if state.street == Street.RIVER:
        # Showdown and payout are driven by the caller
        update["is_hand_complete"] = True
        update["current_action_seat"] = None
        logger.debug("Betting complete, pot %d", update["pot"])
        return state.model_copy(update=update)

    next_street = STREET_ORDER[STREET_ORDER.index(state.street) + 1]
    update["street"] = next_street
    update["is_picking_board"] = True
    update["current_action_seat"] = next_active_seat(
        state.button_position, state.occupied_numbers(), state.folded_seats
    )
    logger.info("Advancing to %s, pot %d", next_street.value, update["pot"])
    return state.model_copy(update=update)


# ----------------------------------------------------------------------
# Payout
# ----------------------------------------------------------------------


def distribute_pot(state: HandState, assignments: Iterable[PotAssignment]) -> HandState:
    """Pay each listed pot to its winners in equal integer shares.

    Awarded chips leave ``pot``; odd chips left over by a split stay in it.
    Winner seats that are not eligible for a pot are skipped.
    """
    assignments = list(assignments)
    if not state.is_hand_complete or state.winners or not assignments:
        return state

    seats = state.seats
    actions = state.actions
    winners: list[int] = []
    paid = 0
    for result in assignments:
        if result.pot_index >= len(state.side_pots):
            continue
        pot = state.side_pots[result.pot_index]
        eligible = [
            n for n in dict.fromkeys(result.winner_seats) if n in pot.eligible_seats
        ]
        if not eligible:
            continue
        share = pot.amount // len(eligible)
        for seat_no in eligible:
            seats = _credit(seats, seat_no, share)
            actions = actions.append(seat_no, ActionType.WIN, state.street, share)
            paid += share
            if seat_no not in winners:
                winners.append(seat_no)

    if not winners:
        return state
    return state.model_copy(
        update={
            "seats": seats,
            "actions": actions,
            "winners": tuple(winners),
            "pot": max(0, state.pot - paid),
        }
    )


# ----------------------------------------------------------------------
# Driver with undo
# ----------------------------------------------------------------------


class HandEngine:
    """Drives one hand and keeps the snapshots needed for undo."""

    def __init__(
        self,
        seats: Iterable[Seat],
        button_position: int = 1,
        small_blind: int = 0,
        big_blind: int = 0,
        straddle_count: int = 0,
        is_mississippi_active: bool = False,
        hero_seat: Optional[int] = None,
        bets: Optional[dict[int, int]] = None,
    ) -> None:
        self.state: HandState = new_hand(
            seats,
            button_position=button_position,
            small_blind=small_blind,
            big_blind=big_blind,
            straddle_count=straddle_count,
            is_mississippi_active=is_mississippi_active,
            hero_seat=hero_seat,
            bets=bets,
        )
        self.history: list[HandState] = []

    def _transition(self, new_state: HandState) -> HandState:
        if new_state is not self.state:
            self.history.append(self.state)
            self.state = new_state
        return self.state

    # Actions

    def start_hand(self) -> HandState:
        return self._transition(start_hand(self.state))

    def fold(self) -> HandState:
        return self._transition(fold(self.state))

    def check(self) -> HandState:
        return self._transition(check(self.state))

    def call(self) -> HandState:
        return self._transition(call(self.state))

    def bet(self, amount: int, is_all_in: bool = False) -> HandState:
        return self._transition(bet(self.state, amount, is_all_in))

    def distribute_pot(self, assignments: Iterable[PotAssignment]) -> HandState:
        return self._transition(distribute_pot(self.state, assignments))

    def apply(self, action: str, amount: int = 0) -> bool:
        """Apply a named action. Returns False when it was rejected."""
        before = self.state
        if action == ActionType.FOLD.value:
            self.fold()
        elif action == ActionType.CHECK.value:
            self.check()
        elif action == ActionType.CALL.value:
            self.call()
        elif action in (ActionType.BET.value, "raise"):
            self.bet(amount)
        elif action in (ActionType.ALL_IN.value, "all_in"):
            self.bet(amount, is_all_in=True)
        else:
            raise ValueError(f"Unknown action: {action}")
        return self.state is not before

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def undo(self) -> HandState:
        if self.history:
            self.state = self.history.pop()
        return self.state

    # Setup

    def _require_not_started(self) -> None:
        if self.state.is_hand_started:
            raise ValueError("Hand already started")

    def set_seats(self, seats: Iterable[Seat]) -> HandState:
        self._require_not_started()
        self.state = self.state.model_copy(update={"seats": tuple(seats)})
        return self.state

    def set_button_position(self, seat_number: int) -> HandState:
        self._require_not_started()
        self.state = self.state.model_copy(update={"button_position": seat_number})
        return self.state

    def set_straddle_count(self, count: int) -> HandState:
        self._require_not_started()
        self.state = self.state.model_copy(update={"straddle_count": max(0, count)})
        return self.state

    def set_mississippi(self, active: bool) -> HandState:
        self._require_not_started()
        self.state = self.state.model_copy(update={"is_mississippi_active": active})
        return self.state

    def set_bets(self, bets: dict[int, int]) -> HandState:
        self._require_not_started()
        self.state = self.state.model_copy(
            update={"bets": {k: v for k, v in bets.items() if v > 0}}
        )
        return self.state

    def set_hand_cards(self, hand_cards: dict[int, list[str]]) -> HandState:
        update: dict[str, Any] = {"hand_cards": {k: list(v) for k, v in hand_cards.items()}}
        if self.state.is_hand_started:
            # Cards entered late still belong in the saved record
            update["original_hand_cards"] = {
                **self.state.original_hand_cards,
                **update["hand_cards"],
            }
        self.state = self.state.model_copy(update=update)
        return self.state

    def set_community_cards(self, cards: Iterable[str]) -> HandState:
        self.state = self.state.model_copy(
            update={"community_cards": tuple(cards), "is_picking_board": False}
        )
        return self.state

    # ------------------------------------------------------------------
    # Serialization (for Redis persistence)
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HandEngine:
        engine = cls.__new__(cls)
        engine.state = HandState.from_dict(data["state"])
        engine.history = [HandState.from_dict(h) for h in data.get("history", [])]
        return engine
