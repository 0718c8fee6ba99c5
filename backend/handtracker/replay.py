"""Replay of a finished hand.

Only final stacks are stored, so the replay first works the stacks back to
where they stood before the blinds, then walks the action log forward one
entry at a time.  Every intermediate state is computed once up front;
navigation afterwards is plain indexing.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from handtracker.cards import board_cards
from handtracker.history import HandRecord
from handtracker.models import ActionType, HandAction, Seat, Street

BLINDS_POSTED_TEXT = "Blinds posted"
HERO_LABEL = "Hero"

BOARD_CARDS_BY_STREET = {
    Street.PREFLOP: 0,
    Street.FLOP: 3,
    Street.TURN: 4,
    Street.RIVER: 5,
}

_CHIPS_IN = (ActionType.POST_BLIND, ActionType.CALL, ActionType.BET, ActionType.ALL_IN)


class ReplayState(BaseModel):
    """Table as it looked right after ``action_index`` was applied."""

    model_config = ConfigDict(frozen=True)

    action_index: int
    street: Street = Street.PREFLOP
    visible_community_cards: tuple[str, ...] = ()
    pot: int = 0
    bets: dict[int, int] = Field(default_factory=dict)
    stacks: dict[int, int] = Field(default_factory=dict)
    folded_seats: frozenset[int] = frozenset()
    active_seat: Optional[int] = None
    last_action: Optional[HandAction] = None
    is_complete: bool = False

    @property
    def total_pot(self) -> int:
        """Pot plus the bets still in front of the players."""
        return self.pot + sum(self.bets.values())


def visible_community_cards(community_cards: Iterable[str], street: Street) -> list[str]:
    return board_cards(community_cards)[: BOARD_CARDS_BY_STREET[street]]


def reconstruct_initial_stacks(record: HandRecord) -> dict[int, int]:
    """Stacks before the blinds, worked back from the final stacks.

    Chips a seat put in are added back; chips it won are taken off again.
    A seat with no recorded stack starts from zero.
    """
    stacks = {s.number: s.stack or 0 for s in record.seats if s.is_occupied}
    for action in record.actions.actions:
        if not action.amount:
            continue
        current = stacks.get(action.seat_number, 0)
        if action.type == ActionType.WIN:
            stacks[action.seat_number] = current - action.amount
        else:
            stacks[action.seat_number] = current + action.amount
    return stacks


def apply_action(
    state: ReplayState,
    action: HandAction,
    community_cards: Iterable[str],
    action_index: int,
) -> ReplayState:
    """Apply one logged action with the live engine's chip movements."""
    street = state.street
    visible = state.visible_community_cards
    pot = state.pot
    bets = dict(state.bets)
    stacks = dict(state.stacks)
    folded = state.folded_seats

    if action.street != street:
        # New street: the previous round's bets go into the pot
        pot += sum(bets.values())
        bets = {}
        street = action.street
        visible = tuple(visible_community_cards(community_cards, street))

    seat_no = action.seat_number
    if action.type == ActionType.FOLD:
        folded = folded | {seat_no}
    elif action.type in _CHIPS_IN:
        if action.amount:
            bets[seat_no] = bets.get(seat_no, 0) + action.amount
            stacks[seat_no] = stacks.get(seat_no, 0) - action.amount
    elif action.type == ActionType.WIN:
        if action.amount:
            pot += sum(bets.values())
            bets = {}
            stacks[seat_no] = stacks.get(seat_no, 0) + action.amount
            pot = max(0, pot - action.amount)

    return ReplayState(
        action_index=action_index,
        street=street,
        visible_community_cards=visible,
        pot=pot,
        bets=bets,
        stacks=stacks,
        folded_seats=folded,
        active_seat=seat_no,
        last_action=action,
    )


def build_replay_states(record: HandRecord) -> list[ReplayState]:
    """One state for "blinds posted", then one per remaining action."""
    actions = record.actions.actions
    first = record.actions.first_discretionary_index()

    state = ReplayState(
        action_index=first - 1,
        stacks=reconstruct_initial_stacks(record),
    )
    for i in range(first):
        state = apply_action(state, actions[i], record.community_cards, i)
    # Shown as "Blinds posted" rather than as the last blind
    state = state.model_copy(
        update={"action_index": first - 1, "last_action": None, "active_seat": None}
    )

    states = [state]
    for i in range(first, len(actions)):
        state = apply_action(state, actions[i], record.community_cards, i)
        states.append(state)

    states[-1] = states[-1].model_copy(update={"is_complete": True})
    return states


def _player_name(seats: Iterable[Seat], seat_number: int, hero_seat: Optional[int]) -> str:
    if seat_number == hero_seat:
        return HERO_LABEL
    for s in seats:
        if s.number == seat_number and s.player is not None and s.player.name:
            return s.player.name
    return f"Seat {seat_number}"


def format_action(
    action: HandAction, seats: Iterable[Seat], hero_seat: Optional[int] = None
) -> str:
    """Human-readable line such as "Alice calls 10"."""
    name = _player_name(seats, action.seat_number, hero_seat)
    amount = action.amount if action.amount else ""
    if action.type == ActionType.FOLD:
        text = f"{name} folds"
    elif action.type == ActionType.CHECK:
        text = f"{name} checks"
    elif action.type == ActionType.CALL:
        text = f"{name} calls {amount}"
    elif action.type == ActionType.BET:
        text = f"{name} bets {amount}"
    elif action.type == ActionType.ALL_IN:
        text = f"{name} goes all-in for {amount}"
    elif action.type == ActionType.POST_BLIND:
        text = f"{name} posts {amount}"
    elif action.type == ActionType.WIN:
        text = f"{name} wins {amount}"
    else:
        text = f"{name} acts"
    return text.rstrip()


class HandReplay:
    """Cursor over the precomputed states of one hand.

    Index ``first_action_index - 1`` is the rest state right after the
    blinds; index ``i`` beyond that is the state after ``actions[i]``.
    """

    def __init__(self, record: HandRecord) -> None:
        self.record = record
        self.first_action_index = record.actions.first_discretionary_index()
        self.states = build_replay_states(record)
        self.current_index = self.min_index
        self.show_villain_cards = False

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    @property
    def total_actions(self) -> int:
        return len(self.record.actions)

    @property
    def min_index(self) -> int:
        return self.first_action_index - 1

    @property
    def max_index(self) -> int:
        return max(self.min_index, self.total_actions - 1)

    @property
    def can_go_next(self) -> bool:
        return self.current_index < self.max_index

    @property
    def can_go_prev(self) -> bool:
        return self.current_index > self.min_index

    # ------------------------------------------------------------------
    # Current position
    # ------------------------------------------------------------------

    def state_at(self, index: int) -> ReplayState:
        pos = index - self.min_index
        if 0 <= pos < len(self.states):
            return self.states[pos]
        return self.states[0]

    @property
    def state(self) -> ReplayState:
        return self.state_at(self.current_index)

    @property
    def current_action(self) -> Optional[HandAction]:
        if self.first_action_index <= self.current_index < self.total_actions:
            return self.record.actions[self.current_index]
        return None

    @property
    def action_text(self) -> str:
        action = self.current_action
        if action is None:
            return BLINDS_POSTED_TEXT
        return format_action(action, self.record.seats, self.record.hero_seat)

    @property
    def progress(self) -> str:
        done = self.current_index - self.first_action_index + 1
        total = self.total_actions - self.first_action_index
        return f"{done} / {total}"

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_to(self, index: int) -> ReplayState:
        self.current_index = min(max(index, self.min_index), self.max_index)
        return self.state

    def next_action(self) -> ReplayState:
        if self.can_go_next:
            self.current_index += 1
        return self.state

    def prev_action(self) -> ReplayState:
        if self.can_go_prev:
            self.current_index -= 1
        return self.state

    def go_to_start(self) -> ReplayState:
        return self.go_to(self.min_index)

    def go_to_end(self) -> ReplayState:
        return self.go_to(self.max_index)

    def jump_to_street(self, street: Street) -> ReplayState:
        if street == Street.PREFLOP:
            return self.go_to_start()
        for i, action in enumerate(self.record.actions.actions):
            if i >= self.first_action_index and action.street == street:
                return self.go_to(i)
        return self.state

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    def toggle_villain_cards(self) -> bool:
        self.show_villain_cards = not self.show_villain_cards
        return self.show_villain_cards

    def visible_hole_cards(self) -> dict[int, list[str]]:
        """Hero's cards always; everyone else's when toggled or at the end."""
        reveal_all = self.show_villain_cards or self.state.is_complete
        return {
            seat_no: list(cards)
            for seat_no, cards in self.record.hole_cards.items()
            if seat_no == self.record.hero_seat or reveal_all
        }

    def winner_names(self) -> list[str]:
        return [
            _player_name(self.record.seats, seat_no, self.record.hero_seat)
            for seat_no in self.record.winners
        ]

    def frame(self) -> dict[str, Any]:
        """Serializable view of the current position."""
        return {
            "index": self.current_index,
            "state": self.state.model_dump(mode="json"),
            "action_text": self.action_text,
            "progress": self.progress,
            "can_go_next": self.can_go_next,
            "can_go_prev": self.can_go_prev,
            "hole_cards": self.visible_hole_cards(),
        }
