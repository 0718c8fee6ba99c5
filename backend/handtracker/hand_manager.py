"""Hand manager: business logic for recording and replaying hands."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from handtracker import store
from handtracker.cards import ensure_unique_cards, normalize_board, normalize_code
from handtracker.engine import HandEngine
from handtracker.history import HandRecord
from handtracker.models import (
    CreateHandRequest,
    HandView,
    PotAssignment,
    SetCardsRequest,
    Street,
)
from handtracker.replay import HandReplay

logger = logging.getLogger(__name__)


def _build_view(hand_id: str, engine: HandEngine, accepted: bool = True) -> HandView:
    return HandView(
        hand_id=hand_id,
        accepted=accepted,
        state=engine.state.to_dict(),
        positions=engine.state.positions(),
        can_undo=engine.can_undo,
    )


async def _load_engine(hand_id: str) -> HandEngine:
    """Load a live hand from storage."""
    data = await store.load_engine(hand_id)
    if data is None:
        raise ValueError("Hand not found")
    return HandEngine.from_dict(data)


async def _save_engine(hand_id: str, engine: HandEngine) -> None:
    await store.store_engine(hand_id, engine.to_dict())


async def _load_record(record_id: str) -> HandRecord:
    data = await store.load_record(record_id)
    if data is None:
        raise ValueError("Hand record not found")
    return HandRecord.from_dict(data)


# ------------------------------------------------------------------
# Live recording
# ------------------------------------------------------------------


async def create_hand(req: CreateHandRequest) -> tuple[str, HandView]:
    """Set up a new hand and return (hand_id, view)."""
    numbers = [s.number for s in req.seats]
    if len(set(numbers)) != len(numbers):
        raise ValueError("Seat numbers must be unique")

    hand_id = str(uuid.uuid4())
    engine = HandEngine(
        seats=req.seats,
        button_position=req.button_position,
        small_blind=req.small_blind,
        big_blind=req.big_blind,
        straddle_count=req.straddle_count,
        is_mississippi_active=req.is_mississippi_active,
        hero_seat=req.hero_seat,
        bets=req.bets,
    )
    await _save_engine(hand_id, engine)
    await store.store_meta(hand_id, {"session_id": req.session_id})
    logger.info("Hand created: hand=%s seats=%d", hand_id, len(numbers))
    return hand_id, _build_view(hand_id, engine)


async def get_hand(hand_id: str) -> HandView:
    engine = await _load_engine(hand_id)
    return _build_view(hand_id, engine)


async def start_hand(hand_id: str) -> HandView:
    engine = await _load_engine(hand_id)
    before = engine.state
    engine.start_hand()
    await _save_engine(hand_id, engine)
    return _build_view(hand_id, engine, accepted=engine.state is not before)


async def process_action(hand_id: str, action: str, amount: int = 0) -> HandView:
    """Apply fold/check/call/bet/all-in for whoever is to act."""
    engine = await _load_engine(hand_id)
    accepted = engine.apply(action, amount)
    if accepted:
        await _save_engine(hand_id, engine)
    else:
        logger.debug("Action %s rejected for hand %s", action, hand_id)
    return _build_view(hand_id, engine, accepted=accepted)


async def undo(hand_id: str) -> HandView:
    engine = await _load_engine(hand_id)
    if not engine.can_undo:
        return _build_view(hand_id, engine, accepted=False)
    engine.undo()
    await _save_engine(hand_id, engine)
    return _build_view(hand_id, engine)


async def set_cards(hand_id: str, req: SetCardsRequest) -> HandView:
    """Replace hole cards and/or the board after validating them."""
    engine = await _load_engine(hand_id)
    state = engine.state

    hand_cards = state.hand_cards
    if req.hand_cards is not None:
        occupied = set(state.occupied_numbers())
        unknown = set(req.hand_cards) - occupied
        if unknown:
            raise ValueError(f"No player in seat(s): {sorted(unknown)}")
        hand_cards = {
            seat: [normalize_code(c) for c in cards]
            for seat, cards in req.hand_cards.items()
        }

    community = list(state.community_cards)
    if req.community_cards is not None:
        community = normalize_board(req.community_cards)

    ensure_unique_cards(hand_cards, community)

    if req.hand_cards is not None:
        engine.set_hand_cards(hand_cards)
    if req.community_cards is not None:
        engine.set_community_cards(community)
    await _save_engine(hand_id, engine)
    return _build_view(hand_id, engine)


async def payout(hand_id: str, assignments: list[PotAssignment]) -> HandView:
    """Award side pots to the winners the caller picked at showdown."""
    engine = await _load_engine(hand_id)
    if not engine.state.is_hand_complete:
        raise ValueError("Hand is still in progress")
    for a in assignments:
        if a.pot_index >= len(engine.state.side_pots):
            raise ValueError(f"No pot at index {a.pot_index}")
        pot = engine.state.side_pots[a.pot_index]
        ineligible = set(a.winner_seats) - set(pot.eligible_seats)
        if ineligible:
            raise ValueError(
                f"Seat(s) {sorted(ineligible)} cannot win pot {a.pot_index}"
            )

    before = engine.state
    engine.distribute_pot(assignments)
    accepted = engine.state is not before
    if accepted:
        await _save_engine(hand_id, engine)
    return _build_view(hand_id, engine, accepted=accepted)


async def save_hand(hand_id: str) -> HandRecord:
    """Persist the finished hand as a record and drop the live copy."""
    engine = await _load_engine(hand_id)
    if not engine.state.is_hand_complete:
        raise ValueError("Hand is still in progress")

    meta = await store.load_meta(hand_id)
    record = HandRecord.from_state(engine.state, hand_id, meta.get("session_id"))
    await store.store_record(record.id, record.to_dict())
    await store.delete_hand(hand_id)
    logger.info(
        "Hand saved: hand=%s actions=%d pot=%d",
        hand_id, len(record.actions), record.total_pot,
    )
    return record


# ------------------------------------------------------------------
# Records & replay
# ------------------------------------------------------------------


async def get_record(record_id: str) -> HandRecord:
    return await _load_record(record_id)


async def list_session_records(session_id: str) -> list[str]:
    return await store.list_session_records(session_id)


async def get_replay(record_id: str) -> dict[str, Any]:
    """Every replay state of a stored hand, with navigation bounds."""
    record = await _load_record(record_id)
    replay = HandReplay(record)
    return {
        "record_id": record_id,
        "first_action_index": replay.first_action_index,
        "min_index": replay.min_index,
        "max_index": replay.max_index,
        "states": [s.model_dump(mode="json") for s in replay.states],
        "winners": replay.winner_names(),
    }


async def get_replay_frame(
    record_id: str,
    index: Optional[int] = None,
    street: Optional[Street] = None,
    show_cards: bool = False,
) -> dict[str, Any]:
    """One replay position, addressed by index or by street."""
    record = await _load_record(record_id)
    replay = HandReplay(record)
    if street is not None:
        replay.jump_to_street(street)
    elif index is not None:
        replay.go_to(index)
    if show_cards:
        replay.toggle_villain_cards()
    return replay.frame()
