"""Tests for hand_manager business logic with mocked Redis storage."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from handtracker.engine import HandEngine
from handtracker.hand_manager import (
    create_hand,
    get_hand,
    get_record,
    get_replay,
    get_replay_frame,
    list_session_records,
    payout,
    process_action,
    save_hand,
    set_cards,
    start_hand,
    undo,
)
from handtracker.history import HandRecord
from handtracker.models import (
    CreateHandRequest,
    PotAssignment,
    Seat,
    SetCardsRequest,
    Street,
    TablePlayer,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

PATCH_BASE = "handtracker.hand_manager.store"


def _seats(n: int = 3) -> list[Seat]:
    return [
        Seat(index=i - 1, player=TablePlayer(id=f"p{i}", name=f"Player{i}", stack=1000))
        for i in range(1, n + 1)
    ]


def _engine(started: bool = True) -> HandEngine:
    e = HandEngine(_seats(3), small_blind=10, big_blind=20, hero_seat=1)
    if started:
        e.start_hand()
    return e


def _finished_engine() -> HandEngine:
    e = _engine()
    e.fold()
    e.fold()
    return e


def _record_data() -> dict:
    return HandRecord.from_state(_finished_engine().state, "rec-1", "s1").to_dict()


@pytest.fixture
def mock_store():
    with patch(f"{PATCH_BASE}.load_engine", new_callable=AsyncMock) as load_engine, \
         patch(f"{PATCH_BASE}.store_engine", new_callable=AsyncMock) as store_engine, \
         patch(f"{PATCH_BASE}.store_meta", new_callable=AsyncMock) as store_meta, \
         patch(f"{PATCH_BASE}.load_meta", new_callable=AsyncMock, return_value={}) as load_meta, \
         patch(f"{PATCH_BASE}.delete_hand", new_callable=AsyncMock) as delete_hand, \
         patch(f"{PATCH_BASE}.store_record", new_callable=AsyncMock) as store_record, \
         patch(f"{PATCH_BASE}.load_record", new_callable=AsyncMock) as load_record, \
         patch(f"{PATCH_BASE}.list_session_records", new_callable=AsyncMock) as list_records:
        yield {
            "load_engine": load_engine,
            "store_engine": store_engine,
            "store_meta": store_meta,
            "load_meta": load_meta,
            "delete_hand": delete_hand,
            "store_record": store_record,
            "load_record": load_record,
            "list_session_records": list_records,
        }


# ---------------------------------------------------------------------------
# create / get / start
# ---------------------------------------------------------------------------


class TestCreateHand:
    async def test_returns_id_and_view(self, mock_store):
        req = CreateHandRequest(seats=_seats(3), small_blind=1, big_blind=2, session_id="s1")
        hand_id, view = await create_hand(req)

        assert isinstance(hand_id, str)
        assert view.hand_id == hand_id
        assert view.accepted
        assert not view.can_undo
        assert view.state["is_hand_started"] is False
        mock_store["store_engine"].assert_awaited_once()
        mock_store["store_meta"].assert_awaited_once_with(hand_id, {"session_id": "s1"})

    async def test_positions_in_view(self, mock_store):
        req = CreateHandRequest(seats=_seats(3), button_position=1)
        _, view = await create_hand(req)
        assert view.positions == {1: "BTN", 2: "SB", 3: "BB"}

    async def test_duplicate_seat_numbers_rejected(self, mock_store):
        seats = _seats(2) + [Seat(index=5, seat_number=2, player_id="p9")]
        with pytest.raises(ValueError, match="unique"):
            await create_hand(CreateHandRequest(seats=seats))
        mock_store["store_engine"].assert_not_awaited()


class TestGetHand:
    async def test_not_found(self, mock_store):
        mock_store["load_engine"].return_value = None
        with pytest.raises(ValueError, match="Hand not found"):
            await get_hand("nope")

    async def test_loads_engine(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        view = await get_hand("h1")
        assert view.state["current_action_seat"] == 1
        assert view.can_undo


class TestStartHand:
    async def test_start_posts_blinds(self, mock_store):
        mock_store["load_engine"].return_value = _engine(started=False).to_dict()
        view = await start_hand("h1")
        assert view.accepted
        assert view.state["is_hand_started"] is True
        mock_store["store_engine"].assert_awaited_once()

    async def test_second_start_not_accepted(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        view = await start_hand("h1")
        assert not view.accepted


# ---------------------------------------------------------------------------
# process_action / undo
# ---------------------------------------------------------------------------


class TestProcessAction:
    async def test_accepted_action_is_saved(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        view = await process_action("h1", "call")
        assert view.accepted
        mock_store["store_engine"].assert_awaited_once()
        saved = mock_store["store_engine"].await_args.args[1]
        assert HandEngine.from_dict(saved).state.bet_of(1) == 20

    async def test_rejected_action_not_saved(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        view = await process_action("h1", "check")
        assert not view.accepted
        mock_store["store_engine"].assert_not_awaited()

    async def test_unknown_action(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        with pytest.raises(ValueError, match="Unknown action"):
            await process_action("h1", "muck")

    async def test_bet_amount_passed_through(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        view = await process_action("h1", "bet", 80)
        assert view.state["current_bet"] == 80


class TestUndo:
    async def test_undo_restores(self, mock_store):
        e = _engine()
        e.call()
        mock_store["load_engine"].return_value = e.to_dict()
        view = await undo("h1")
        assert view.accepted
        assert view.state["current_action_seat"] == 1
        mock_store["store_engine"].assert_awaited_once()

    async def test_nothing_to_undo(self, mock_store):
        mock_store["load_engine"].return_value = _engine(started=False).to_dict()
        view = await undo("h1")
        assert not view.accepted
        mock_store["store_engine"].assert_not_awaited()


# ---------------------------------------------------------------------------
# set_cards
# ---------------------------------------------------------------------------


class TestSetCards:
    async def test_normalizes_codes(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        req = SetCardsRequest(hand_cards={1: ["ah", "kh"]}, community_cards=["2c", "3c", "4c"])
        view = await set_cards("h1", req)
        assert view.state["community_cards"] == ["2c", "3c", "4c", "", ""]
        saved = HandEngine.from_dict(mock_store["store_engine"].await_args.args[1])
        assert saved.state.hand_cards == {1: ["Ah", "Kh"]}

    async def test_duplicate_card_rejected(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        req = SetCardsRequest(hand_cards={1: ["Ah", "Kh"], 2: ["Ah", "2d"]})
        with pytest.raises(ValueError, match="more than once"):
            await set_cards("h1", req)
        mock_store["store_engine"].assert_not_awaited()

    async def test_board_clashing_with_existing_hand(self, mock_store):
        e = _engine()
        e.set_hand_cards({1: ["Ah", "Kh"]})
        mock_store["load_engine"].return_value = e.to_dict()
        with pytest.raises(ValueError, match="more than once"):
            await set_cards("h1", SetCardsRequest(community_cards=["Kh", "2c", "3c"]))

    async def test_bad_code_rejected(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        with pytest.raises(ValueError, match="Invalid card"):
            await set_cards("h1", SetCardsRequest(community_cards=["Zz"]))

    async def test_empty_seat_rejected(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        with pytest.raises(ValueError, match="No player"):
            await set_cards("h1", SetCardsRequest(hand_cards={7: ["Ah", "Kh"]}))


# ---------------------------------------------------------------------------
# payout / save
# ---------------------------------------------------------------------------


class TestPayout:
    async def test_hand_in_progress(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        with pytest.raises(ValueError, match="in progress"):
            await payout("h1", [PotAssignment(pot_index=0, winner_seats=[1])])

    async def test_bad_pot_index(self, mock_store):
        mock_store["load_engine"].return_value = _finished_engine().to_dict()
        with pytest.raises(ValueError, match="No pot"):
            await payout("h1", [PotAssignment(pot_index=3, winner_seats=[1])])

    async def test_folded_winner_rejected(self, mock_store):
        # Only seat 3 is left in the pot after two folds
        mock_store["load_engine"].return_value = _finished_engine().to_dict()
        with pytest.raises(ValueError, match="cannot win pot 0"):
            await payout("h1", [PotAssignment(pot_index=0, winner_seats=[1])])
        mock_store["store_engine"].assert_not_awaited()

    async def test_already_paid_not_accepted(self, mock_store):
        # A fold-win pays the survivor straight away
        mock_store["load_engine"].return_value = _finished_engine().to_dict()
        view = await payout("h1", [PotAssignment(pot_index=0, winner_seats=[3])])
        assert not view.accepted
        mock_store["store_engine"].assert_not_awaited()


class TestSaveHand:
    async def test_in_progress_rejected(self, mock_store):
        mock_store["load_engine"].return_value = _engine().to_dict()
        with pytest.raises(ValueError, match="in progress"):
            await save_hand("h1")
        mock_store["store_record"].assert_not_awaited()

    async def test_saves_record_and_drops_live_hand(self, mock_store):
        mock_store["load_engine"].return_value = _finished_engine().to_dict()
        mock_store["load_meta"].return_value = {"session_id": "s1"}

        record = await save_hand("h1")

        assert record.id == "h1"
        assert record.session_id == "s1"
        assert record.winners == (3,)
        assert record.pot == 0
        assert record.total_pot == 30
        mock_store["store_record"].assert_awaited_once()
        assert mock_store["store_record"].await_args.args[0] == "h1"
        mock_store["delete_hand"].assert_awaited_once_with("h1")


# ---------------------------------------------------------------------------
# Records & replay
# ---------------------------------------------------------------------------


class TestRecords:
    async def test_record_not_found(self, mock_store):
        mock_store["load_record"].return_value = None
        with pytest.raises(ValueError, match="not found"):
            await get_record("nope")

    async def test_get_record(self, mock_store):
        mock_store["load_record"].return_value = _record_data()
        record = await get_record("rec-1")
        assert record.id == "rec-1"
        assert record.hole_cards == {}

    async def test_list_session_records(self, mock_store):
        mock_store["list_session_records"].return_value = ["a", "b"]
        assert await list_session_records("s1") == ["a", "b"]


class TestReplay:
    async def test_get_replay(self, mock_store):
        mock_store["load_record"].return_value = _record_data()
        replay = await get_replay("rec-1")
        assert replay["first_action_index"] == 2
        assert replay["min_index"] == 1
        assert replay["max_index"] == 4
        assert len(replay["states"]) == 4
        assert replay["winners"] == ["Player3"]

    async def test_frame_by_index(self, mock_store):
        mock_store["load_record"].return_value = _record_data()
        frame = await get_replay_frame("rec-1", index=2)
        assert frame["index"] == 2
        assert frame["action_text"] == "Hero folds"
        assert frame["progress"] == "1 / 3"

    async def test_frame_defaults_to_start(self, mock_store):
        mock_store["load_record"].return_value = _record_data()
        frame = await get_replay_frame("rec-1")
        assert frame["index"] == 1
        assert frame["action_text"] == "Blinds posted"

    async def test_frame_by_street_not_reached(self, mock_store):
        mock_store["load_record"].return_value = _record_data()
        frame = await get_replay_frame("rec-1", street=Street.FLOP)
        assert frame["index"] == 1

    async def test_frame_not_found(self, mock_store):
        mock_store["load_record"].return_value = None
        with pytest.raises(ValueError, match="not found"):
            await get_replay_frame("nope", index=0)
