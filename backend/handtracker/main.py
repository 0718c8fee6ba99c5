"""FastAPI application: REST endpoints for recording and replaying hands."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from handtracker import hand_manager, store
from handtracker.history import HandRecord
from handtracker.models import (
    CreateHandRequest,
    CreateHandResponse,
    HandActionRequest,
    HandView,
    PayoutRequest,
    ReplayFrame,
    SetCardsRequest,
    Street,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Shutting down, closing Redis connection")
    await store.close()


app = FastAPI(title="Hand Tracker API", lifespan=lifespan)

# ---------- Rate Limiting ----------

_rate_limit_enabled = os.getenv("RATE_LIMIT_ENABLED", "1") != "0"

limiter = Limiter(
    key_func=get_remote_address,
    enabled=_rate_limit_enabled,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Please slow down."},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(e: ValueError) -> HTTPException:
    detail = str(e)
    if "not found" in detail.lower():
        return HTTPException(status_code=404, detail=detail)
    return HTTPException(status_code=400, detail=detail)


# ---------- Live hands ----------


@app.post("/api/hands", response_model=CreateHandResponse)
@limiter.limit("10/minute")
async def create_hand(request: Request, req: CreateHandRequest):
    try:
        hand_id, view = await hand_manager.create_hand(req)
    except ValueError as e:
        raise _http_error(e)
    return CreateHandResponse(hand_id=hand_id, hand=view)


@app.get("/api/hands/{hand_id}", response_model=HandView)
@limiter.limit("60/minute")
async def get_hand(request: Request, hand_id: str):
    try:
        return await hand_manager.get_hand(hand_id)
    except ValueError as e:
        raise _http_error(e)


@app.post("/api/hands/{hand_id}/start", response_model=HandView)
@limiter.limit("30/minute")
async def start_hand(request: Request, hand_id: str):
    """Post blinds and straddles and hand the action to the first seat."""
    try:
        return await hand_manager.start_hand(hand_id)
    except ValueError as e:
        raise _http_error(e)


@app.post("/api/hands/{hand_id}/action", response_model=HandView)
@limiter.limit("60/minute")
async def hand_action(request: Request, hand_id: str, req: HandActionRequest):
    """Record fold, check, call, bet or all-in for the seat to act."""
    try:
        return await hand_manager.process_action(hand_id, req.action, req.amount)
    except ValueError as e:
        raise _http_error(e)


@app.post("/api/hands/{hand_id}/undo", response_model=HandView)
@limiter.limit("60/minute")
async def undo_action(request: Request, hand_id: str):
    try:
        return await hand_manager.undo(hand_id)
    except ValueError as e:
        raise _http_error(e)


@app.put("/api/hands/{hand_id}/cards", response_model=HandView)
@limiter.limit("60/minute")
async def set_cards(request: Request, hand_id: str, req: SetCardsRequest):
    try:
        return await hand_manager.set_cards(hand_id, req)
    except ValueError as e:
        raise _http_error(e)


@app.post("/api/hands/{hand_id}/payout", response_model=HandView)
@limiter.limit("30/minute")
async def payout(request: Request, hand_id: str, req: PayoutRequest):
    """Award pots to the winners picked at showdown."""
    try:
        return await hand_manager.payout(hand_id, req.assignments)
    except ValueError as e:
        raise _http_error(e)


@app.post("/api/hands/{hand_id}/save", response_model=HandRecord)
@limiter.limit("10/minute")
async def save_hand(request: Request, hand_id: str):
    try:
        return await hand_manager.save_hand(hand_id)
    except ValueError as e:
        raise _http_error(e)


# ---------- Records & replay ----------


@app.get("/api/records/{record_id}", response_model=HandRecord)
@limiter.limit("60/minute")
async def get_record(request: Request, record_id: str):
    try:
        return await hand_manager.get_record(record_id)
    except ValueError as e:
        raise _http_error(e)


@app.get("/api/records/{record_id}/replay")
@limiter.limit("30/minute")
async def get_replay(request: Request, record_id: str):
    """Every replay state of a stored hand."""
    try:
        return await hand_manager.get_replay(record_id)
    except ValueError as e:
        raise _http_error(e)


@app.get("/api/records/{record_id}/replay/{index}", response_model=ReplayFrame)
@limiter.limit("120/minute")
async def get_replay_frame(
    request: Request,
    record_id: str,
    index: int,
    show_cards: bool = False,
):
    """One replay position; out-of-range indexes are clamped."""
    try:
        return await hand_manager.get_replay_frame(
            record_id, index=index, show_cards=show_cards
        )
    except ValueError as e:
        raise _http_error(e)


@app.get("/api/records/{record_id}/streets/{street}", response_model=ReplayFrame)
@limiter.limit("120/minute")
async def get_street_frame(
    request: Request,
    record_id: str,
    street: Street,
    show_cards: bool = False,
):
    """Replay position at the first action of ``street``."""
    try:
        return await hand_manager.get_replay_frame(
            record_id, street=street, show_cards=show_cards
        )
    except ValueError as e:
        raise _http_error(e)


@app.get("/api/sessions/{session_id}/records")
@limiter.limit("30/minute")
async def list_session_records(
    request: Request, session_id: str, limit: Optional[int] = None
):
    record_ids = await hand_manager.list_session_records(session_id)
    if limit is not None:
        record_ids = record_ids[:limit]
    return {"session_id": session_id, "record_ids": record_ids}


def run() -> None:
    """Serve the API with uvicorn."""
    host = os.getenv("HANDTRACKER_HOST", "0.0.0.0")
    port = int(os.getenv("HANDTRACKER_PORT", "8000"))
    logger.info("Starting server at http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run()
