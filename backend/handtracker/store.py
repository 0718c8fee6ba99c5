"""Redis storage for hands in progress and finished hand records."""

from __future__ import annotations

import json
import os
from typing import Any, Optional

import redis.asyncio as redis

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# In-progress hands expire if nobody touches them (seconds)
HAND_TTL_SECONDS = int(os.getenv("HAND_TTL_SECONDS", "86400"))

_pool: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    global _pool
    if _pool is None:
        _pool = redis.from_url(REDIS_URL, decode_responses=True)
    return _pool


def _engine_key(hand_id: str) -> str:
    return f"hand:{hand_id}:engine"


def _meta_key(hand_id: str) -> str:
    return f"hand:{hand_id}:meta"


def _record_key(record_id: str) -> str:
    return f"record:{record_id}"


def _session_records_key(session_id: str) -> str:
    return f"session:{session_id}:records"


async def store_engine(hand_id: str, data: dict[str, Any]) -> None:
    r = await get_redis()
    await r.set(_engine_key(hand_id), json.dumps(data), ex=HAND_TTL_SECONDS)


async def load_engine(hand_id: str) -> Optional[dict[str, Any]]:
    r = await get_redis()
    raw = await r.get(_engine_key(hand_id))
    if raw is None:
        return None
    return json.loads(raw)


async def store_meta(hand_id: str, data: dict[str, Any]) -> None:
    """Side data for a live hand (session id and the like)."""
    r = await get_redis()
    await r.set(_meta_key(hand_id), json.dumps(data), ex=HAND_TTL_SECONDS)


async def load_meta(hand_id: str) -> dict[str, Any]:
    r = await get_redis()
    raw = await r.get(_meta_key(hand_id))
    if raw is None:
        return {}
    return json.loads(raw)


async def delete_hand(hand_id: str) -> None:
    r = await get_redis()
    await r.delete(_engine_key(hand_id), _meta_key(hand_id))


async def store_record(record_id: str, data: dict[str, Any]) -> None:
    """Records are written once and kept; they never expire."""
    r = await get_redis()
    await r.set(_record_key(record_id), json.dumps(data))
    session_id = data.get("session_id")
    if session_id:
        await r.sadd(_session_records_key(session_id), record_id)


async def load_record(record_id: str) -> Optional[dict[str, Any]]:
    r = await get_redis()
    raw = await r.get(_record_key(record_id))
    if raw is None:
        return None
    return json.loads(raw)


async def list_session_records(session_id: str) -> list[str]:
    r = await get_redis()
    record_ids = await r.smembers(_session_records_key(session_id))
    return sorted(record_ids)


async def close() -> None:
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None
