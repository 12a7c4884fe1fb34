"""
Shared helpers for the service layer: caller identity, clock, document
conversion and human-readable id generation.
"""
from typing import Optional
from datetime import datetime, timezone

from fastapi import Header
from pydantic import BaseModel
from pymongo import ReturnDocument


SYSTEM_USER = {"id": "system", "full_name": "System", "role": "system"}


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> dict:
    """Identity forwarded by the authenticating gateway in front of this API."""
    if not x_user_id:
        return dict(SYSTEM_USER)
    return {
        "id": x_user_id,
        "full_name": x_user_name or x_user_id,
        "role": x_user_role or "staff",
    }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Naive datetimes from callers are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_document(model: BaseModel) -> dict:
    return model.model_dump(mode="json")


def user_id(user: Optional[dict]) -> Optional[str]:
    return user.get("id") if user else None


async def _next_sequence(db, name: str) -> int:
    counter = await db.counters.find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


async def _generate_id(db, prefix: str) -> str:
    year = utcnow().year
    seq = await _next_sequence(db, f"{prefix.lower()}-{year}")
    return f"{prefix}-{year}-{seq:05d}"


async def generate_donor_id(db) -> str:
    return await _generate_id(db, "DNR")


async def generate_donation_id(db) -> str:
    return await _generate_id(db, "DON")


async def generate_unit_number(db) -> str:
    return await _generate_id(db, "BU")


async def generate_request_id(db) -> str:
    return await _generate_id(db, "REQ")


async def generate_transfusion_id(db) -> str:
    return await _generate_id(db, "TRF")
