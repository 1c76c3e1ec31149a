# Slot configuration store: a shop owner's cutoff "batch cards".
# CRUD scoped to the caller's shop; minutes must be a minute of day (0..1439);
# reorder rewrites sort_order for the given ids in one all-or-nothing transaction.

from __future__ import annotations
from typing import List, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db import transaction
from campus_connect.errors import NotFoundError, UnauthorizedError, ValidationError
from campus_connect.models import BatchSlot

MINUTES_PER_DAY = 1440


def ensure_minutes_from_midnight(value) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < MINUTES_PER_DAY:
        raise ValidationError("Invalid cutoff time. Must be 0-1439 minutes.")
    return value

def _clean_label(label: str | None) -> str | None:
    if label is None:
        return None
    return label.strip() or None


async def list_slots(session: AsyncSession, shop_id: str) -> List[BatchSlot]:
    rows = await session.execute(
        select(BatchSlot)
        .where(BatchSlot.shop_id == shop_id)
        .order_by(BatchSlot.sort_order, BatchSlot.cutoff_time_minutes)
    )
    return list(rows.scalars().all())

async def active_slots(session: AsyncSession, shop_id: str) -> List[BatchSlot]:
    rows = await session.execute(
        select(BatchSlot)
        .where(BatchSlot.shop_id == shop_id, BatchSlot.is_active.is_(True))
        .order_by(BatchSlot.sort_order, BatchSlot.cutoff_time_minutes)
    )
    return list(rows.scalars().all())

async def _owned_slot(session: AsyncSession, slot_id: str, shop_id: str) -> BatchSlot:
    slot = await session.get(BatchSlot, slot_id)
    if slot is None:
        raise NotFoundError("Batch card not found")
    if slot.shop_id != shop_id:
        raise UnauthorizedError("Batch card does not belong to your shop")
    return slot

async def _ensure_unique_minutes(session: AsyncSession, shop_id: str, minutes: int, exclude_id: str | None = None) -> None:
    q = select(BatchSlot.id).where(
        BatchSlot.shop_id == shop_id, BatchSlot.cutoff_time_minutes == minutes
    )
    if exclude_id is not None:
        q = q.where(BatchSlot.id != exclude_id)
    if (await session.execute(q.limit(1))).first() is not None:
        raise ValidationError("A batch card already exists for this cutoff time.")


async def create_slot(session: AsyncSession, shop_id: str, cutoff_time_minutes: int, label: str | None = None) -> BatchSlot:
    minutes = ensure_minutes_from_midnight(cutoff_time_minutes)
    async with transaction(session):
        await _ensure_unique_minutes(session, shop_id, minutes)
        max_sort = await session.scalar(
            select(func.max(BatchSlot.sort_order)).where(BatchSlot.shop_id == shop_id)
        )
        slot = BatchSlot(
            shop_id=shop_id,
            cutoff_time_minutes=minutes,
            label=_clean_label(label),
            is_active=True,
            sort_order=(max_sort if max_sort is not None else -1) + 1,
        )
        session.add(slot)
    return slot

async def update_slot(
    session: AsyncSession,
    shop_id: str,
    slot_id: str,
    cutoff_time_minutes: int,
    label: str | None = None,
    is_active: bool | None = None,
) -> BatchSlot:
    minutes = ensure_minutes_from_midnight(cutoff_time_minutes)
    async with transaction(session):
        slot = await _owned_slot(session, slot_id, shop_id)
        await _ensure_unique_minutes(session, shop_id, minutes, exclude_id=slot.id)
        slot.cutoff_time_minutes = minutes
        slot.label = _clean_label(label)
        if is_active is not None:
            slot.is_active = is_active
    return slot

async def delete_slot(session: AsyncSession, shop_id: str, slot_id: str) -> None:
    async with transaction(session):
        slot = await _owned_slot(session, slot_id, shop_id)
        await session.delete(slot)

async def reorder_slots(session: AsyncSession, shop_id: str, ordered_ids: Sequence[str]) -> List[BatchSlot]:
    if not ordered_ids or len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("Invalid ordering payload.")

    async with transaction(session):
        owned = {s.id: s for s in await list_slots(session, shop_id)}
        if any(slot_id not in owned for slot_id in ordered_ids):
            raise ValidationError("One or more batch cards are invalid.")
        for position, slot_id in enumerate(ordered_ids):
            owned[slot_id].sort_order = position
    return await list_slots(session, shop_id)
