# campus_connect/api/slots.py

# Vendor batch-card (cutoff slot) management for the caller's shop.

from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.api.deps import current_shop_id
from campus_connect.db import get_session
from campus_connect.schemas import BatchSlotOut, MessageResponse, SlotCreate, SlotReorder, SlotUpdate
from campus_connect.services import slots

router = APIRouter(prefix="/vendor/batch-slots")

@router.get("", response_model=List[BatchSlotOut])
async def list_slots(shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await slots.list_slots(session, shop_id)

@router.post("", response_model=BatchSlotOut, status_code=201)
async def create_slot(body: SlotCreate, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await slots.create_slot(session, shop_id, body.cutoff_time_minutes, body.label)

@router.put("/order", response_model=List[BatchSlotOut])
async def reorder_slots(body: SlotReorder, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await slots.reorder_slots(session, shop_id, body.ordered_ids)

@router.patch("/{slot_id}", response_model=BatchSlotOut)
async def update_slot(
    slot_id: str, body: SlotUpdate, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)
):
    return await slots.update_slot(
        session, shop_id, slot_id, body.cutoff_time_minutes, label=body.label, is_active=body.is_active
    )

@router.delete("/{slot_id}", response_model=MessageResponse)
async def delete_slot(slot_id: str, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    await slots.delete_slot(session, shop_id, slot_id)
    return {"message": "Batch card deleted"}
