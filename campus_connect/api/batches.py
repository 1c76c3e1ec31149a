# campus_connect/api/batches.py

# Batch endpoints.
# Storefront: /shops/{id}/next-slot (countdown to the next cutoff), /shops/{id}/batch-slots.
# Vendor: /vendor/dashboard and /vendor/batches/{id}/lock|start|complete|cancel|summary,
# each scoped to the caller's shop (X-Shop-Id).

from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.api.deps import current_shop_id, get_notifier
from campus_connect.db import get_session
from campus_connect.errors import NotFoundError, UnauthorizedError
from campus_connect.models import Batch
from campus_connect.schemas import (
    BatchOut, BatchSummaryItemOut, CancelBatchRequest, CancelBatchResponse,
    NextSlotOut, SlotAvailabilityOut, VendorDashboardOut,
)
from campus_connect.services import batches
from campus_connect.services.notifications import Notifier
from campus_connect.utils.text import count_of

router = APIRouter()

@router.get("/shops/{shop_id}/next-slot", response_model=NextSlotOut)
async def next_slot(shop_id: str, session: AsyncSession = Depends(get_session)):
    return await batches.get_next_slot(session, shop_id)

@router.get("/shops/{shop_id}/batch-slots", response_model=List[SlotAvailabilityOut])
async def shop_batch_slots(shop_id: str, session: AsyncSession = Depends(get_session)):
    return await batches.get_batch_slots_with_availability(session, shop_id)

@router.get("/vendor/dashboard", response_model=VendorDashboardOut)
async def dashboard(shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await batches.get_vendor_dashboard(session, shop_id)

@router.post("/vendor/batches/{batch_id}/lock", response_model=BatchOut)
async def lock(batch_id: str, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await batches.lock_batch(session, batch_id, shop_id)

@router.post("/vendor/batches/{batch_id}/start", response_model=BatchOut)
async def start(
    batch_id: str,
    shop_id: str = Depends(current_shop_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await batches.start_delivery(session, batch_id, shop_id=shop_id, notifier=notifier)

@router.post("/vendor/batches/{batch_id}/complete", response_model=BatchOut)
async def complete(batch_id: str, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    return await batches.complete_batch(session, batch_id, shop_id=shop_id)

@router.post("/vendor/batches/{batch_id}/cancel", response_model=CancelBatchResponse)
async def cancel(
    batch_id: str,
    body: CancelBatchRequest,
    shop_id: str = Depends(current_shop_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    n = await batches.cancel_batch(
        session, batch_id, body.reason or "Vendor cancelled", shop_id=shop_id, notifier=notifier
    )
    return {"message": f"Batch cancelled. {count_of(n, 'order')} affected.", "cancelled_orders": n}

@router.get("/vendor/batches/{batch_id}/summary", response_model=List[BatchSummaryItemOut])
async def summary(batch_id: str, shop_id: str = Depends(current_shop_id), session: AsyncSession = Depends(get_session)):
    batch = await session.get(Batch, batch_id)
    if batch is None:
        raise NotFoundError("Batch not found")
    if batch.shop_id != shop_id:
        raise UnauthorizedError("Batch does not belong to your shop")
    return await batches.get_batch_summary(session, batch_id)
