# campus_connect/batch_closer.py

# Scheduled sweep that enforces cutoffs without any user action.
# close_expired_batches: every OPEN batch whose cutoff has passed is locked
# (orders BATCHED, OTPs issued) and its shop owner told to start packing.
# warn_stale_batches: LOCKED batches idle past STALE_BATCH_MINUTES get a reminder.
# Both are idempotent; run once per BATCH_CLOSER_INTERVAL_SECONDS by run_forever().

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import settings
from campus_connect.db import Base, SessionLocal, engine, transaction
from campus_connect.errors import ConflictError
from campus_connect.models import Batch, BatchStatus, Order, OrderStatus, Shop
from campus_connect.services.batches import DASHBOARD_URL, lock_loaded_batch
from campus_connect.services.notifications import (
    NotificationPayload, Notifier, default_notifier, notify_safely,
)
from campus_connect.utils.text import count_of
from campus_connect.utils.timezone import as_utc

logger = logging.getLogger("campus_connect.batch_closer")


async def close_expired_batches(
    session: AsyncSession, now: datetime | None = None, notifier: Notifier | None = None,
) -> List[str]:
    """Lock OPEN batches with cutoff_time <= now. Returns the ids locked by this run."""
    now = as_utc(now or datetime.now(timezone.utc))
    expired = (await session.execute(
        select(Batch.id).where(Batch.status == BatchStatus.OPEN, Batch.cutoff_time <= now)
        .order_by(Batch.cutoff_time)
    )).scalars().all()
    await session.rollback()  # end the read transaction before per-batch work

    locked: List[str] = []
    for batch_id in expired:
        try:
            async with transaction(session):
                batch = (await session.execute(
                    select(Batch).where(Batch.id == batch_id).with_for_update()
                    .execution_options(populate_existing=True)
                )).scalar_one()
                if batch.status != BatchStatus.OPEN:
                    continue  # vendor got there first
                count = await lock_loaded_batch(session, batch)
                shop = await session.get(Shop, batch.shop_id)
        except ConflictError:
            logger.warning("batch %s changed state during sweep, skipping", batch_id)
            continue

        locked.append(batch_id)
        logger.info("locked expired batch %s (%d orders)", batch_id, count)
        if shop is not None and count > 0:
            await notify_safely(notifier, shop.owner_id, NotificationPayload(
                title="Batch Ready!",
                message=f"Batch for {shop.name} is ready with {count_of(count, 'order')}. Start preparing!",
                action_url=DASHBOARD_URL,
                type="SUCCESS",
            ))
    return locked


async def warn_stale_batches(
    session: AsyncSession, now: datetime | None = None, notifier: Notifier | None = None,
) -> List[str]:
    """Remind owners about LOCKED batches whose cutoff is more than STALE_BATCH_MINUTES old."""
    now = as_utc(now or datetime.now(timezone.utc))
    threshold = now - timedelta(minutes=settings.STALE_BATCH_MINUTES)
    rows = (await session.execute(
        select(Batch.id, Batch.cutoff_time, Shop.name, Shop.owner_id, func.count(Order.id))
        .join(Shop, Shop.id == Batch.shop_id)
        .join(Order, Order.batch_id == Batch.id)
        .where(
            Batch.status == BatchStatus.LOCKED,
            Batch.cutoff_time < threshold,
            Order.order_status == OrderStatus.BATCHED,
        )
        .group_by(Batch.id, Batch.cutoff_time, Shop.name, Shop.owner_id)
    )).all()

    warned: List[str] = []
    for batch_id, cutoff, shop_name, owner_id, waiting in rows:
        minutes_late = int((now - as_utc(cutoff)).total_seconds() // 60)
        logger.warning("stale batch %s for shop %r: %d mins late", batch_id, shop_name, minutes_late)
        sent = await notify_safely(notifier, owner_id, NotificationPayload(
            title="Orders Waiting!",
            message=f"You have {count_of(waiting, 'order')} waiting for {count_of(minutes_late, 'min')}! Start delivery now.",
            action_url=DASHBOARD_URL,
            type="WARNING",
        ))
        if sent:
            warned.append(batch_id)
    return warned


async def sweep_once(notifier: Notifier | None = None) -> None:
    async with SessionLocal() as session:
        await close_expired_batches(session, notifier=notifier)
        await warn_stale_batches(session, notifier=notifier)


async def run_forever(interval: int | None = None) -> None:
    interval = interval or settings.BATCH_CLOSER_INTERVAL_SECONDS
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    notifier = default_notifier()
    logger.info("batch closer started (every %ss)", interval)
    while True:
        try:
            await sweep_once(notifier)
        except Exception:
            # keep the loop alive; the next tick retries
            logger.exception("batch closer sweep failed")
        await asyncio.sleep(interval)


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_forever())
