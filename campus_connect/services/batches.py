# Batch lifecycle manager: OPEN -> LOCKED -> IN_TRANSIT -> COMPLETED, or -> CANCELLED.
# Each transition changes the batch row and bulk-moves its member orders in one
# transaction, checked against the tables in services/transitions.py.
# Also the read side for vendors: dashboard, packing summary, next slot, availability.

from __future__ import annotations
import logging
import random
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import settings
from campus_connect.db import dialect_insert, transaction
from campus_connect.errors import (
    ConflictError, NotFoundError, PendingOrdersError, UnauthorizedError, ValidationError,
)
from campus_connect.models import (
    Batch, BatchStatus, Order, OrderItem, OrderStatus, PaymentStatus, Product,
    Shop, UserAddress,
)
from campus_connect.services.cutoff import compute_next_cutoff
from campus_connect.services.notifications import NotificationPayload, Notifier, notify_safely
from campus_connect.services.slots import active_slots
from campus_connect.services.transitions import (
    ensure_batch_transition, ensure_order_transition, order_sources,
)
from campus_connect.utils.timezone import as_utc, compose_zoned, local_day_bounds, zoned_parts

logger = logging.getLogger(__name__)

CANCELLABLE = frozenset({BatchStatus.LOCKED, BatchStatus.IN_TRANSIT})
DASHBOARD_URL = "/owner-shops/dashboard"
CENT = Decimal("0.01")


# ---------- read models ----------

@dataclass
class DeliveryAddressInfo:
    label: str
    building: str
    room_number: str
    hostel_block: str | None


@dataclass
class BatchOrderInfo:
    id: str
    display_id: str
    status: OrderStatus
    delivery_address: DeliveryAddressInfo | None


@dataclass
class BatchSummaryItem:
    product_id: str
    name: str
    quantity: int


@dataclass
class BatchInfo:
    id: str
    status: BatchStatus
    cutoff_time: datetime
    order_count: int
    total_earnings: Decimal
    orders: List[BatchOrderInfo] = field(default_factory=list)
    item_summary: Optional[List[BatchSummaryItem]] = None


@dataclass
class DirectOrderInfo:
    id: str
    display_id: str
    status: OrderStatus
    item_total: Decimal
    delivery_fee: Decimal
    platform_fee: Decimal
    total_earnings: Decimal
    created_at: datetime
    delivery_address: DeliveryAddressInfo | None


@dataclass
class VendorDashboard:
    open_batch: Optional[BatchInfo]
    active_batches: List[BatchInfo]
    direct_orders: List[DirectOrderInfo]


@dataclass
class NextSlot:
    enabled: bool
    cutoff_time: Optional[datetime]
    batch_id: Optional[str]


@dataclass
class SlotAvailability:
    id: str
    cutoff_time_minutes: int
    label: str | None
    is_active: bool
    sort_order: int
    is_today_available: bool


# ---------- helpers ----------

def generate_otp() -> str:
    """4-digit numeric delivery OTP."""
    try:
        return str(1000 + secrets.randbelow(9000))
    except NotImplementedError:
        # no OS randomness source
        return str(random.randint(1000, 9999))

def _earnings(item_total: Decimal, delivery_fee: Decimal, platform_fee: Decimal) -> Decimal:
    return Decimal(item_total) + Decimal(delivery_fee) - Decimal(platform_fee)

async def _batch_for_update(session: AsyncSession, batch_id: str) -> Batch:
    batch = (await session.execute(
        select(Batch)
        .where(Batch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if batch is None:
        raise NotFoundError("Batch not found")
    return batch

def _check_owner(batch: Batch, shop_id: str | None) -> None:
    if shop_id is not None and batch.shop_id != shop_id:
        raise UnauthorizedError("Batch does not belong to your shop")

async def _member_orders(session: AsyncSession, batch_id: str, statuses) -> List[Order]:
    rows = await session.execute(
        select(Order)
        .where(Order.batch_id == batch_id, Order.order_status.in_(list(statuses)))
        .execution_options(populate_existing=True)
    )
    return list(rows.scalars().all())

async def _bulk_update_orders(session: AsyncSession, values: Sequence[dict]) -> None:
    # ORM bulk UPDATE by primary key; each dict carries "id"
    if values:
        await session.execute(update(Order), list(values))

async def _shop_owner(session: AsyncSession, shop_id: str) -> str | None:
    return await session.scalar(select(Shop.owner_id).where(Shop.id == shop_id))


# ---------- batch creation ----------

async def _open_batch_for(session: AsyncSession, shop_id: str, cutoff: datetime) -> Batch | None:
    return (await session.execute(
        select(Batch)
        .where(Batch.shop_id == shop_id, Batch.cutoff_time == cutoff, Batch.status == BatchStatus.OPEN)
        .with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()

async def find_or_create_open_batch(session: AsyncSession, shop_id: str, cutoff: datetime) -> Batch:
    """The OPEN batch for (shop, cutoff), inserting it if missing.

    Concurrent callers race on the partial unique index; the loser's insert is a
    no-op and both read back the same row. Does not commit.
    """
    cutoff = as_utc(cutoff)
    batch = await _open_batch_for(session, shop_id, cutoff)
    if batch is not None:
        return batch

    # id and timestamps come from the column defaults
    stmt = dialect_insert(session, Batch.__table__).values(
        shop_id=shop_id,
        cutoff_time=cutoff,
        status=BatchStatus.OPEN,
    ).on_conflict_do_nothing()
    await session.execute(stmt)

    batch = await _open_batch_for(session, shop_id, cutoff)
    if batch is None:
        raise ConflictError("Could not open a batch for this delivery window")
    logger.info("opened batch %s for shop %s (cutoff %s)", batch.id, shop_id, cutoff.isoformat())
    return batch

async def resolve_open_batch(session: AsyncSession, shop_id: str, slot_minutes: Sequence[int], now: datetime) -> Batch | None:
    """OPEN batch an order placed at `now` joins, or None when the shop has no active slots.

    A window whose batch already left OPEN (locked early by the vendor) is full;
    the order rolls forward to the next cutoff.
    """
    cutoff = compute_next_cutoff(now, slot_minutes, settings.APP_TIME_ZONE)
    if cutoff is None:
        return None
    for _ in range(len(set(slot_minutes)) + 1):
        closed = await session.scalar(
            select(Batch.id).where(
                Batch.shop_id == shop_id,
                Batch.cutoff_time == cutoff,
                Batch.status != BatchStatus.OPEN,
            ).limit(1)
        )
        if closed is None:
            return await find_or_create_open_batch(session, shop_id, cutoff)
        cutoff = compute_next_cutoff(cutoff, slot_minutes, settings.APP_TIME_ZONE)
    raise ConflictError("No open delivery window is available right now")


# ---------- transitions ----------

async def lock_loaded_batch(session: AsyncSession, batch: Batch) -> int:
    """OPEN -> LOCKED on an already row-locked batch; returns orders batched. No commit."""
    ensure_batch_transition(batch.status, BatchStatus.LOCKED)
    batch.status = BatchStatus.LOCKED

    members = await _member_orders(session, batch.id, order_sources(OrderStatus.BATCHED))
    await _bulk_update_orders(session, [
        {"id": o.id, "order_status": OrderStatus.BATCHED, "delivery_otp": generate_otp()}
        for o in members
    ])
    return len(members)

async def lock_batch(session: AsyncSession, batch_id: str, shop_id: str) -> Batch:
    async with transaction(session):
        batch = await _batch_for_update(session, batch_id)
        _check_owner(batch, shop_id)
        if batch.status != BatchStatus.OPEN:
            raise ConflictError("Only OPEN batches can be locked")
        count = await lock_loaded_batch(session, batch)
    logger.info("batch %s locked with %d orders", batch_id, count)
    return batch

async def start_delivery(
    session: AsyncSession, batch_id: str, shop_id: str | None = None, notifier: Notifier | None = None,
) -> Batch:
    async with transaction(session):
        batch = await _batch_for_update(session, batch_id)
        _check_owner(batch, shop_id)
        if batch.status != BatchStatus.LOCKED:
            raise ConflictError("Only LOCKED batches can start delivery")
        ensure_batch_transition(batch.status, BatchStatus.IN_TRANSIT)
        batch.status = BatchStatus.IN_TRANSIT

        members = await _member_orders(session, batch_id, [OrderStatus.BATCHED])
        await _bulk_update_orders(session, [
            {"id": o.id, "order_status": OrderStatus.OUT_FOR_DELIVERY} for o in members
        ])
    logger.info("batch %s in transit with %d orders", batch_id, len(members))

    for o in members:
        await notify_safely(notifier, o.user_id, NotificationPayload(
            title="Order Out for Delivery",
            message=f"Your order {o.display_id} is on the way. Share your OTP with the delivery person.",
            action_url=f"/orders/{o.id}",
        ))
    return batch

async def complete_batch(session: AsyncSession, batch_id: str, shop_id: str | None = None) -> Batch:
    async with transaction(session):
        batch = await _batch_for_update(session, batch_id)
        _check_owner(batch, shop_id)
        if batch.status != BatchStatus.IN_TRANSIT:
            raise ConflictError("Only IN_TRANSIT batches can be completed")

        pending = await session.scalar(
            select(func.count(Order.id)).where(
                Order.batch_id == batch_id, Order.order_status == OrderStatus.OUT_FOR_DELIVERY
            )
        )
        if pending:
            raise PendingOrdersError(pending)

        ensure_batch_transition(batch.status, BatchStatus.COMPLETED)
        batch.status = BatchStatus.COMPLETED
    logger.info("batch %s completed", batch_id)
    return batch

def _cancelled_payment_status(current: PaymentStatus) -> PaymentStatus:
    if current == PaymentStatus.COMPLETED:
        return PaymentStatus.REFUND_PENDING
    if current == PaymentStatus.PENDING:
        return PaymentStatus.FAILED
    return current


async def _restock(session: AsyncSession, order_ids: Sequence[str]) -> None:
    """Put the reserved quantities of cancelled orders back on the shelf."""
    if not order_ids:
        return
    restock = await session.execute(
        select(OrderItem.product_id, func.sum(OrderItem.quantity))
        .where(OrderItem.order_id.in_(list(order_ids)))
        .group_by(OrderItem.product_id)
    )
    for product_id, qty in restock.all():
        await session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + qty)
        )

async def cancel_batch(
    session: AsyncSession,
    batch_id: str,
    reason: str,
    shop_id: str | None = None,
    notifier: Notifier | None = None,
) -> int:
    """Cancel a LOCKED/IN_TRANSIT batch; returns how many member orders were cancelled.

    Open orders are cancelled with OTPs cleared, their stock is put back and their
    payment moves to REFUND_PENDING (paid) or FAILED (unpaid). Orders already
    delivered keep their COMPLETED status.
    """
    async with transaction(session):
        batch = await _batch_for_update(session, batch_id)
        _check_owner(batch, shop_id)
        if batch.status not in CANCELLABLE:
            raise ConflictError("Can only cancel LOCKED or IN_TRANSIT batches")
        ensure_batch_transition(batch.status, BatchStatus.CANCELLED)
        batch.status = BatchStatus.CANCELLED

        members = await _member_orders(session, batch_id, order_sources(OrderStatus.CANCELLED))
        order_ids = [o.id for o in members]
        await _bulk_update_orders(session, [
            {
                "id": o.id,
                "order_status": OrderStatus.CANCELLED,
                "delivery_otp": None,
                "payment_status": _cancelled_payment_status(o.payment_status),
            }
            for o in members
        ])

        await _restock(session, order_ids)
    logger.info("batch %s cancelled (%s): %d orders", batch_id, reason, len(members))

    for o in members:
        await notify_safely(notifier, o.user_id, NotificationPayload(
            title="Order Cancelled",
            message=f"Your order {o.display_id} was cancelled: {reason}",
            action_url=f"/orders/{o.id}",
            type="WARNING",
        ))
    return len(members)

async def _order_for_update(session: AsyncSession, order_id: str, shop_id: str) -> Order:
    order = (await session.execute(
        select(Order).where(Order.id == order_id).with_for_update()
        .execution_options(populate_existing=True)
    )).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    if order.shop_id != shop_id:
        raise UnauthorizedError("Order does not belong to your shop")
    return order

async def start_individual_delivery(
    session: AsyncSession, order_id: str, shop_id: str, notifier: Notifier | None = None,
) -> Order:
    """Dispatch a direct-delivery (unbatched) order on its own, issuing its OTP."""
    async with transaction(session):
        order = await _order_for_update(session, order_id, shop_id)
        if order.batch_id is not None:
            raise ConflictError("Batched orders are dispatched with their batch")
        ensure_order_transition(order.order_status, OrderStatus.OUT_FOR_DELIVERY)

        order.order_status = OrderStatus.OUT_FOR_DELIVERY
        order.delivery_otp = order.delivery_otp or generate_otp()

    await notify_safely(notifier, order.user_id, NotificationPayload(
        title="Order Out for Delivery",
        message=f"Your order {order.display_id} is on the way.",
        action_url=f"/orders/{order.id}",
    ))
    return order

async def update_order_status(
    session: AsyncSession,
    order_id: str,
    shop_id: str,
    status: OrderStatus | str,
    notifier: Notifier | None = None,
) -> Order:
    """Vendor move of a single order, checked against the order transition table.

    CANCELLED works from any live state, batched or not: the OTP is cleared, stock
    is put back and payment settles as in cancel_batch. OUT_FOR_DELIVERY dispatches
    a direct-delivery order. BATCHED and COMPLETED are only reached through a batch
    lock and OTP verification.
    """
    try:
        target = OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}") from None
    if target == OrderStatus.OUT_FOR_DELIVERY:
        return await start_individual_delivery(session, order_id, shop_id, notifier=notifier)

    async with transaction(session):
        order = await _order_for_update(session, order_id, shop_id)
        ensure_order_transition(order.order_status, target)
        if target != OrderStatus.CANCELLED:
            raise ConflictError(f"Orders reach {target.value} through their batch or OTP verification")

        order.order_status = OrderStatus.CANCELLED
        order.delivery_otp = None
        order.payment_status = _cancelled_payment_status(order.payment_status)
        await _restock(session, [order.id])
    logger.info("order %s set to %s by shop %s", order.display_id, target.value, shop_id)

    await notify_safely(notifier, order.user_id, NotificationPayload(
        title="Order Status Updated",
        message=f"Your order with ID: {order.display_id} has been updated to {target.value.replace('_', ' ')}",
        action_url=f"/orders/{order.id}",
    ))
    return order


# ---------- read side ----------

async def get_batch_summary(session: AsyncSession, batch_id: str) -> List[BatchSummaryItem]:
    """Quantities per product across the batch's live orders (the packing list)."""
    if await session.get(Batch, batch_id) is None:
        raise NotFoundError("Batch not found")
    rows = await session.execute(
        select(OrderItem.product_id, Product.name, func.sum(OrderItem.quantity))
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(Order.batch_id == batch_id, Order.order_status != OrderStatus.CANCELLED)
        .group_by(OrderItem.product_id, Product.name)
        .order_by(Product.name)
    )
    return [BatchSummaryItem(pid, name or "Unknown Item", int(qty or 0)) for pid, name, qty in rows.all()]

def _address(row) -> DeliveryAddressInfo | None:
    if row.building is None:
        return None
    return DeliveryAddressInfo(row.label, row.building, row.room_number, row.hostel_block)

def _order_rows_query():
    return (
        select(
            Order.id, Order.display_id, Order.order_status, Order.batch_id,
            Order.item_total, Order.delivery_fee, Order.platform_fee, Order.created_at,
            UserAddress.label, UserAddress.building, UserAddress.room_number, UserAddress.hostel_block,
        )
        .outerjoin(UserAddress, UserAddress.id == Order.delivery_address_id)
    )

async def _format_batches(session: AsyncSession, batches: Sequence[Batch]) -> List[BatchInfo]:
    if not batches:
        return []
    rows = (await session.execute(
        _order_rows_query()
        .where(Order.batch_id.in_([b.id for b in batches]), Order.order_status != OrderStatus.CANCELLED)
        .order_by(Order.created_at)
    )).all()
    by_batch: Dict[str, list] = {}
    for r in rows:
        by_batch.setdefault(r.batch_id, []).append(r)

    out: List[BatchInfo] = []
    for b in batches:
        members = by_batch.get(b.id, [])
        total = sum((_earnings(r.item_total, r.delivery_fee, r.platform_fee) for r in members), Decimal("0"))
        info = BatchInfo(
            id=b.id,
            status=b.status,
            cutoff_time=as_utc(b.cutoff_time),
            order_count=len(members),
            total_earnings=total.quantize(CENT, rounding=ROUND_HALF_UP),
            orders=[BatchOrderInfo(r.id, r.display_id, r.order_status, _address(r)) for r in members],
        )
        if b.status in (BatchStatus.LOCKED, BatchStatus.IN_TRANSIT):
            info.item_summary = await get_batch_summary(session, b.id)
        out.append(info)
    return out

async def get_vendor_dashboard(session: AsyncSession, shop_id: str) -> VendorDashboard:
    open_batch = (await session.execute(
        select(Batch)
        .where(Batch.shop_id == shop_id, Batch.status == BatchStatus.OPEN)
        .order_by(Batch.cutoff_time)
        .limit(1)
    )).scalar_one_or_none()
    active = (await session.execute(
        select(Batch)
        .where(Batch.shop_id == shop_id, Batch.status.in_([BatchStatus.LOCKED, BatchStatus.IN_TRANSIT]))
        .order_by(Batch.cutoff_time.desc())
    )).scalars().all()

    formatted_open = await _format_batches(session, [open_batch] if open_batch else [])
    formatted_active = await _format_batches(session, active)

    direct_rows = (await session.execute(
        _order_rows_query()
        .where(
            Order.shop_id == shop_id,
            Order.is_direct_delivery.is_(True),
            Order.order_status.in_([OrderStatus.NEW, OrderStatus.OUT_FOR_DELIVERY]),
        )
        .order_by(Order.created_at)
    )).all()
    direct = [
        DirectOrderInfo(
            id=r.id,
            display_id=r.display_id,
            status=r.order_status,
            item_total=r.item_total,
            delivery_fee=r.delivery_fee,
            platform_fee=r.platform_fee,
            total_earnings=_earnings(r.item_total, r.delivery_fee, r.platform_fee).quantize(CENT, rounding=ROUND_HALF_UP),
            created_at=as_utc(r.created_at),
            delivery_address=_address(r),
        )
        for r in direct_rows
    ]

    return VendorDashboard(
        open_batch=formatted_open[0] if formatted_open else None,
        active_batches=formatted_active,
        direct_orders=direct,
    )

async def get_next_slot(session: AsyncSession, shop_id: str, now: datetime | None = None) -> NextSlot:
    if await session.get(Shop, shop_id) is None:
        raise NotFoundError("Shop not found")
    slots = await active_slots(session, shop_id)
    now = now or datetime.now(timezone.utc)
    cutoff = compute_next_cutoff(now, [s.cutoff_time_minutes for s in slots], settings.APP_TIME_ZONE)
    if cutoff is None:
        return NextSlot(enabled=False, cutoff_time=None, batch_id=None)

    batch_id = await session.scalar(
        select(Batch.id).where(
            Batch.shop_id == shop_id, Batch.cutoff_time == cutoff, Batch.status == BatchStatus.OPEN
        )
    )
    return NextSlot(enabled=True, cutoff_time=cutoff, batch_id=batch_id)

async def get_batch_slots_with_availability(
    session: AsyncSession, shop_id: str, now: datetime | None = None,
) -> List[SlotAvailability]:
    """Active slots, each flagged unavailable once today's batch for it has left OPEN."""
    now = now or datetime.now(timezone.utc)
    tz = settings.APP_TIME_ZONE
    slots = await active_slots(session, shop_id)
    day_start, day_end = local_day_bounds(now, tz)

    todays = (await session.execute(
        select(Batch.cutoff_time, Batch.status).where(
            Batch.shop_id == shop_id, Batch.cutoff_time >= day_start, Batch.cutoff_time < day_end
        )
    )).all()
    closed = {as_utc(ct) for ct, status in todays if status != BatchStatus.OPEN}

    today = zoned_parts(now, tz).day_date
    return [
        SlotAvailability(
            id=s.id,
            cutoff_time_minutes=s.cutoff_time_minutes,
            label=s.label,
            is_active=s.is_active,
            sort_order=s.sort_order,
            is_today_available=compose_zoned(today, s.cutoff_time_minutes, tz) not in closed,
        )
        for s in slots
    ]
