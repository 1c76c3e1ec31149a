# Order admission & reservation: turns a user's cart for one shop into an Order.
# Stock rows are read FOR UPDATE and decremented with a guarded UPDATE
# (stock >= qty), so concurrent checkouts can never oversell.
# Prices are summed in integer paise and only converted to Decimal at the end.
# The order joins the shop's OPEN batch for the next cutoff, or ships directly
# when the shop has no active slots.

from __future__ import annotations
import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.config import settings
from campus_connect.db import dialect_insert, transaction
from campus_connect.errors import NotFoundError, UnauthorizedError, ValidationError
from campus_connect.models import (
    Cart, CartItem, Counter, Order, OrderItem, PaymentMethod, PaymentStatus, Product,
    Shop, UserAddress,
)
from campus_connect.services.batches import resolve_open_batch
from campus_connect.services.notifications import NotificationPayload, Notifier, notify_safely
from campus_connect.services.slots import active_slots
from campus_connect.utils.timezone import as_utc

logger = logging.getLogger(__name__)

ORDER_COUNTER = "order_display_id"
MIN_LEAD_TIME = timedelta(minutes=15)
MAX_LEAD_TIME = timedelta(days=7)


# ---------- money ----------

def to_minor(amount) -> int:
    """Decimal rupees -> integer paise."""
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def from_minor(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(Decimal("0.01"))

def discounted_unit_minor(price_minor: int, discount_percent: int) -> int:
    """price * (100 - discount) / 100, rounded half up, in paise."""
    discount = min(max(discount_percent or 0, 0), 100)
    return (price_minor * (100 - discount) + 50) // 100


# ---------- display id ----------

async def next_display_id(session: AsyncSession) -> str:
    """Increment-and-read the shared order counter inside the caller's transaction."""
    await session.execute(
        dialect_insert(session, Counter.__table__)
        .values(name=ORDER_COUNTER, value=0)
        .on_conflict_do_nothing()
    )
    await session.execute(
        update(Counter).where(Counter.name == ORDER_COUNTER).values(value=Counter.value + 1)
    )
    value = await session.scalar(select(Counter.value).where(Counter.name == ORDER_COUNTER))
    return f"{settings.DISPLAY_ID_PREFIX}-{value:06d}"


# ---------- stock ----------

async def reserve_stock(session: AsyncSession, product_id: str, quantity: int, name: str) -> None:
    result = await session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
    )
    if result.rowcount == 0:
        raise ValidationError(f"Insufficient stock for: {name}")


def _validate_delivery_time(requested: datetime | None, now: datetime) -> datetime | None:
    if requested is None:
        return None
    requested = as_utc(requested)
    if requested < now + MIN_LEAD_TIME:
        raise ValidationError("Delivery time must be at least 15 minutes from now")
    if requested > now + MAX_LEAD_TIME:
        raise ValidationError("Delivery time must be within 7 days")
    return requested

def _address_snapshot(address: UserAddress) -> str:
    snapshot = f"{address.building}, Room {address.room_number}"
    if address.notes:
        snapshot += f" ({address.notes})"
    return snapshot


async def create_order_from_cart(
    session: AsyncSession,
    user_id: str,
    shop_id: str,
    payment_method: PaymentMethod | str,
    delivery_address_id: str,
    pg_payment_id: str | None = None,
    requested_delivery_time: datetime | None = None,
    upi_transaction_id: str | None = None,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> Order:
    now = as_utc(now or datetime.now(timezone.utc))
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise ValidationError(f"Unsupported payment method: {payment_method}") from None
    requested = _validate_delivery_time(requested_delivery_time, now)

    async with transaction(session):
        shop = await session.get(Shop, shop_id)
        if shop is None:
            raise NotFoundError("Shop not found.")
        if not shop.is_accepting_orders:
            raise ValidationError(f"{shop.name} is not accepting orders right now.")

        cart = await session.scalar(
            select(Cart).where(Cart.user_id == user_id, Cart.shop_id == shop_id)
        )
        lines = []
        if cart is not None:
            lines = (await session.execute(
                select(CartItem).where(CartItem.cart_id == cart.id).order_by(CartItem.id)
            )).scalars().all()
        if not lines:
            raise NotFoundError("Cart is empty.")

        address = await session.get(UserAddress, delivery_address_id)
        if address is None:
            raise NotFoundError("Delivery address not found.")
        if address.user_id != user_id:
            raise UnauthorizedError("Address does not belong to user.")

        wanted: "OrderedDict[str, int]" = OrderedDict()
        for line in lines:
            wanted[line.product_id] = wanted.get(line.product_id, 0) + line.quantity

        # lock product rows in id order
        products = {
            p.id: p for p in (await session.execute(
                select(Product)
                .where(Product.id.in_(list(wanted)))
                .order_by(Product.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )).scalars().all()
        }

        item_minor = 0
        unit_prices = {}
        for product_id, qty in wanted.items():
            product = products.get(product_id)
            if product is None or product.shop_id != shop_id:
                raise ValidationError("A product in your cart is no longer sold by this shop.")
            if not product.is_available:
                raise ValidationError(f"{product.name} is currently unavailable.")
            if product.stock_quantity < qty:
                raise ValidationError(f"Insufficient stock for: {product.name}")
            unit_prices[product_id] = discounted_unit_minor(to_minor(product.price), product.discount)
            item_minor += unit_prices[product_id] * qty

        delivery_minor = to_minor(shop.delivery_fee)
        platform_minor = (item_minor * settings.PLATFORM_FEE_PERCENT + 50) // 100

        slots = await active_slots(session, shop_id)
        batch = await resolve_open_batch(session, shop_id, [s.cutoff_time_minutes for s in slots], now)

        order = Order(
            display_id=await next_display_id(session),
            user_id=user_id,
            shop_id=shop_id,
            batch_id=batch.id if batch else None,
            is_direct_delivery=batch is None,
            payment_method=method,
            payment_status=PaymentStatus.COMPLETED if method == PaymentMethod.ONLINE else PaymentStatus.PENDING,
            pg_payment_id=pg_payment_id,
            upi_transaction_id=upi_transaction_id,
            item_total=from_minor(item_minor),
            delivery_fee=from_minor(delivery_minor),
            platform_fee=from_minor(platform_minor),
            total_price=from_minor(item_minor + delivery_minor),
            delivery_address_id=address.id,
            delivery_address_snapshot=_address_snapshot(address),
            requested_delivery_time=requested,
            created_at=now,
        )
        session.add(order)
        await session.flush()

        session.add_all([
            OrderItem(order_id=order.id, product_id=pid, quantity=qty, price=from_minor(unit_prices[pid]))
            for pid, qty in wanted.items()
        ])
        for pid, qty in wanted.items():
            await reserve_stock(session, pid, qty, products[pid].name)

        await session.execute(delete(CartItem).where(CartItem.cart_id == cart.id))
        owner_id = shop.owner_id

    logger.info(
        "order %s placed at shop %s (batch=%s, total=%s)",
        order.display_id, shop_id, order.batch_id, order.total_price,
    )
    await notify_safely(notifier, owner_id, NotificationPayload(
        title="New Order Received",
        message=f"You have received a new order with ID: {order.display_id}",
        action_url=f"/owner-shops/orders/{order.id}",
    ))
    return order
