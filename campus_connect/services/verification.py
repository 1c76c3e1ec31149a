# Delivery verification: the customer's OTP completes an OUT_FOR_DELIVERY order.
# A wrong OTP is a normal outcome (success=False, nothing changes), not an error.
# Plain string comparison: no hashing, attempt limits or lockout.

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db import transaction
from campus_connect.errors import ConflictError, NotFoundError, UnauthorizedError
from campus_connect.models import Order, OrderStatus, PaymentMethod, PaymentStatus
from campus_connect.services.notifications import NotificationPayload, Notifier, notify_safely
from campus_connect.services.transitions import ensure_order_transition

logger = logging.getLogger(__name__)

# collected by the delivery person at the door
PAY_ON_DELIVERY = frozenset({PaymentMethod.CASH, PaymentMethod.UPI})


@dataclass
class VerificationResult:
    success: bool
    message: str


async def verify_order_otp(
    session: AsyncSession,
    order_id: str,
    otp: str,
    shop_id: str,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> VerificationResult:
    async with transaction(session):
        order = (await session.execute(
            select(Order).where(Order.id == order_id).with_for_update()
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found")
        if order.shop_id != shop_id:
            raise UnauthorizedError("Order does not belong to your shop")
        if order.order_status != OrderStatus.OUT_FOR_DELIVERY:
            raise ConflictError("Order is not out for delivery")

        if order.delivery_otp is None or order.delivery_otp != otp:
            return VerificationResult(False, "Invalid OTP")

        ensure_order_transition(order.order_status, OrderStatus.COMPLETED)
        order.order_status = OrderStatus.COMPLETED
        order.actual_delivery_time = now or datetime.now(timezone.utc)
        order.delivery_otp = None
        if order.payment_method in PAY_ON_DELIVERY and order.payment_status == PaymentStatus.PENDING:
            order.payment_status = PaymentStatus.COMPLETED

    logger.info("order %s delivered", order.display_id)
    await notify_safely(notifier, order.user_id, NotificationPayload(
        title="Order Delivered",
        message=f"Your order {order.display_id} has been delivered. Enjoy!",
        action_url=f"/orders/{order.id}",
        type="SUCCESS",
    ))
    return VerificationResult(True, "Order delivered successfully")
