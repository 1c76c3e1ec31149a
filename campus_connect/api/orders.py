# campus_connect/api/orders.py

# Order endpoints.
# POST /orders → checkout: turns the caller's cart for a shop into an order (joins the open batch).
# POST /vendor/orders/{id}/start-delivery → dispatch a direct-delivery order on its own.
# POST /vendor/orders/{id}/status → vendor moves one order (cancel with restock, or dispatch).
# POST /vendor/orders/{id}/verify-otp → customer OTP at the door completes the order.

from __future__ import annotations
import re
from uuid import uuid4

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.api.deps import current_shop_id, current_user_id, get_notifier
from campus_connect.db import get_session
from campus_connect.errors import ValidationError
from campus_connect.models import PaymentMethod
from campus_connect.schemas import CheckoutRequest, MessageResponse, OrderOut, OrderStatusUpdate, OtpRequest
from campus_connect.services.batches import start_individual_delivery, update_order_status
from campus_connect.services.notifications import Notifier
from campus_connect.services.orders import create_order_from_cart
from campus_connect.services.verification import verify_order_otp

OTP_FORMAT = re.compile(r"^\d{4}$")

router = APIRouter()

@router.post("/orders", response_model=OrderOut, status_code=201)
async def checkout(
    body: CheckoutRequest,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    prefix = "txn" if body.payment_method == PaymentMethod.ONLINE else "offline"
    return await create_order_from_cart(
        session,
        user_id=user_id,
        shop_id=body.shop_id,
        payment_method=body.payment_method,
        delivery_address_id=body.delivery_address_id,
        pg_payment_id=f"{prefix}_{uuid4().hex}",
        requested_delivery_time=body.requested_delivery_time,
        upi_transaction_id=body.upi_transaction_id,
        notifier=notifier,
    )

@router.post("/vendor/orders/{order_id}/start-delivery", response_model=MessageResponse)
async def start_order_delivery(
    order_id: str,
    shop_id: str = Depends(current_shop_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    await start_individual_delivery(session, order_id, shop_id, notifier=notifier)
    return {"message": "Order marked as OUT_FOR_DELIVERY."}

@router.post("/vendor/orders/{order_id}/verify-otp", response_model=MessageResponse)
async def verify_otp(
    order_id: str,
    body: OtpRequest,
    shop_id: str = Depends(current_shop_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    if not OTP_FORMAT.match(body.otp):
        raise ValidationError("Invalid OTP format. Must be 4 digits.")
    result = await verify_order_otp(session, order_id, body.otp, shop_id, notifier=notifier)
    if not result.success:
        raise ValidationError(result.message)
    return {"message": result.message}

@router.post("/vendor/orders/{order_id}/status", response_model=OrderOut)
async def set_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    shop_id: str = Depends(current_shop_id),
    session: AsyncSession = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
):
    return await update_order_status(session, order_id, shop_id, body.status, notifier=notifier)
