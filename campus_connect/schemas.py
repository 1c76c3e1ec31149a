# campus_connect/schemas.py

# Pydantic schemas for API request/response models.
# Response models read straight off ORM rows and service dataclasses (from_attributes).
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from campus_connect.models import BatchStatus, OrderStatus, PaymentMethod, PaymentStatus


class MessageResponse(BaseModel):
    message: str


# ---------- requests ----------

class CheckoutRequest(BaseModel):
    shop_id: str
    payment_method: PaymentMethod
    delivery_address_id: str
    requested_delivery_time: Optional[datetime] = None
    upi_transaction_id: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]{10,35}$")


class CancelBatchRequest(BaseModel):
    reason: Optional[str] = None


class OtpRequest(BaseModel):
    otp: str


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class SlotCreate(BaseModel):
    cutoff_time_minutes: int
    label: Optional[str] = None


class SlotUpdate(BaseModel):
    cutoff_time_minutes: int
    label: Optional[str] = None
    is_active: Optional[bool] = None


class SlotReorder(BaseModel):
    ordered_ids: List[str]


# ---------- responses ----------

class OrderOut(BaseModel):
    id: str
    display_id: str
    shop_id: str
    batch_id: Optional[str]
    is_direct_delivery: bool
    order_status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    item_total: Decimal
    delivery_fee: Decimal
    platform_fee: Decimal
    total_price: Decimal
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BatchOut(BaseModel):
    id: str
    shop_id: str
    status: BatchStatus
    cutoff_time: datetime
    model_config = ConfigDict(from_attributes=True)


class CancelBatchResponse(BaseModel):
    message: str
    cancelled_orders: int


class BatchSlotOut(BaseModel):
    id: str
    cutoff_time_minutes: int
    label: Optional[str]
    is_active: bool
    sort_order: int
    model_config = ConfigDict(from_attributes=True)


class SlotAvailabilityOut(BatchSlotOut):
    is_today_available: bool


class NextSlotOut(BaseModel):
    enabled: bool
    cutoff_time: Optional[datetime]
    batch_id: Optional[str]
    model_config = ConfigDict(from_attributes=True)


class DeliveryAddressOut(BaseModel):
    label: str
    building: str
    room_number: str
    hostel_block: Optional[str]
    model_config = ConfigDict(from_attributes=True)


class BatchOrderOut(BaseModel):
    id: str
    display_id: str
    status: OrderStatus
    delivery_address: Optional[DeliveryAddressOut]
    model_config = ConfigDict(from_attributes=True)


class BatchSummaryItemOut(BaseModel):
    product_id: str
    name: str
    quantity: int
    model_config = ConfigDict(from_attributes=True)


class BatchInfoOut(BaseModel):
    id: str
    status: BatchStatus
    cutoff_time: datetime
    order_count: int
    total_earnings: Decimal
    orders: List[BatchOrderOut]
    item_summary: Optional[List[BatchSummaryItemOut]]
    model_config = ConfigDict(from_attributes=True)


class DirectOrderOut(BaseModel):
    id: str
    display_id: str
    status: OrderStatus
    item_total: Decimal
    delivery_fee: Decimal
    platform_fee: Decimal
    total_earnings: Decimal
    created_at: datetime
    delivery_address: Optional[DeliveryAddressOut]
    model_config = ConfigDict(from_attributes=True)


class VendorDashboardOut(BaseModel):
    open_batch: Optional[BatchInfoOut]
    active_batches: List[BatchInfoOut]
    direct_orders: List[DirectOrderOut]
    model_config = ConfigDict(from_attributes=True)
