# Shared fixtures: a throwaway SQLite database per test, plus small factories
# that build a shop (owner, products, cutoff slots) and customers with carts.

import os

# Default to a local SQLite file for anything that imports the app engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_campus_connect.sqlite")

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from campus_connect.db import Base
from campus_connect.models import BatchSlot, Cart, CartItem, Product, Shop, User, UserAddress
from campus_connect.services.orders import create_order_from_cart

IST = ZoneInfo("Asia/Kolkata")
UTC = ZoneInfo("UTC")

# Sunday 10:00 in Kolkata; slots at 09:00 and 18:00 put the next cutoff at 18:00 today
NOW = datetime(2024, 3, 10, 10, 0, tzinfo=IST)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def publish(self, user_id, payload):
        self.sent.append((user_id, payload))


class FailingNotifier:
    async def publish(self, user_id, payload):
        raise RuntimeError("queue unavailable")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/campus.db")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_shop(session):
    async def _make(slots=(540, 1080), products=(("Maggi", "30.00", 0, 10),), delivery_fee="10.00", accepting=True):
        owner = User(name="Owner")
        session.add(owner)
        await session.flush()
        shop = Shop(
            name="Night Canteen",
            owner_id=owner.id,
            delivery_fee=Decimal(delivery_fee),
            is_accepting_orders=accepting,
        )
        session.add(shop)
        await session.flush()
        items = [
            Product(shop_id=shop.id, name=name, price=Decimal(price), discount=discount, stock_quantity=stock)
            for name, price, discount, stock in products
        ]
        session.add_all(items)
        session.add_all([
            BatchSlot(shop_id=shop.id, cutoff_time_minutes=m, sort_order=i) for i, m in enumerate(slots)
        ])
        await session.commit()
        return SimpleNamespace(owner_id=owner.id, shop_id=shop.id, product_ids=[p.id for p in items])
    return _make


@pytest.fixture
def make_customer(session):
    async def _make(shop, cart=None):
        """cart: {product_id: quantity}"""
        user = User(name="Student")
        session.add(user)
        await session.flush()
        address = UserAddress(user_id=user.id, building="Block C", room_number="214", hostel_block="C")
        session.add(address)
        await session.flush()
        if cart:
            c = Cart(user_id=user.id, shop_id=shop.shop_id)
            session.add(c)
            await session.flush()
            session.add_all([CartItem(cart_id=c.id, product_id=pid, quantity=q) for pid, q in cart.items()])
        await session.commit()
        return SimpleNamespace(user_id=user.id, address_id=address.id)
    return _make


@pytest.fixture
def place_order(session, make_customer):
    async def _place(shop, cart=None, payment_method="CASH", now=NOW, notifier=None):
        customer = await make_customer(shop, cart or {shop.product_ids[0]: 1})
        return await create_order_from_cart(
            session,
            user_id=customer.user_id,
            shop_id=shop.shop_id,
            payment_method=payment_method,
            delivery_address_id=customer.address_id,
            now=now,
            notifier=notifier,
        )
    return _place


async def fresh(session, model, ident):
    return await session.get(model, ident, populate_existing=True)
