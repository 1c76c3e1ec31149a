# campus_connect/seed.py

# Demo data loader for local runs and the test_api.py smoke script.
# Creates a shop owner, a student with a hostel address, one shop with products,
# three cutoff slots (09:00, 18:00, 21:00 local) and a filled cart.
# Prints the ids the smoke script needs as KEY=value lines.

from __future__ import annotations

import asyncio
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.db import Base, SessionLocal, engine
from campus_connect.models import (
    BatchSlot, Cart, CartItem, Product, Shop, User, UserAddress,
)

PRODUCTS = [
    ("Maggi", Decimal("30.00"), 0, 50),
    ("Cold Coffee", Decimal("60.00"), 10, 40),
    ("Paneer Roll", Decimal("90.00"), 5, 25),
]
SLOTS = [(540, "Morning run"), (1080, "Evening run"), (1260, "Night run")]


async def seed(session: AsyncSession) -> dict[str, str]:
    owner = User(name="Canteen Owner", phone="9000000001")
    student = User(name="Hostel Student", phone="9000000002")
    session.add_all([owner, student])
    await session.flush()

    shop = Shop(name="Night Canteen", owner_id=owner.id, delivery_fee=Decimal("10.00"))
    address = UserAddress(user_id=student.id, label="Hostel", building="Block C", room_number="214", hostel_block="C")
    session.add_all([shop, address])
    await session.flush()

    products = [
        Product(shop_id=shop.id, name=name, price=price, discount=discount, stock_quantity=stock)
        for name, price, discount, stock in PRODUCTS
    ]
    session.add_all(products)
    session.add_all([
        BatchSlot(shop_id=shop.id, cutoff_time_minutes=m, label=label, sort_order=i)
        for i, (m, label) in enumerate(SLOTS)
    ])
    cart = Cart(user_id=student.id, shop_id=shop.id)
    session.add(cart)
    await session.flush()

    session.add_all([
        CartItem(cart_id=cart.id, product_id=products[0].id, quantity=2),
        CartItem(cart_id=cart.id, product_id=products[1].id, quantity=1),
    ])
    await session.commit()
    return {
        "OWNER_ID": owner.id,
        "USER_ID": student.id,
        "SHOP_ID": shop.id,
        "ADDRESS_ID": address.id,
    }


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionLocal() as session:
        ids = await seed(session)
    for key, value in ids.items():
        print(f"{key}={value}")


if __name__ == "__main__":
    asyncio.run(main())
