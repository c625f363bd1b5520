"""
Общая проверка корзины для заказа и checkout.

Проверяет существование товаров и гарниров, совместимость гарнира с товаром
и политику времени выдачи. Ничего не пишет в базу.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from optimeal.core.shifts import ShiftCalendar
from optimeal.exceptions import NotFound, ValidationError
from optimeal.models import Product, Side
from optimeal.schemas.order import OrderItemCreate


@dataclass
class CatalogSnapshot:
    products: Dict[int, Product] = field(default_factory=dict)
    sides: Dict[int, Side] = field(default_factory=dict)


@dataclass(frozen=True)
class PricedLine:
    item: OrderItemCreate
    unit_price: int

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.item.quantity


async def validate_cart(db: AsyncSession, items: Sequence[OrderItemCreate]) -> CatalogSnapshot:
    """
    Возвращает загруженные товары и гарниры корзины.
    Пустая корзина и несовместимый гарнир дают ValidationError,
    отсутствующие (или удалённые/неактивные) позиции дают NotFound.
    """
    if not items:
        raise ValidationError("Order must contain at least one item", reason="empty_cart")

    product_ids = list(dict.fromkeys(item.product_id for item in items))
    side_ids = list(dict.fromkeys(item.side_id for item in items if item.side_id))

    result = await db.execute(
        select(Product).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
    )
    products = {p.id: p for p in result.scalars().all()}

    sides: Dict[int, Side] = {}
    if side_ids:
        result = await db.execute(select(Side).where(Side.id.in_(side_ids), Side.is_active.is_(True)))
        sides = {s.id: s for s in result.scalars().all()}

    missing_products = [pid for pid in product_ids if pid not in products]
    missing_sides = [sid for sid in side_ids if sid not in sides]
    if missing_products or missing_sides:
        parts = []
        if missing_products:
            parts.append(f"Products not found: {', '.join(map(str, missing_products))}")
        if missing_sides:
            parts.append(f"Sides not found: {', '.join(map(str, missing_sides))}")
        raise NotFound(
            "; ".join(parts),
            details={"missing_product_ids": missing_products, "missing_side_ids": missing_sides},
        )

    incompatible: List[Tuple[int, int]] = [
        (item.product_id, item.side_id)
        for item in items
        if item.side_id and item.side_id not in products[item.product_id].side_ids
    ]
    if incompatible:
        raise ValidationError(
            "; ".join(f"Product ID {pid} does not accept side ID {sid}" for pid, sid in incompatible),
            details={"incompatible": [{"product_id": pid, "side_id": sid} for pid, sid in incompatible]},
            reason="incompatible_side",
        )

    return CatalogSnapshot(products=products, sides=sides)


def validate_pickup_time(calendar: ShiftCalendar, pickup_time: datetime) -> datetime:
    """Время выдачи: сегодня, строго в будущем и внутри одной из смен."""
    local = calendar.localize(pickup_time)
    now = calendar.now()

    if local.date() != now.date():
        raise ValidationError("Pickup time must be for today", reason="invalid_pickup_time")
    if local <= now:
        raise ValidationError("Pickup time must be in the future", reason="invalid_pickup_time")
    if not calendar.is_within_any_shift(local):
        raise ValidationError(
            "Pickup time must be within allowed shifts",
            details={"shifts": [s.label for s in calendar.shifts]},
            reason="invalid_pickup_time",
        )
    return local


def price_lines(snapshot: CatalogSnapshot, items: Sequence[OrderItemCreate]) -> Tuple[List[PricedLine], int]:
    """Фиксирует текущую цену каталога на каждую строку и считает итог."""
    lines = [PricedLine(item=item, unit_price=snapshot.products[item.product_id].price) for item in items]
    return lines, sum(line.subtotal for line in lines)
