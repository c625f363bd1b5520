"""
Резервирование стока.

Сток меняется только условным декрементом (`stock >= q` в WHERE одного
UPDATE) и безусловным инкрементом при возврате. Обе операции выполняются в
транзакции вызывающего кода и сами ничего не коммитят.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from optimeal.exceptions import InsufficientStock, NotFound, StockShortage
from optimeal.models import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservedLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class Reservation:
    lines: Tuple[ReservedLine, ...]

    @classmethod
    def from_items(cls, items) -> "Reservation":
        """Резерв уже сохранённого заказа или checkout (по его позициям)."""
        return cls(lines=_merge((item.product_id, item.quantity) for item in items))

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


def _merge(lines: Iterable[Tuple[int, int]]) -> Tuple[ReservedLine, ...]:
    # один товар может прийти несколькими строками (разные гарниры)
    merged: "OrderedDict[int, int]" = OrderedDict()
    for product_id, quantity in lines:
        if quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {quantity} for product {product_id}")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return tuple(ReservedLine(product_id=pid, quantity=qty) for pid, qty in merged.items())


async def reserve(db: AsyncSession, lines: Iterable[Tuple[int, int]]) -> Reservation:
    """
    Атомарно списывает сток по всем строкам или не списывает ничего.
    Должно быть первой записью в транзакции: при нехватке транзакция
    откатывается целиком, вместе с уже списанными строками.
    """
    reservation = Reservation(lines=_merge(lines))
    product_ids = [line.product_id for line in reservation.lines]

    result = await db.execute(
        select(Product.id).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
    )
    visible = set(result.scalars().all())
    missing = [pid for pid in product_ids if pid not in visible]
    if missing:
        raise NotFound(
            f"Products not found: {', '.join(map(str, missing))}",
            details={"missing_product_ids": missing},
        )

    short = []
    for line in reservation.lines:
        result = await db.execute(
            update(Product)
            .where(
                Product.id == line.product_id,
                Product.deleted_at.is_(None),
                Product.stock >= line.quantity,
            )
            .values(stock=Product.stock - line.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            short.append(line)

    if short:
        await db.rollback()
        shortages = await _describe_shortages(db, short)
        logger.info(f"Reservation failed, insufficient stock: {shortages}")
        raise InsufficientStock(shortages)

    return reservation


async def _describe_shortages(db: AsyncSession, short) -> list:
    result = await db.execute(
        select(Product.id, Product.name, Product.stock).where(
            Product.id.in_([line.product_id for line in short])
        )
    )
    rows = {row.id: row for row in result.all()}
    shortages = []
    for line in short:
        row = rows.get(line.product_id)
        shortages.append(
            StockShortage(
                product_id=line.product_id,
                name=row.name if row else f"Product {line.product_id}",
                requested=line.quantity,
                available=row.stock if row else 0,
            )
        )
    # читали только для сообщения об ошибке
    await db.rollback()
    return shortages


async def release(db: AsyncSession, reservation: Reservation) -> None:
    """
    Возвращает сток по всем строкам резерва.
    Не идемпотентно: вызывающий гарантирует однократный вызов сменой статуса.
    """
    for line in reservation.lines:
        await db.execute(
            update(Product)
            .where(Product.id == line.product_id)
            .values(stock=Product.stock + line.quantity)
            .execution_options(synchronize_session=False)
        )
