import logging
from datetime import datetime
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from optimeal.core.shifts import ALL_SHIFTS, ShiftCalendar, as_utc
from optimeal.exceptions import NotFound
from optimeal.models import Order, OrderItem, OrderStatusEnum
from optimeal.schemas.shift import PrepLine, ShiftSummary
from optimeal.services.realtime import SHIFT_SUMMARY_UPDATED, RealtimePublisher

logger = logging.getLogger(__name__)


class _Tally:
    def __init__(self, id_: int, name: str):
        self.id = id_
        self.name = name
        self.total = 0
        self.prepared = 0

    def add(self, quantity: int, prepared: bool) -> None:
        self.total += quantity
        if prepared:
            self.prepared += quantity

    def to_line(self) -> PrepLine:
        return PrepLine(
            id=self.id,
            name=self.name,
            total_to_prepare=self.total,
            prepared_quantity=self.prepared,
            remaining_to_prepare=max(self.total - self.prepared, 0),
        )


async def summarize(db: AsyncSession, calendar: ShiftCalendar, shift_label: str) -> ShiftSummary:
    """
    Что кухне нужно приготовить на смену (или на весь день для "all").
    Отменённые заказы не учитываются, позиции выданных заказов считаются
    приготовленными. Неизвестная смена даёт пустую сводку.
    """
    shift_label = shift_label or ALL_SHIFTS
    try:
        window = calendar.window_for(shift_label)
    except NotFound:
        return ShiftSummary(shift=shift_label)

    stmt = (
        select(Order)
        .where(
            Order.pickup_time >= as_utc(window.start),
            Order.pickup_time < as_utc(window.end),
            Order.status != OrderStatusEnum.CANCELLED,
        )
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.items).selectinload(OrderItem.side),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    orders = result.scalars().unique().all()

    dishes: Dict[int, _Tally] = {}
    sides: Dict[int, _Tally] = {}
    for order in orders:
        prepared = order.status == OrderStatusEnum.DELIVERED
        for item in order.items:
            dishes.setdefault(item.product_id, _Tally(item.product_id, item.product.name)).add(
                item.quantity, prepared
            )
            if item.side_id:
                sides.setdefault(item.side_id, _Tally(item.side_id, item.side.name)).add(
                    item.quantity, prepared
                )

    main_lines = [t.to_line() for t in dishes.values()]
    side_lines = [t.to_line() for t in sides.values()]
    return ShiftSummary(
        shift=shift_label,
        main_dishes=main_lines,
        sides=side_lines,
        total_main_dishes=sum(line.total_to_prepare for line in main_lines),
        total_sides=sum(line.total_to_prepare for line in side_lines),
    )


async def publish_shift_summaries(
    db: AsyncSession,
    calendar: ShiftCalendar,
    publisher: RealtimePublisher,
    pickup_time: datetime,
) -> None:
    """Пересчитывает сводку смены заказа и сводку "all" и рассылает обе."""
    labels = [calendar.label_for(pickup_time)]
    if ALL_SHIFTS not in labels:
        labels.append(ALL_SHIFTS)

    for label in labels:
        summary = await summarize(db, calendar, label)
        await publisher.publish(SHIFT_SUMMARY_UPDATED, {"shiftSummary": summary.model_dump(mode="json")})
