import logging
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from optimeal.core.shifts import ALL_SHIFTS, ShiftCalendar, as_utc
from optimeal.crud import inventory
from optimeal.crud.cart import price_lines, validate_cart, validate_pickup_time
from optimeal.crud.shift_summary import publish_shift_summaries
from optimeal.exceptions import InvalidTransition, NotFound
from optimeal.models import Order, OrderItem, OrderStatusEnum
from optimeal.schemas.order import OrderItemCreate, OrderRead
from optimeal.services.realtime import NEW_ORDER, ORDER_STATUS_UPDATED, RealtimePublisher

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[OrderStatusEnum, FrozenSet[OrderStatusEnum]] = {
    OrderStatusEnum.PENDING: frozenset({OrderStatusEnum.PREPARING, OrderStatusEnum.CANCELLED}),
    OrderStatusEnum.PREPARING: frozenset({OrderStatusEnum.READY, OrderStatusEnum.CANCELLED}),
    OrderStatusEnum.READY: frozenset({OrderStatusEnum.DELIVERED}),
    OrderStatusEnum.DELIVERED: frozenset(),
    OrderStatusEnum.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatusEnum, new: OrderStatusEnum) -> bool:
    return new in VALID_TRANSITIONS[current]


def _with_items(stmt):
    return stmt.options(
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.items).selectinload(OrderItem.side),
    ).execution_options(populate_existing=True)


async def get_order_by_id(db: AsyncSession, order_id: int) -> Optional[Order]:
    """
    Возвращает заказ по ID с подгруженными items, product и side.
    Предотвращает MissingGreenlet при сериализации.
    """
    result = await db.execute(_with_items(select(Order).where(Order.id == order_id)))
    return result.scalars().unique().first()


async def get_orders_for_user(db: AsyncSession, user_id: int) -> List[Order]:
    """Заказы пользователя, новые первыми."""
    stmt = _with_items(
        select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
    )
    result = await db.execute(stmt)
    return result.scalars().unique().all()


async def get_orders(
    db: AsyncSession,
    calendar: ShiftCalendar,
    shift: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Order]:
    """
    Заказы на сегодня для кухни.
    Фильтр по смене. Без смены, с "all" или с неизвестной сменой берётся весь день.
    Сортируем по created_at (новые первыми).
    """
    label = shift if shift and calendar.get_shift(shift) else ALL_SHIFTS
    window = calendar.window_for(label)

    stmt = _with_items(
        select(Order)
        .where(Order.pickup_time >= as_utc(window.start), Order.pickup_time < as_utc(window.end))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    if offset:
        stmt = stmt.offset(offset)

    result = await db.execute(stmt)
    return result.scalars().unique().all()


def build_order(user_id: int, pickup_time: datetime, total_price: int, lines: Iterable) -> Order:
    """
    Собирает агрегат заказа; строки: любые объекты с product_id, quantity,
    unit_price, side_id и notes (позиции корзины с ценой или позиции checkout).
    """
    return Order(
        user_id=user_id,
        status=OrderStatusEnum.PENDING,
        total_price=total_price,
        pickup_time=as_utc(pickup_time),
        items=[
            OrderItem(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                side_id=line.side_id,
                notes=line.notes,
            )
            for line in lines
        ],
    )


class _OrderLine:
    def __init__(self, priced):
        self.product_id = priced.item.product_id
        self.quantity = priced.item.quantity
        self.unit_price = priced.unit_price
        self.side_id = priced.item.side_id
        self.notes = priced.item.notes


async def create_order(
    db: AsyncSession,
    calendar: ShiftCalendar,
    publisher: RealtimePublisher,
    user_id: int,
    items: Sequence[OrderItemCreate],
    pickup_time: datetime,
) -> Order:
    """
    Проверяет корзину, резервирует сток и сохраняет заказ одной транзакцией.
    Уведомления уходят после коммита и не могут сорвать создание заказа.
    """
    try:
        snapshot = await validate_cart(db, items)
        validate_pickup_time(calendar, pickup_time)
        priced, total = price_lines(snapshot, items)

        await inventory.reserve(db, [(item.product_id, item.quantity) for item in items])

        order = build_order(user_id, pickup_time, total, [_OrderLine(p) for p in priced])
        db.add(order)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Order {order.id} created for user {user_id}, total {total}")

    order = await get_order_by_id(db, order.id)
    await notify_order_created(db, calendar, publisher, order)
    return order


async def update_order_status(
    db: AsyncSession,
    calendar: ShiftCalendar,
    publisher: RealtimePublisher,
    order_id: int,
    new_status: OrderStatusEnum,
) -> Order:
    """
    Переводит заказ по машине состояний.
    Отмена возвращает сток в той же транзакции, что и смена статуса.
    """
    try:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = result.scalars().unique().first()
        if not order:
            raise NotFound(f"Order with id={order_id} not found", details={"order_id": order_id})

        previous = order.status
        if not can_transition(previous, new_status):
            raise InvalidTransition(
                f"Cannot transition from {previous.value} to {new_status.value}",
                details={"from": previous.value, "to": new_status.value},
            )

        if new_status == OrderStatusEnum.CANCELLED:
            await inventory.release(db, inventory.Reservation.from_items(order.items))

        order.status = new_status
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Order {order_id} status changed {previous.value} -> {new_status.value}")

    order = await get_order_by_id(db, order_id)
    await _notify(
        db,
        calendar,
        publisher,
        order,
        ORDER_STATUS_UPDATED,
        {"previousStatus": previous.value, "newStatus": new_status.value},
    )
    return order


async def notify_order_created(
    db: AsyncSession, calendar: ShiftCalendar, publisher: RealtimePublisher, order: Order
) -> None:
    await _notify(db, calendar, publisher, order, NEW_ORDER, {})


async def _notify(
    db: AsyncSession,
    calendar: ShiftCalendar,
    publisher: RealtimePublisher,
    order: Order,
    event: str,
    extra: dict,
) -> None:
    # заказ уже закоммичен: ошибка рассылки только логируется
    try:
        payload = {"order": OrderRead.from_orm_with_name(order).model_dump(mode="json"), **extra}
        await publisher.publish(event, payload)
        await publish_shift_summaries(db, calendar, publisher, order.pickup_time)
    except Exception:
        logger.exception(f"Failed to publish {event} for order {order.id}")
