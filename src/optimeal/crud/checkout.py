"""
Оформление заказа с онлайн-оплатой.

Сага из двух транзакций: резерв стока + checkout сейчас, заказ или возврат
стока потом, по webhook платёжного шлюза. Ошибка шлюза при создании
компенсируется явным возвратом стока, а не откатом.
"""
import logging
import uuid
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from optimeal.core.shifts import ShiftCalendar, as_utc
from optimeal.crud import inventory
from optimeal.crud.cart import price_lines, validate_cart
from optimeal.crud.order import build_order, get_order_by_id, notify_order_created
from optimeal.exceptions import NotFound, ValidationError
from optimeal.models import Checkout, CheckoutItem, CheckoutStatusEnum
from optimeal.schemas.checkout import CheckoutCreated
from optimeal.schemas.order import OrderItemCreate
from optimeal.services.payment_gateway import APPROVED, FAILED_STATUSES, IntentLine, PaymentGateway
from optimeal.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)


async def create_checkout(
    db: AsyncSession,
    calendar: ShiftCalendar,
    gateway: PaymentGateway,
    user_id: int,
    items: Sequence[OrderItemCreate],
    shift: str,
    redirect_urls: Optional[Mapping[str, Optional[str]]] = None,
) -> CheckoutCreated:
    """
    Резервирует сток, создаёт checkout в PENDING и платёжное намерение.
    Возвращает id checkout и ссылку на оплату.
    """
    try:
        pickup_time = calendar.pickup_time_for(shift)
    except NotFound:
        raise ValidationError(
            f"Invalid shift: {shift}",
            details={"shift": shift, "valid_shifts": [s.label for s in calendar.shifts]},
            reason="invalid_shift",
        )

    # транзакция 1: резерв + checkout
    try:
        snapshot = await validate_cart(db, items)
        priced, total = price_lines(snapshot, items)
        await inventory.reserve(db, [(item.product_id, item.quantity) for item in items])

        checkout = Checkout(
            user_id=user_id,
            status=CheckoutStatusEnum.PENDING,
            total_price=total,
            pickup_time=as_utc(pickup_time),
            external_reference=str(uuid.uuid4()),
            items=[
                CheckoutItem(
                    product_id=p.item.product_id,
                    quantity=p.item.quantity,
                    unit_price=p.unit_price,
                    side_id=p.item.side_id,
                    notes=p.item.notes,
                )
                for p in priced
            ],
        )
        db.add(checkout)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Checkout {checkout.id} created for user {user_id}, reference {checkout.external_reference}")

    intent_lines = [
        IntentLine(
            product_id=p.item.product_id,
            title=snapshot.products[p.item.product_id].name,
            quantity=p.item.quantity,
            unit_price=p.unit_price,
        )
        for p in priced
    ]
    try:
        intent = await gateway.create_intent(
            amount=total,
            external_reference=checkout.external_reference,
            line_items=intent_lines,
            redirect_urls=dict(redirect_urls or {}),
        )
    except Exception:
        # сток возвращается при любой ошибке вызова, не только GatewayError
        await _compensate_failed_intent(db, checkout)
        raise

    checkout.preference_id = intent.intent_id
    checkout.redirect_url = intent.redirect_url
    await db.commit()

    return CheckoutCreated(
        checkout_id=checkout.id,
        redirect_url=intent.redirect_url,
        preference_id=intent.intent_id,
    )


async def _compensate_failed_intent(db: AsyncSession, checkout: Checkout) -> None:
    # checkout уходит в CANCELLED, чтобы поздний webhook не вернул сток повторно
    checkout_id = checkout.id
    reservation = inventory.Reservation.from_items(checkout.items)
    try:
        flipped = await _flip_status(db, checkout_id, CheckoutStatusEnum.CANCELLED)
        if flipped:
            await inventory.release(db, reservation)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.warning(f"Checkout {checkout_id} cancelled after gateway failure, stock released")


async def _flip_status(db: AsyncSession, checkout_id: int, new_status: CheckoutStatusEnum) -> bool:
    """
    Условный переход из PENDING. Проверка идёт внутри транзакции записи,
    поэтому из двух одновременных доставок webhook выигрывает одна.
    """
    result = await db.execute(
        update(Checkout)
        .where(Checkout.id == checkout_id, Checkout.status == CheckoutStatusEnum.PENDING)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def extract_payment_id(payload: Mapping[str, Any]) -> Optional[str]:
    data = payload.get("data") or {}
    payment_id = None
    if isinstance(data, Mapping):
        payment = data.get("payment") or {}
        payment_id = data.get("id") or (payment.get("id") if isinstance(payment, Mapping) else None)
    payment_id = payment_id or payload.get("id")
    return str(payment_id) if payment_id else None


async def handle_payment_notification(
    db: AsyncSession,
    calendar: ShiftCalendar,
    gateway: PaymentGateway,
    publisher: RealtimePublisher,
    payload: Mapping[str, Any],
) -> Optional[str]:
    """
    Сверяет уведомление платёжки с checkout.

    Уведомления приходят минимум один раз и в любом порядке. Статус всегда
    перезапрашивается у шлюза. Возвращает применённый статус или None,
    если ничего не изменилось.
    """
    notification_type = payload.get("type") or payload.get("topic")
    payment_id = extract_payment_id(payload)
    if not notification_type or not payment_id:
        logger.info("Ignoring payment notification without type or payment id")
        return None

    payment = await gateway.get_payment(payment_id)
    if not payment.external_reference:
        logger.warning(f"Payment {payment_id} has no external reference, ignoring")
        return None

    result = await db.execute(
        select(Checkout)
        .where(Checkout.external_reference == payment.external_reference)
        .options(selectinload(Checkout.items))
        .execution_options(populate_existing=True)
    )
    checkout = result.scalars().first()
    if not checkout:
        logger.warning(f"No checkout for reference {payment.external_reference}, ignoring")
        return None

    status = payment.status.lower()
    if status == APPROVED:
        return await _approve(db, calendar, publisher, checkout)
    if status in FAILED_STATUSES:
        return await _fail(db, checkout, CheckoutStatusEnum(status.upper()))

    logger.info(f"Payment {payment_id} is {status}, checkout {checkout.id} left as is")
    return None


async def _approve(
    db: AsyncSession, calendar: ShiftCalendar, publisher: RealtimePublisher, checkout: Checkout
) -> Optional[str]:
    # после rollback экземпляр checkout истекает, дальше работаем только с id
    checkout_id = checkout.id
    try:
        if not await _flip_status(db, checkout_id, CheckoutStatusEnum.APPROVED):
            await db.rollback()
            logger.info(f"Checkout {checkout_id} already processed, duplicate approval ignored")
            return None

        # сток уже зарезервирован при создании checkout
        order = build_order(checkout.user_id, checkout.pickup_time, checkout.total_price, checkout.items)
        db.add(order)
        await db.flush()
        order_id = order.id
        await db.execute(
            update(Checkout)
            .where(Checkout.id == checkout_id)
            .values(order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Checkout {checkout_id} approved, order {order_id} created")

    order = await get_order_by_id(db, order_id)
    await notify_order_created(db, calendar, publisher, order)
    return CheckoutStatusEnum.APPROVED.value


async def _fail(db: AsyncSession, checkout: Checkout, new_status: CheckoutStatusEnum) -> Optional[str]:
    checkout_id = checkout.id
    reservation = inventory.Reservation.from_items(checkout.items)
    try:
        if not await _flip_status(db, checkout_id, new_status):
            await db.rollback()
            logger.info(f"Checkout {checkout_id} already processed, {new_status.value} ignored")
            return None
        await inventory.release(db, reservation)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Checkout {checkout_id} {new_status.value}, stock released")
    return new_status.value


async def get_checkout_status(
    db: AsyncSession, checkout_id: int, user_id: Optional[int] = None
) -> CheckoutStatusEnum:
    """
    Статус checkout. Если передан user_id, чужой checkout считается
    несуществующим, как и чужой заказ.
    """
    stmt = select(Checkout.status).where(Checkout.id == checkout_id)
    if user_id is not None:
        stmt = stmt.where(Checkout.user_id == user_id)
    result = await db.execute(stmt)
    status = result.scalar_one_or_none()
    if status is None:
        raise NotFound("Checkout not found", details={"checkout_id": checkout_id})
    return status
