import logging

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from optimeal.api.deps import (
    CurrentUser,
    get_async_session,
    get_calendar,
    get_current_user,
    get_gateway,
    get_publisher,
)
from optimeal.core.shifts import ShiftCalendar
from optimeal.crud.checkout import create_checkout, get_checkout_status, handle_payment_notification
from optimeal.models.user import RoleEnum
from optimeal.schemas.checkout import CheckoutCreate, CheckoutCreated, CheckoutStatusRead
from optimeal.services.payment_gateway import PaymentGateway
from optimeal.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/checkout", response_model=CheckoutCreated)
async def create_checkout_endpoint(
    checkout_in: CheckoutCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Создаёт checkout на смену и возвращает ссылку на оплату.
    """
    return await create_checkout(
        db,
        calendar,
        gateway,
        user_id=user.id,
        items=checkout_in.items,
        shift=checkout_in.shift,
        redirect_urls=request.app.state.settings.redirect_urls,
    )


@router.get("/checkout/{checkout_id}/status", response_model=CheckoutStatusRead)
async def get_checkout_status_endpoint(
    checkout_id: int = Path(..., gt=0, description="ID checkout"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Статус checkout. Покупатель видит только свои.
    """
    owner_id = user.id if user.role == RoleEnum.customer else None
    status = await get_checkout_status(db, checkout_id, user_id=owner_id)
    return CheckoutStatusRead(checkout_id=checkout_id, status=status)


@router.post("/webhooks/mercadopago", response_class=PlainTextResponse)
async def mercadopago_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    """
    Webhook MercadoPago. Всегда отвечает 200 "ok".
    """
    try:
        gateway = request.app.state.gateway
        if gateway is None:
            logger.warning("Payment notification received but online payments are not configured")
            return "ok"
        payload = await request.json()
        if not isinstance(payload, dict):
            payload = {}
        await handle_payment_notification(db, calendar, gateway, publisher, payload)
    except Exception:
        # Шлюз повторяет доставку на любой не-2xx ответ: ошибки обработки только логируются,
        # шлюзу всегда отвечаем 200.
        logger.exception("Failed to process MercadoPago notification")
    return "ok"
