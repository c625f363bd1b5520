from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from optimeal.api.deps import (
    CurrentUser,
    get_async_session,
    get_calendar,
    get_current_user,
    get_publisher,
    require_kitchen,
)
from optimeal.core.shifts import ALL_SHIFTS, ShiftCalendar
from optimeal.crud.order import (
    create_order,
    get_order_by_id,
    get_orders,
    get_orders_for_user,
    update_order_status,
)
from optimeal.crud.shift_summary import summarize
from optimeal.models.user import RoleEnum
from optimeal.schemas.order import OrderCreate, OrderRead, OrderStatusUpdate
from optimeal.schemas.shift import ShiftSummary
from optimeal.services.realtime import RealtimePublisher


router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderRead, status_code=201)
async def create_order_endpoint(
    order_in: OrderCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    """
    Создаёт заказ на время выдачи внутри одной из смен.
    Сток резервируется сразу, цена фиксируется на момент заказа.
    """
    order = await create_order(
        db,
        calendar,
        publisher,
        user_id=user.id,
        items=order_in.items,
        pickup_time=order_in.pickup_time,
    )
    return OrderRead.from_orm_with_name(order)


@router.get("/me", response_model=List[OrderRead])
async def list_my_orders(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Заказы текущего пользователя.
    """
    orders = await get_orders_for_user(db, user.id)
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/", response_model=List[OrderRead])
async def list_orders(
    shift: Optional[str] = Query(None, description="Смена выдачи или 'all'"),
    limit: Optional[int] = Query(None, ge=1, description="Количество записей для вывода"),
    offset: Optional[int] = Query(None, ge=0, description="Смещение для пагинации"),
    _: CurrentUser = Depends(require_kitchen),
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
):
    """
    Возвращает заказы на сегодня.
    Поддерживает фильтрацию по смене и пагинацию.
    """
    orders = await get_orders(db, calendar, shift=shift, limit=limit, offset=offset)
    return [OrderRead.from_orm_with_name(o) for o in orders]


@router.get("/shift-summary", response_model=ShiftSummary)
async def get_shift_summary(
    shift: str = Query(ALL_SHIFTS, description="Смена выдачи или 'all'"),
    _: CurrentUser = Depends(require_kitchen),
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
):
    """
    Сколько блюд и гарниров приготовить на смену: всего, выдано, осталось.
    """
    return await summarize(db, calendar, shift)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int = Path(..., gt=0, description="ID заказа"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Возвращает детализацию заказа по id.
    """
    order = await get_order_by_id(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if user.role == RoleEnum.customer and order.user_id != user.id:
        raise HTTPException(status_code=404, detail="Order not found")
    return OrderRead.from_orm_with_name(order)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def patch_order_status(
    order_in: OrderStatusUpdate,
    order_id: int = Path(..., gt=0, description="ID заказа"),
    _: CurrentUser = Depends(require_kitchen),
    db: AsyncSession = Depends(get_async_session),
    calendar: ShiftCalendar = Depends(get_calendar),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    """
    Смена статуса заказа: PENDING → PREPARING → READY → DELIVERED,
    отмена возможна только из PENDING и PREPARING.
    """
    order = await update_order_status(db, calendar, publisher, order_id, order_in.status)
    return OrderRead.from_orm_with_name(order)
