from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from optimeal.core.shifts import ShiftCalendar
from optimeal.models.user import RoleEnum
from optimeal.services.payment_gateway import PaymentGateway
from optimeal.services.realtime import RealtimePublisher


async def get_async_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Использовать в Depends(get_async_session)
    Пример: async def endpoint(db: AsyncSession = Depends(get_async_session))
    """
    async with request.app.state.sessionmaker() as session:
        yield session


def get_calendar(request: Request) -> ShiftCalendar:
    return request.app.state.calendar


def get_publisher(request: Request) -> RealtimePublisher:
    return request.app.state.publisher


def get_gateway(request: Request) -> PaymentGateway:
    gateway = request.app.state.gateway
    if gateway is None:
        raise HTTPException(status_code=503, detail="Online payments are not configured")
    return gateway


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: RoleEnum


async def get_current_user(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    """
    Пользователь уже аутентифицирован внешним слоем (API gateway / Cognito),
    который проставляет заголовки X-User-Id и X-User-Role.
    """
    if not x_user_id or x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = RoleEnum(x_user_role or RoleEnum.customer.value)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Unknown role: {x_user_role}")
    return CurrentUser(id=x_user_id, role=role)


async def require_kitchen(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role not in (RoleEnum.admin, RoleEnum.kitchen):
        raise HTTPException(status_code=403, detail="Kitchen or admin role required")
    return user
