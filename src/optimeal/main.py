import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .api import health
from .api.routes.orders import router as orders_router
from .api.routes.payments import router as payments_router
from .api.routes.shifts import router as shifts_router
from .config import Settings
from .core.shifts import ShiftCalendar
from .db.session import create_engine, create_sessionmaker
from .exceptions import OrderingError
from .logging_config import configure_logging
from .services.payment_gateway import MercadoPagoGateway, PaymentGateway
from .services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    calendar: Optional[ShiftCalendar] = None,
    gateway: Optional[PaymentGateway] = None,
    publisher: Optional[RealtimePublisher] = None,
) -> FastAPI:
    """
    Собирает приложение: конфигурация читается один раз здесь,
    календарь смен и клиенты создаются из неё и живут в app.state.
    """
    settings = settings or Settings()
    configure_logging(settings.LOG_LEVEL)

    engine = None
    if sessionmaker is None:
        engine = create_engine(settings)
        sessionmaker = create_sessionmaker(engine)

    calendar = calendar or ShiftCalendar.from_settings(settings)
    if gateway is None and settings.MP_ACCESS_TOKEN:
        gateway = MercadoPagoGateway.from_settings(settings)
    if gateway is None:
        logger.warning("MP_ACCESS_TOKEN not configured - online checkout disabled")
    publisher = publisher or RealtimePublisher.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Application started, shifts: {', '.join(calendar.valid_labels())}")
        yield
        if gateway is not None:
            await gateway.aclose()
        await publisher.aclose()
        if engine is not None:
            await engine.dispose()
        logger.info("Application stopped")

    app = FastAPI(title="OptiMeal", lifespan=lifespan)
    app.state.settings = settings
    app.state.sessionmaker = sessionmaker
    app.state.calendar = calendar
    app.state.gateway = gateway
    app.state.publisher = publisher

    @app.exception_handler(OrderingError)
    async def ordering_error_handler(request: Request, exc: OrderingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Подключаем роуты
    app.include_router(health.router)
    app.include_router(shifts_router)
    app.include_router(orders_router)
    app.include_router(payments_router)

    return app


# В тестах приложение собирается через create_app с тестовыми зависимостями
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_app()
else:
    app = FastAPI()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "optimeal.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
