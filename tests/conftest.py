import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

import optimeal.models  # noqa: F401
from optimeal.config import DEFAULT_SHIFTS
from optimeal.core.shifts import ShiftCalendar, parse_shifts
from optimeal.db.base import Base
from optimeal.db.session import create_sessionmaker
from optimeal.exceptions import GatewayError
from optimeal.models import Product, Side, User, RoleEnum
from optimeal.services.payment_gateway import IntentLine, PaymentGateway, PaymentIntent, PaymentRecord
from optimeal.services.realtime import RealtimePublisher

ART = timezone(timedelta(hours=-3))
NOW = datetime(2026, 10, 18, 10, 0, tzinfo=ART)


def local(hour: int, minute: int = 0, day: int = 18) -> datetime:
    """Время кухни (UTC-3) в тестовый день."""
    return datetime(2026, 10, day, hour, minute, tzinfo=ART)


class FrozenClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current.astimezone(timezone.utc)


class FakeGateway(PaymentGateway):
    def __init__(self):
        self.intents: List[dict] = []
        self.payments: Dict[str, PaymentRecord] = {}
        self.fail_create = False
        self.create_error: Optional[Exception] = None
        self.closed = False

    async def create_intent(
        self,
        amount: int,
        external_reference: str,
        line_items: List[IntentLine],
        redirect_urls: Dict[str, Optional[str]],
    ) -> PaymentIntent:
        if self.create_error is not None:
            raise self.create_error
        if self.fail_create:
            raise GatewayError("Payment provider failed to create the payment intent")
        self.intents.append(
            {
                "amount": amount,
                "external_reference": external_reference,
                "line_items": list(line_items),
                "redirect_urls": dict(redirect_urls),
            }
        )
        n = len(self.intents)
        return PaymentIntent(intent_id=f"pref-{n}", redirect_url=f"https://mp.test/checkout/pref-{n}")

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        try:
            return self.payments[payment_id]
        except KeyError:
            raise GatewayError("Payment provider failed to return the payment", details={"payment_id": payment_id})

    def settle(self, payment_id: str, status: str, external_reference: Optional[str]) -> dict:
        """Регистрирует платёж и возвращает тело webhook для него."""
        self.payments[payment_id] = PaymentRecord(
            payment_id=payment_id, status=status, external_reference=external_reference
        )
        return {"type": "payment", "action": "payment.updated", "data": {"id": payment_id}}

    async def aclose(self) -> None:
        self.closed = True


class GatedGateway(FakeGateway):
    """Держит get_payment, пока не придут все `parties` доставок, и отпускает их разом."""

    def __init__(self, parties: int):
        super().__init__()
        self.parties = parties
        self.arrived = 0
        self.gate = asyncio.Event()

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        self.arrived += 1
        if self.arrived >= self.parties:
            self.gate.set()
        await asyncio.wait_for(self.gate.wait(), timeout=5)
        return await super().get_payment(payment_id)


class RecordingPublisher(RealtimePublisher):
    def __init__(self, fail: bool = False):
        super().__init__(url=None, api_key=None)
        self.fail = fail
        self.events: List[tuple] = []

    async def publish(self, event, payload):
        if self.fail:
            raise RuntimeError("realtime is down")
        self.events.append((event, payload))
        return True

    @property
    def names(self) -> List[str]:
        return [event for event, _ in self.events]


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def calendar(clock):
    return ShiftCalendar(parse_shifts(DEFAULT_SHIFTS.split(",")), ART, clock=clock)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'optimeal.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
async def catalog(sessionmaker):
    """
    Меню тестового дня:
    Milanesa (сток 10, гарниры Rice/Salad/Fries), Tarta (сток 1, только Salad),
    Empanada (удалена). Fries неактивен.
    """
    async with sessionmaker() as session:
        rice = Side(id=1, name="Rice", is_active=True)
        salad = Side(id=2, name="Salad", is_active=True)
        fries = Side(id=3, name="Fries", is_active=False)
        session.add_all(
            [
                User(id=1, email="ana@optimeal.test", name="Ana", role=RoleEnum.customer),
                User(id=2, email="bruno@optimeal.test", name="Bruno", role=RoleEnum.customer),
                User(id=3, email="kitchen@optimeal.test", name="Kitchen", role=RoleEnum.kitchen),
                rice,
                salad,
                fries,
                Product(id=1, name="Milanesa", price=250000, stock=10, sides=[rice, salad, fries]),
                Product(id=2, name="Tarta", price=180000, stock=1, sides=[salad]),
                Product(
                    id=3,
                    name="Empanada",
                    price=90000,
                    stock=5,
                    deleted_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
                ),
            ]
        )
        await session.commit()

    return SimpleNamespace(
        customer=1,
        other_customer=2,
        kitchen=3,
        rice=1,
        salad=2,
        fries=3,
        milanesa=1,
        tarta=2,
        empanada=3,
    )


@pytest.fixture
async def db(sessionmaker, catalog):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def stock_of(db):
    async def _stock_of(product_id: int) -> int:
        result = await db.execute(select(Product.stock).where(Product.id == product_id))
        return result.scalar_one()

    return _stock_of
