from datetime import timedelta, timezone
from typing import List, Optional

from pydantic_settings import BaseSettings

DEFAULT_SHIFTS = (
    "11:00-11:30,11:30-12:00,12:00-12:30,12:30-13:00,"
    "13:00-13:30,13:30-14:00,14:00-14:30,14:30-15:00"
)


class Settings(BaseSettings):
    DATABASE_URL: str
    DATABASE_ECHO: bool = False
    LOG_LEVEL: str = "INFO"

    # Смены выдачи: "HH:MM-HH:MM" через запятую, в часовом поясе кухни
    DELIVERY_SHIFTS: str = DEFAULT_SHIFTS
    SHIFT_UTC_OFFSET_MINUTES: int = -180  # Аргентина, UTC-3

    # MercadoPago
    MP_ACCESS_TOKEN: Optional[str] = None
    MP_API_BASE_URL: str = "https://api.mercadopago.com"
    MP_WEBHOOK_URL: Optional[str] = None
    MP_BACK_URL_SUCCESS: Optional[str] = None
    MP_BACK_URL_FAILURE: Optional[str] = None
    MP_BACK_URL_PENDING: Optional[str] = None
    MP_AUTO_RETURN: bool = True
    MP_STATEMENT_TITLE: str = "OptiMeal"
    MP_LOGO_URL: Optional[str] = None
    MP_CURRENCY_ID: str = "ARS"
    MP_TIMEOUT_SECONDS: float = 10.0

    # Supabase Realtime (панель кухни)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_KEY: Optional[str] = None
    REALTIME_CHANNEL: str = "orders-realtime"

    class Config:
        env_file = ".env"

    @property
    def shift_specs(self) -> List[str]:
        return [s.strip() for s in self.DELIVERY_SHIFTS.split(",") if s.strip()]

    @property
    def shift_timezone(self) -> timezone:
        return timezone(timedelta(minutes=self.SHIFT_UTC_OFFSET_MINUTES))

    @property
    def redirect_urls(self) -> dict:
        return {
            "success": self.MP_BACK_URL_SUCCESS,
            "failure": self.MP_BACK_URL_FAILURE,
            "pending": self.MP_BACK_URL_PENDING,
        }
