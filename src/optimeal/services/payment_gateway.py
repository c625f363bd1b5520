"""Client for the external payment gateway (MercadoPago Checkout Pro)."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from optimeal.exceptions import GatewayError

logger = logging.getLogger(__name__)

APPROVED = "approved"
FAILED_STATUSES = ("rejected", "cancelled", "expired")


@dataclass(frozen=True)
class IntentLine:
    product_id: int
    title: str
    quantity: int
    unit_price: int  # minor units


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    redirect_url: str


@dataclass(frozen=True)
class PaymentRecord:
    payment_id: str
    status: str
    external_reference: Optional[str]


class PaymentGateway(ABC):
    """Abstract payment gateway used by checkout orchestration."""

    @abstractmethod
    async def create_intent(
        self,
        amount: int,
        external_reference: str,
        line_items: List[IntentLine],
        redirect_urls: Dict[str, Optional[str]],
    ) -> PaymentIntent:
        """Create a payable intent for the given external reference.

        Raises:
            GatewayError: If the provider call fails or times out
        """

    @abstractmethod
    async def get_payment(self, payment_id: str) -> PaymentRecord:
        """Fetch the authoritative payment record.

        Raises:
            GatewayError: If the provider call fails or times out
        """

    async def aclose(self) -> None:
        """Release network resources held by the gateway."""


class MercadoPagoGateway(PaymentGateway):
    """MercadoPago REST client.

    Prices are kept in minor units internally; MercadoPago expects major
    units, so amounts are divided by 100 on the way out.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        notification_url: Optional[str] = None,
        auto_return: bool = True,
        statement_title: str = "OptiMeal",
        logo_url: Optional[str] = None,
        currency_id: str = "ARS",
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.notification_url = notification_url
        self.auto_return = auto_return
        self.statement_title = statement_title
        self.logo_url = logo_url
        self.currency_id = currency_id
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
        )
        self._client.headers["Authorization"] = f"Bearer {access_token}"

    @classmethod
    def from_settings(cls, settings) -> "MercadoPagoGateway":
        if not settings.MP_ACCESS_TOKEN:
            raise ValueError("MP_ACCESS_TOKEN must be set in environment")
        return cls(
            access_token=settings.MP_ACCESS_TOKEN,
            base_url=settings.MP_API_BASE_URL,
            notification_url=settings.MP_WEBHOOK_URL,
            auto_return=settings.MP_AUTO_RETURN,
            statement_title=settings.MP_STATEMENT_TITLE,
            logo_url=settings.MP_LOGO_URL,
            currency_id=settings.MP_CURRENCY_ID,
            timeout_seconds=settings.MP_TIMEOUT_SECONDS,
        )

    def _preference_body(
        self,
        external_reference: str,
        line_items: List[IntentLine],
        redirect_urls: Dict[str, Optional[str]],
    ) -> dict:
        body = {
            "external_reference": external_reference,
            "statement_descriptor": self.statement_title,
            "items": [
                {
                    "id": str(line.product_id),
                    "title": line.title,
                    "quantity": line.quantity,
                    "currency_id": self.currency_id,
                    "unit_price": line.unit_price / 100,
                    **({"picture_url": self.logo_url} if self.logo_url else {}),
                }
                for line in line_items
            ],
            "back_urls": {k: v for k, v in redirect_urls.items() if v},
        }
        if self.auto_return and redirect_urls.get("success"):
            body["auto_return"] = "approved"
        if self.notification_url:
            body["notification_url"] = self.notification_url
        return body

    async def create_intent(
        self,
        amount: int,
        external_reference: str,
        line_items: List[IntentLine],
        redirect_urls: Dict[str, Optional[str]],
    ) -> PaymentIntent:
        body = self._preference_body(external_reference, line_items, redirect_urls)

        try:
            response = await self._client.post("/checkout/preferences", json=body)
            response.raise_for_status()
            data = response.json()
            intent = PaymentIntent(intent_id=str(data["id"]), redirect_url=data["init_point"])
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Failed to create MercadoPago preference for {external_reference}: {e}")
            raise GatewayError(
                "Payment provider failed to create the payment intent",
                details={"external_reference": external_reference},
            ) from e

        logger.info(
            f"Created MercadoPago preference {intent.intent_id} for {external_reference} (amount {amount})"
        )
        return intent

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        try:
            response = await self._client.get(f"/v1/payments/{payment_id}")
            response.raise_for_status()
            data = response.json()
            return PaymentRecord(
                payment_id=str(data.get("id", payment_id)),
                status=str(data["status"]),
                external_reference=data.get("external_reference"),
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Failed to fetch MercadoPago payment {payment_id}: {e}")
            raise GatewayError(
                "Payment provider failed to return the payment",
                details={"payment_id": str(payment_id)},
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()
