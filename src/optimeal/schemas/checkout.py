from typing import List

from pydantic import BaseModel

from optimeal.models.checkout import CheckoutStatusEnum
from optimeal.schemas.order import OrderItemCreate


class CheckoutCreate(BaseModel):
    items: List[OrderItemCreate]
    shift: str


class CheckoutCreated(BaseModel):
    checkout_id: int
    redirect_url: str
    preference_id: str


class CheckoutStatusRead(BaseModel):
    checkout_id: int
    status: CheckoutStatusEnum
