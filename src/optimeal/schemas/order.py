from pydantic import BaseModel, conint, constr
from typing import List, Optional
from datetime import datetime

from optimeal.core.shifts import as_utc
from optimeal.models.order import OrderStatusEnum


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str | None = None
    quantity: int
    unit_price: int
    side_id: int | None = None
    side_name: str | None = None
    notes: str | None = None

    @classmethod
    def from_orm_with_name(cls, item):
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name if item.product else None,
            quantity=item.quantity,
            unit_price=item.unit_price,
            side_id=item.side_id,
            side_name=item.side.name if item.side else None,
            notes=item.notes,
        )

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    user_id: int
    status: OrderStatusEnum
    total_price: int
    pickup_time: datetime
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead] = []
    count_items: int

    @classmethod
    def from_orm_with_name(cls, order):
        return cls(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            total_price=order.total_price,
            pickup_time=as_utc(order.pickup_time),
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemRead.from_orm_with_name(i) for i in order.items],
            count_items=sum(i.quantity for i in order.items),
        )

    class Config:
        from_attributes = True


class OrderItemCreate(BaseModel):
    product_id: conint(gt=0)
    quantity: conint(gt=0)
    side_id: Optional[conint(gt=0)] = None
    notes: Optional[constr(min_length=1, max_length=500)] = None


class OrderCreate(BaseModel):
    items: List[OrderItemCreate]
    pickup_time: datetime


class OrderStatusUpdate(BaseModel):
    status: OrderStatusEnum

    class Config:
        extra = "forbid"
