import enum
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship
from ..db.base import Base


class CheckoutStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class Checkout(Base):
    """Заказ, ожидающий оплаты: держит резерв стока до ответа платёжки."""

    __tablename__ = "checkouts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        SAEnum(CheckoutStatusEnum, name="checkout_status"),
        nullable=False,
        default=CheckoutStatusEnum.PENDING,
    )
    total_price = Column(Integer, nullable=False)
    pickup_time = Column(DateTime(timezone=True), nullable=False)
    external_reference = Column(String(64), nullable=False, unique=True, index=True)
    preference_id = Column(String(128), nullable=True)
    redirect_url = Column(String(1024), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "CheckoutItem",
        back_populates="checkout",
        cascade="all, delete-orphan",
        order_by="CheckoutItem.id",
    )


class CheckoutItem(Base):
    __tablename__ = "checkout_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_checkout_items_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    checkout_id = Column(Integer, ForeignKey("checkouts.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    side_id = Column(Integer, ForeignKey("sides.id"), nullable=True)
    notes = Column(String(500), nullable=True)

    checkout = relationship("Checkout", back_populates="items")
    product = relationship("Product")
