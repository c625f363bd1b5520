import enum
from sqlalchemy import Column, Integer, String, DateTime, func, Enum
from sqlalchemy.orm import relationship
from ..db.base import Base


class RoleEnum(str, enum.Enum):
    admin = "admin"
    kitchen = "kitchen"
    customer = "customer"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(128), nullable=True)
    role = Column(Enum(RoleEnum, name="user_role"), nullable=False, default=RoleEnum.customer)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # связь с заказами
    orders = relationship("Order", back_populates="user")
