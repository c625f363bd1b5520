from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    func,
)
from sqlalchemy.orm import relationship
from ..db.base import Base


# какие гарниры допустимы к блюду
product_sides = Table(
    "product_sides",
    Base.metadata,
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("side_id", Integer, ForeignKey("sides.id", ondelete="CASCADE"), primary_key=True),
)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    price = Column(Integer, nullable=False)  # в минимальных единицах валюты
    stock = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    sides = relationship("Side", secondary=product_sides, lazy="selectin")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def side_ids(self) -> set:
        return {side.id for side in self.sides}
