from sqlalchemy import Column, Integer, String, Boolean
from ..db.base import Base


class Side(Base):
    __tablename__ = "sides"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(128), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
