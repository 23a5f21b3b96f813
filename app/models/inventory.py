from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from app.core.database import Base

MOVEMENT_IN = "entrada"
MOVEMENT_OUT = "salida"
MOVEMENT_ADJUST = "ajuste"
MOVEMENT_TYPES = {MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST}


class Ingredient(Base):
    __tablename__ = "ingredients"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_ingredients_stock_non_negative"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    unit = Column(String, nullable=False, default="unidades")
    stock = Column(Float, nullable=False, default=0)
    min_stock = Column(Float, nullable=False, default=0)
    cost_per_unit = Column(Float, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id"), index=True, nullable=False)
    type = Column(String(20), nullable=False)
    quantity = Column(Float, nullable=False)
    previous_stock = Column(Float, nullable=False)
    new_stock = Column(Float, nullable=False)
    reason = Column(String, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ingredient = relationship("Ingredient")
