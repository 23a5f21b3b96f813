from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Extra(Base):
    __tablename__ = "extras"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False, default=0)
    # Ingrediente que se descuenta al vender el extra (opcional)
    linked_ingredient_id = Column(Integer, ForeignKey("ingredients.id"), nullable=True)
    stock_consumption = Column(Float, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    linked_ingredient = relationship("Ingredient")
