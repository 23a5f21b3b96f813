from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    ingredients = relationship(
        "ProductIngredient",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductIngredient.id",
    )


class ProductIngredient(Base):
    """Línea de receta: cuánto de un ingrediente consume una unidad del producto."""

    __tablename__ = "product_ingredients"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id"), index=True, nullable=False)
    quantity = Column(Float, nullable=False, default=0)
    is_removable = Column(Boolean, nullable=False, default=False)
    is_extra = Column(Boolean, nullable=False, default=False)
    extra_price = Column(Float, nullable=False, default=0)

    product = relationship("Product", back_populates="ingredients")
    ingredient = relationship("Ingredient")
