import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    # Cliente
    customer_name = Column(String(120), nullable=False)
    customer_phone = Column(String(30), index=True, nullable=False)
    channel_chat_id = Column(String(64), nullable=True)

    # Copia de los ítems al momento del pedido (nombre y precio congelados)
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    status = Column(String(20), index=True, nullable=False, default="pendiente")
    order_type = Column(String(20), nullable=False, default="pickup")  # delivery / pickup

    # Envío
    delivery_address = Column(Text, nullable=True)
    delivery_zone_id = Column(Integer, nullable=True)
    delivery_zone_name = Column(String, nullable=True)
    delivery_notes = Column(Text, nullable=True)
    delivery_person_id = Column(String(64), nullable=True)
    delivery_person_cost = Column(Float, nullable=True)
    delivery_cost = Column(Float, nullable=False, default=0)

    # Pago
    payment_method = Column(String(20), nullable=False)  # efectivo / transferencia
    payment_status = Column(String(20), nullable=True)

    subtotal = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
