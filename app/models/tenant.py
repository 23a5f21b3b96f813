from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from app.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, default="Hamburguesería")
    is_active = Column(Boolean, nullable=False, default=True)

    # Capacidades que parametrizan la conversación
    has_delivery = Column(Boolean, nullable=False, default=False)
    has_pickup = Column(Boolean, nullable=False, default=True)

    # Número que recibe el aviso de pedido nuevo
    notification_phone = Column(String(30), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
