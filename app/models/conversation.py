import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("tenant_id", "customer_id", name="uq_conversations_tenant_customer"),)

    id = Column(Integer, primary_key=True)

    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(String(64), index=True, nullable=False)

    step = Column(String(40), nullable=False, default="idle")

    # carrito y campos temporales del flujo
    data = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=dict)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
