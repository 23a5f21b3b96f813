import sqlalchemy as sa
from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class CashRegisterClose(Base):
    __tablename__ = "cash_register_closes"
    __table_args__ = (UniqueConstraint("tenant_id", "date", name="uq_cash_register_closes_tenant_date"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    date = Column(Date, nullable=False)
    summary = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=dict)
    closed_by = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    closed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
