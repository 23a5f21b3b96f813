from __future__ import annotations

import logging
from datetime import date
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import DomainError, NotFoundError
from app.models.cash_register import CashRegisterClose
from app.services.order_events import format_order_number
from app.services.orders import get_order_stats, list_pending_orders_by_date

logger = logging.getLogger(__name__)

SYSTEM_CLOSER = "Sistema (auto-cierre)"
_PENDING_PREVIEW = 5


def get_close(db: Session, tenant_id: int, day: date) -> CashRegisterClose | None:
    return (
        db.query(CashRegisterClose)
        .filter(CashRegisterClose.tenant_id == tenant_id, CashRegisterClose.date == day)
        .first()
    )


def is_closed(db: Session, tenant_id: int, day: date) -> bool:
    return get_close(db, tenant_id, day) is not None


def list_closes(db: Session, tenant_id: int) -> list[CashRegisterClose]:
    return (
        db.query(CashRegisterClose)
        .filter(CashRegisterClose.tenant_id == tenant_id)
        .order_by(CashRegisterClose.date.desc())
        .all()
    )


def get_close_by_id(db: Session, tenant_id: int, close_id: int) -> CashRegisterClose:
    close = (
        db.query(CashRegisterClose)
        .filter(CashRegisterClose.tenant_id == tenant_id, CashRegisterClose.id == close_id)
        .first()
    )
    if not close:
        raise NotFoundError("El cierre de caja solicitado no existe.")
    return close


def daily_summary(db: Session, tenant_id: int, day: date) -> dict[str, Any]:
    """Totales del día sobre pedidos entregados; subtotal es ventas sin envío."""
    stats = get_order_stats(db, tenant_id, day, day)
    return {
        "cash_total": stats["total_cash"],
        "transfer_total": stats["total_transfer"],
        "delivery_cost_total": stats["total_delivery_cost"],
        "subtotal": stats["total_sales"] - stats["total_delivery_cost"],
        "grand_total": stats["total_sales"],
        "order_count": stats["total_orders"],
        "cancelled_count": stats["cancelled_orders"],
    }


def close_register(
    db: Session,
    tenant_id: int,
    day: date,
    closed_by: str,
    notes: str | None = None,
) -> CashRegisterClose:
    if is_closed(db, tenant_id, day):
        raise DomainError(f"Ya existe un cierre de caja para el {day.isoformat()}.")

    pending = list_pending_orders_by_date(db, tenant_id, day)
    if pending:
        numbers = ", ".join(f"#{format_order_number(order.id)}" for order in pending[:_PENDING_PREVIEW])
        more = f" y {len(pending) - _PENDING_PREVIEW} más" if len(pending) > _PENDING_PREVIEW else ""
        raise DomainError(
            f"No se puede cerrar la caja. Hay {len(pending)} pedido(s) sin entregar o cancelar: {numbers}{more}."
        )

    close = CashRegisterClose(
        tenant_id=tenant_id,
        date=day,
        summary=daily_summary(db, tenant_id, day),
        closed_by=closed_by,
        notes=notes,
    )
    try:
        db.add(close)
        db.commit()
    except IntegrityError:
        db.rollback()
        # otro proceso cerró la misma fecha entre la verificación y el insert
        raise DomainError(f"Ya existe un cierre de caja para el {day.isoformat()}.")
    except Exception:
        db.rollback()
        raise
    db.refresh(close)
    logger.info(
        "cash register closed date=%s by=%s",
        day.isoformat(),
        closed_by,
        extra={"tenant_id": tenant_id, "operation": "close_register"},
    )
    return close
