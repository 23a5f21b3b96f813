from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.order import Order
from app.schemas.order import OrderCancel, OrderCreate, OrderUpdate
from app.services import order_status as st
from app.services import orders as order_service
from app.services.order_events import format_order_number

router = APIRouter(prefix="/api/tenants/{tenant_id}/orders", tags=["orders"])


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _order_to_dict(o: Order) -> Dict[str, Any]:
    return {
        "id": o.id,
        "order_number": format_order_number(o.id),
        "tenant_id": o.tenant_id,
        "customer_name": o.customer_name,
        "customer_phone": o.customer_phone,
        "channel_chat_id": o.channel_chat_id,
        "items": o.items or [],
        "status": o.status,
        "order_type": o.order_type,
        "delivery_address": o.delivery_address,
        "delivery_zone_id": o.delivery_zone_id,
        "delivery_zone_name": o.delivery_zone_name,
        "delivery_notes": o.delivery_notes,
        "delivery_person_id": o.delivery_person_id,
        "delivery_person_cost": o.delivery_person_cost,
        "delivery_cost": o.delivery_cost,
        "payment_method": o.payment_method,
        "payment_status": o.payment_status,
        "subtotal": o.subtotal,
        "total": o.total,
        "notes": o.notes,
        "cancel_reason": o.cancel_reason,
        "created_at": _iso(o.created_at),
        "updated_at": _iso(o.updated_at),
        "confirmed_at": _iso(o.confirmed_at),
        "cancelled_at": _iso(o.cancelled_at),
    }


@router.get("")
def list_orders(
    tenant_id: int,
    status: Optional[str] = None,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
):
    if status:
        orders = order_service.list_orders_by_status(db, tenant_id, status)
        if day:
            same_day = {o.id for o in order_service.list_orders_by_date(db, tenant_id, day)}
            orders = [o for o in orders if o.id in same_day]
    elif day:
        orders = order_service.list_orders_by_date(db, tenant_id, day)
    else:
        orders = order_service.list_orders(db, tenant_id)
    return [_order_to_dict(o) for o in orders]


@router.get("/pending")
def list_pending_orders(tenant_id: int, db: Session = Depends(get_db)):
    return [_order_to_dict(o) for o in order_service.list_pending_orders(db, tenant_id)]


@router.get("/stats")
def order_stats(tenant_id: int, start: date, end: date, db: Session = Depends(get_db)):
    return order_service.get_order_stats(db, tenant_id, start, end)


@router.get("/{order_id}")
def get_order(tenant_id: int, order_id: int, db: Session = Depends(get_db)):
    return _order_to_dict(order_service.get_order(db, tenant_id, order_id))


@router.post("", status_code=201)
def create_order(tenant_id: int, payload: OrderCreate, db: Session = Depends(get_db)):
    data = payload.model_dump(exclude={"awaiting_payment"})
    initial_status = st.PENDING_PAYMENT if payload.awaiting_payment else st.PENDING
    order = order_service.create_order(db, tenant_id, data, initial_status=initial_status)
    return _order_to_dict(order)


@router.patch("/{order_id}")
def update_order(tenant_id: int, order_id: int, payload: OrderUpdate, db: Session = Depends(get_db)):
    patch = payload.model_dump(exclude_unset=True)
    return _order_to_dict(order_service.update_order(db, tenant_id, order_id, patch))


@router.post("/{order_id}/confirm")
def confirm_order(tenant_id: int, order_id: int, db: Session = Depends(get_db)):
    return _order_to_dict(order_service.confirm_order(db, tenant_id, order_id))


@router.post("/{order_id}/cancel")
def cancel_order(
    tenant_id: int,
    order_id: int,
    payload: Optional[OrderCancel] = None,
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload else None
    return _order_to_dict(order_service.cancel_order(db, tenant_id, order_id, reason=reason))


@router.post("/{order_id}/payment/approve")
def approve_payment(tenant_id: int, order_id: int, db: Session = Depends(get_db)):
    return _order_to_dict(order_service.approve_payment(db, tenant_id, order_id))


@router.post("/{order_id}/payment/reject")
def reject_payment(tenant_id: int, order_id: int, db: Session = Depends(get_db)):
    return _order_to_dict(order_service.reject_payment(db, tenant_id, order_id))
