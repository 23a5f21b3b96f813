from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session

from app.core.errors import DomainError, NotFoundError, ValidationError
from app.models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from app.models.order import Order
from app.services import order_status as st
from app.services.order_events import emit_order_created, emit_order_status_changed, format_order_number
from app.services.pricing import CUSTOMIZATION_ADD, CUSTOMIZATION_REMOVE, calculate_totals, item_total
from app.services.stock_ledger import accumulate_requirements, apply_movements, net_debits_for_order

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "customer_name",
    "customer_phone",
    "delivery_address",
    "delivery_notes",
    "delivery_person_id",
    "delivery_person_cost",
    "delivery_cost",
    "payment_status",
    "notes",
}
REQUIRED_FIELDS = {"customer_name", "customer_phone"}

PAYMENT_APPROVED = "aprobado"
PAYMENT_REJECTED = "rechazado"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _clean(value: Any) -> str:
    return str(value or "").strip()


def _normalize_customizations(raw: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    seen: set[tuple[int, str]] = set()
    normalized: list[dict[str, Any]] = []
    for entry in raw or []:
        kind = _clean(entry.get("type")).lower()
        if kind not in {CUSTOMIZATION_ADD, CUSTOMIZATION_REMOVE}:
            raise ValidationError("Tipo de personalización inválido.")
        ingredient_id = int(entry["ingredient_id"])
        key = (ingredient_id, kind)
        if key in seen:
            continue
        seen.add(key)
        normalized.append(
            {
                "ingredient_id": ingredient_id,
                "ingredient_name": _clean(entry.get("ingredient_name")),
                "type": kind,
                "extra_price": float(entry.get("extra_price") or 0) if kind == CUSTOMIZATION_ADD else 0.0,
            }
        )
    return normalized


def _normalize_extras(raw: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    by_id: dict[int, dict[str, Any]] = {}
    for entry in raw or []:
        extra_id = int(entry["extra_id"])
        quantity = int(entry.get("quantity") or 1)
        if quantity <= 0:
            raise ValidationError("La cantidad de un extra debe ser mayor que cero.")
        if extra_id in by_id:
            by_id[extra_id]["quantity"] += quantity
            continue
        by_id[extra_id] = {
            "extra_id": extra_id,
            "name": _clean(entry.get("name")),
            "unit_price": float(entry.get("unit_price") or 0),
            "quantity": quantity,
        }
    return list(by_id.values())


def normalize_items(raw_items: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for raw in raw_items or []:
        quantity = int(raw.get("quantity") or 0)
        if quantity <= 0:
            raise ValidationError("La cantidad de cada producto debe ser mayor que cero.")
        unit_price = float(raw.get("unit_price") or 0)
        if unit_price < 0:
            raise ValidationError("El precio de un producto no puede ser negativo.")
        item = {
            "product_id": int(raw["product_id"]),
            "product_name": _clean(raw.get("product_name")),
            "unit_price": unit_price,
            "quantity": quantity,
            "customizations": _normalize_customizations(raw.get("customizations") or []),
            "extras": _normalize_extras(raw.get("extras") or []),
            "notes": _clean(raw.get("notes")) or None,
        }
        item["item_total"] = item_total(item)
        items.append(item)
    return items


def _validate_create(data: Mapping[str, Any]) -> None:
    if not _clean(data.get("customer_name")):
        raise ValidationError("El nombre del cliente es obligatorio.")
    if not _clean(data.get("customer_phone")):
        raise ValidationError("El teléfono del cliente es obligatorio.")
    if not data.get("items"):
        raise ValidationError("El pedido debe tener al menos un producto.")
    if data.get("order_type") not in st.ORDER_TYPES:
        raise ValidationError("El tipo de pedido es inválido.")
    if data.get("payment_method") not in st.PAYMENT_METHODS:
        raise ValidationError("El método de pago es inválido.")
    if data.get("order_type") == st.ORDER_TYPE_DELIVERY and not _clean(data.get("delivery_address")):
        raise ValidationError("La dirección de entrega es obligatoria para pedidos a domicilio.")
    if float(data.get("delivery_cost") or 0) < 0:
        raise ValidationError("El costo de envío no puede ser negativo.")


def _apply_totals(order: Order) -> None:
    subtotal, total = calculate_totals(order.items or [], order.delivery_cost or 0)
    order.subtotal = subtotal
    order.total = total


def create_order(
    db: Session,
    tenant_id: int,
    data: Mapping[str, Any],
    initial_status: str = st.PENDING,
) -> Order:
    if initial_status not in {st.PENDING, st.PENDING_PAYMENT}:
        raise ValidationError("Estado inicial inválido.")
    _validate_create(data)
    items = normalize_items(data["items"])

    order_type = data["order_type"]
    delivery_cost = float(data.get("delivery_cost") or 0) if order_type == st.ORDER_TYPE_DELIVERY else 0.0
    order = Order(
        tenant_id=tenant_id,
        customer_name=_clean(data["customer_name"]),
        customer_phone=_clean(data["customer_phone"]),
        channel_chat_id=data.get("channel_chat_id"),
        items=items,
        status=initial_status,
        order_type=order_type,
        delivery_address=_clean(data.get("delivery_address")) or None,
        delivery_zone_id=data.get("delivery_zone_id"),
        delivery_zone_name=data.get("delivery_zone_name"),
        delivery_notes=_clean(data.get("delivery_notes")) or None,
        delivery_cost=delivery_cost,
        payment_method=data["payment_method"],
        payment_status=data.get("payment_status"),
        notes=_clean(data.get("notes")) or None,
    )
    _apply_totals(order)

    try:
        db.add(order)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("order create failed", extra={"tenant_id": tenant_id, "operation": "create_order"})
        raise
    db.refresh(order)

    logger.info(
        "order created number=%s total=%s",
        format_order_number(order.id),
        order.total,
        extra={"tenant_id": tenant_id, "order_id": order.id},
    )
    emit_order_created(order)
    return order


def get_order(db: Session, tenant_id: int, order_id: int, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id, Order.tenant_id == tenant_id)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise NotFoundError("Pedido no encontrado.")
    return order


def _debit_stock(db: Session, order: Order) -> None:
    requirements = accumulate_requirements(db, order.tenant_id, list(order.items or []))
    apply_movements(
        db,
        order.tenant_id,
        requirements,
        MOVEMENT_OUT,
        f"Pedido #{format_order_number(order.id)}",
        order_id=order.id,
    )
    order.status = st.CONFIRMED
    order.confirmed_at = _utcnow()


def _credit_stock(db: Session, order: Order, reason: str | None) -> None:
    if order.status == st.CONFIRMED:
        apply_movements(
            db,
            order.tenant_id,
            net_debits_for_order(db, order.tenant_id, order.id),
            MOVEMENT_IN,
            f"Cancelación pedido #{format_order_number(order.id)}",
            order_id=order.id,
        )
    order.status = st.CANCELLED
    order.cancelled_at = _utcnow()
    if reason:
        order.cancel_reason = reason


def _commit_status_change(db: Session, order: Order, previous_status: str, operation: str) -> Order:
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "order %s failed",
            operation,
            extra={"tenant_id": order.tenant_id, "order_id": order.id, "operation": operation},
        )
        raise
    db.refresh(order)
    logger.info(
        "order status %s -> %s",
        previous_status,
        order.status,
        extra={"tenant_id": order.tenant_id, "order_id": order.id, "operation": operation},
    )
    emit_order_status_changed(order, previous_status)
    return order


def update_order(db: Session, tenant_id: int, order_id: int, patch: Mapping[str, Any]) -> Order:
    """Actualiza campos sueltos; el estado pasa por la tabla de transiciones.

    confirmado y cancelado se enrutan por el mismo camino que confirm_order y
    cancel_order para que el stock y el estado se escriban juntos.
    """
    unknown = set(patch) - UPDATABLE_FIELDS - {"status"}
    if unknown:
        raise ValidationError(f"Campos no editables: {', '.join(sorted(unknown))}.")
    for field_name in REQUIRED_FIELDS & set(patch):
        if not _clean(patch[field_name]):
            raise ValidationError(f"El campo {field_name} no puede quedar vacío.")
    patch = {
        key: _clean(value) if key in REQUIRED_FIELDS else value for key, value in patch.items()
    }

    try:
        order = get_order(db, tenant_id, order_id, for_update=True)
        previous_status = order.status

        for field_name in UPDATABLE_FIELDS & set(patch):
            setattr(order, field_name, patch[field_name])

        if "delivery_cost" in patch:
            if float(patch["delivery_cost"] or 0) < 0:
                raise ValidationError("El costo de envío no puede ser negativo.")
            order.delivery_cost = float(patch["delivery_cost"] or 0)
            _apply_totals(order)

        requested = patch.get("status")
        if requested is not None and requested != previous_status:
            st.assert_transition(previous_status, requested)
            if requested == st.CONFIRMED:
                _debit_stock(db, order)
            elif requested == st.CANCELLED:
                _credit_stock(db, order, None)
            else:
                order.status = requested
    except Exception:
        db.rollback()
        raise

    return _commit_status_change(db, order, previous_status, "update_order")


def confirm_order(db: Session, tenant_id: int, order_id: int) -> Order:
    try:
        order = get_order(db, tenant_id, order_id, for_update=True)
        if order.status != st.PENDING:
            raise DomainError("Solo se pueden confirmar pedidos pendientes.")
        previous_status = order.status
        _debit_stock(db, order)
    except Exception:
        db.rollback()
        raise
    return _commit_status_change(db, order, previous_status, "confirm_order")


def cancel_order(db: Session, tenant_id: int, order_id: int, reason: str | None = None) -> Order:
    try:
        order = get_order(db, tenant_id, order_id, for_update=True)
        if order.status not in st.CANCELLABLE_STATUSES:
            raise DomainError("Solo se pueden cancelar pedidos pendientes o confirmados.")
        previous_status = order.status
        _credit_stock(db, order, reason)
    except Exception:
        db.rollback()
        raise
    return _commit_status_change(db, order, previous_status, "cancel_order")


def approve_payment(db: Session, tenant_id: int, order_id: int) -> Order:
    try:
        order = get_order(db, tenant_id, order_id, for_update=True)
        previous_status = order.status
        st.assert_transition(previous_status, st.PENDING)
        order.status = st.PENDING
        order.payment_status = PAYMENT_APPROVED
    except Exception:
        db.rollback()
        raise
    return _commit_status_change(db, order, previous_status, "approve_payment")


def reject_payment(db: Session, tenant_id: int, order_id: int) -> Order:
    try:
        order = get_order(db, tenant_id, order_id, for_update=True)
        previous_status = order.status
        if previous_status != st.PENDING_PAYMENT:
            raise DomainError("Solo se puede rechazar el pago de pedidos pendientes de pago.")
        order.status = st.CANCELLED
        order.payment_status = PAYMENT_REJECTED
        order.cancelled_at = _utcnow()
    except Exception:
        db.rollback()
        raise
    return _commit_status_change(db, order, previous_status, "reject_payment")


def list_orders(db: Session, tenant_id: int) -> list[Order]:
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders_by_status(db: Session, tenant_id: int, status: str) -> list[Order]:
    if status not in st.ALL_STATUSES:
        raise ValidationError("Estado inválido.")
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.status == status)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders_by_date(db: Session, tenant_id: int, day: date) -> list[Order]:
    start, end = _day_bounds(day)
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.created_at >= start, Order.created_at < end)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_pending_orders(db: Session, tenant_id: int) -> list[Order]:
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.status.in_(st.OPEN_STATUSES))
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )


def list_pending_orders_by_date(db: Session, tenant_id: int, day: date) -> list[Order]:
    start, end = _day_bounds(day)
    return (
        db.query(Order)
        .filter(
            Order.tenant_id == tenant_id,
            Order.status.in_(st.OPEN_STATUSES),
            Order.created_at >= start,
            Order.created_at < end,
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )


def get_order_stats(db: Session, tenant_id: int, start: date, end: date) -> dict[str, Any]:
    range_start, _ = _day_bounds(start)
    _, range_end = _day_bounds(end)
    orders = (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.created_at >= range_start, Order.created_at < range_end)
        .all()
    )
    delivered = [order for order in orders if order.status == st.DELIVERED]
    return {
        "total_orders": len(delivered),
        "total_sales": sum(float(order.total or 0) for order in delivered),
        "total_cash": sum(float(order.total or 0) for order in delivered if order.payment_method == st.PAYMENT_CASH),
        "total_transfer": sum(
            float(order.total or 0) for order in delivered if order.payment_method == st.PAYMENT_TRANSFER
        ),
        "total_delivery_cost": sum(float(order.delivery_cost or 0) for order in delivered),
        "cancelled_orders": sum(1 for order in orders if order.status == st.CANCELLED),
    }
