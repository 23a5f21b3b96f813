from __future__ import annotations

from app.models.order import Order
from app.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED, event_bus


def format_order_number(order_id: int | None) -> str:
    return f"{int(order_id or 0):06d}"


def build_order_payload(order: Order, previous_status: str | None = None) -> dict:
    return {
        "order_id": order.id,
        "order_number": format_order_number(order.id),
        "tenant_id": order.tenant_id,
        "status": order.status,
        "previous_status": previous_status,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "channel_chat_id": order.channel_chat_id,
        "order_type": order.order_type,
        "payment_method": order.payment_method,
        "delivery_address": order.delivery_address,
        "delivery_zone_name": order.delivery_zone_name,
        "items": list(order.items or []),
        "subtotal": float(order.subtotal or 0),
        "delivery_cost": float(order.delivery_cost or 0),
        "total": float(order.total or 0),
    }


def emit_order_created(order: Order) -> None:
    event_bus.emit(ORDER_CREATED, build_order_payload(order))


def emit_order_status_changed(order: Order, previous_status: str | None) -> None:
    if previous_status == order.status:
        return
    event_bus.emit(ORDER_STATUS_CHANGED, build_order_payload(order, previous_status=previous_status))
