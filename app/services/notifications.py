from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.services import order_status as st
from app.services.pricing import format_price
from app.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)


def _status_pendiente(order: Mapping[str, Any]) -> str:
    return (
        f"📋 *Pedido #{order['order_number']} recibido*\n\n"
        f"Hola {order['customer_name']}! Tu pedido está siendo revisado.\n"
        "Te avisaremos cuando sea confirmado. 🍔"
    )


def _status_confirmado(order: Mapping[str, Any]) -> str:
    return (
        f"✅ *Pedido #{order['order_number']} confirmado*\n\n"
        f"¡Buenas noticias, {order['customer_name']}!\n"
        "Tu pedido ha sido confirmado y pronto comenzaremos a prepararlo. 👨‍🍳"
    )


def _status_en_preparacion(order: Mapping[str, Any]) -> str:
    return (
        f"👨‍🍳 *Pedido #{order['order_number']} en preparación*\n\n"
        f"{order['customer_name']}, ya estamos cocinando tu pedido.\n"
        "¡Pronto estará listo! 🔥"
    )


def _status_listo(order: Mapping[str, Any]) -> str:
    if order.get("order_type") == st.ORDER_TYPE_DELIVERY:
        return (
            f"🎉 *Pedido #{order['order_number']} listo*\n\n"
            f"{order['customer_name']}, tu pedido está listo y esperando al repartidor.\n"
            "¡En breve saldrá para tu domicilio! 🏍️"
        )
    return (
        f"🎉 *Pedido #{order['order_number']} listo*\n\n"
        f"{order['customer_name']}, tu pedido está listo para retirar.\n"
        "¡Te esperamos! 📍"
    )


def _status_en_camino(order: Mapping[str, Any]) -> str:
    return (
        f"🏍️ *Pedido #{order['order_number']} en camino*\n\n"
        f"{order['customer_name']}, tu pedido ya salió.\n"
        f"Dirección: {order.get('delivery_address') or 'No especificada'}\n\n"
        "¡Estará llegando pronto! 📦"
    )


def _status_entregado(order: Mapping[str, Any]) -> str:
    return (
        f"🎊 *Pedido #{order['order_number']} entregado*\n\n"
        f"¡Gracias por tu compra, {order['customer_name']}!\n"
        "Esperamos que disfrutes tu comida. 🍔\n\n"
        "¡Hasta la próxima! 👋"
    )


def _status_cancelado(order: Mapping[str, Any]) -> str:
    return (
        f"❌ *Pedido #{order['order_number']} cancelado*\n\n"
        f"{order['customer_name']}, lamentamos informarte que tu pedido fue cancelado.\n\n"
        "Si tienes alguna consulta, no dudes en escribirnos. 📞"
    )


STATUS_MESSAGES: dict[str, Callable[[Mapping[str, Any]], str]] = {
    st.PENDING: _status_pendiente,
    st.CONFIRMED: _status_confirmado,
    st.IN_PREPARATION: _status_en_preparacion,
    st.READY: _status_listo,
    st.ON_THE_WAY: _status_en_camino,
    st.DELIVERED: _status_entregado,
    st.CANCELLED: _status_cancelado,
}


def render_status_message(order: Mapping[str, Any]) -> str | None:
    builder = STATUS_MESSAGES.get(order.get("status") or "")
    return builder(order) if builder else None


def render_new_order_message(order: Mapping[str, Any]) -> str:
    is_delivery = order.get("order_type") == st.ORDER_TYPE_DELIVERY
    items_list = "\n".join(
        f"• {item.get('quantity')}x {item.get('product_name')}" for item in order.get("items") or []
    )
    lines = [
        f"🔔 *NUEVO PEDIDO #{order['order_number']}*",
        "",
        f"👤 *Cliente:* {order['customer_name']}",
        f"📱 *Tel:* {order['customer_phone']}",
        f"{'🏍️' if is_delivery else '🏪'} *Tipo:* {'Delivery' if is_delivery else 'Retiro'}",
    ]
    if order.get("delivery_address"):
        lines.append(f"📍 *Dirección:* {order['delivery_address']}")
    payment = "Efectivo" if order.get("payment_method") == st.PAYMENT_CASH else "Transferencia"
    lines.extend(
        [
            f"💳 *Pago:* {payment}",
            "",
            f"📝 *Productos:*\n{items_list}",
            "",
            f"💰 *Total: {format_price(order.get('total') or 0)}*",
            "",
            "Ingresa al panel para confirmar el pedido.",
        ]
    )
    return "\n".join(lines)


class NotificationDispatcher:
    """Puerto de salida hacia el canal: envía texto y nunca propaga errores."""

    def __init__(
        self,
        service: WhatsAppService | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self._service = service or WhatsAppService()
        self._session_factory = session_factory

    def send(
        self,
        tenant_id: int,
        to_phone: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> str | None:
        db = self._session_factory()
        try:
            log_entry = self._service.send_text(
                db,
                tenant_id=tenant_id,
                to_phone=to_phone,
                text=text,
                context=context,
            )
        except Exception:
            db.rollback()
            logger.exception("WhatsApp send failed to=%s", to_phone, extra={"tenant_id": tenant_id})
            return None
        finally:
            db.close()

        if log_entry.status != "sent":
            logger.warning(
                "WhatsApp send not delivered to=%s error=%s",
                to_phone,
                log_entry.error,
                extra={"tenant_id": tenant_id},
            )
            return None
        return log_entry.provider_message_id
