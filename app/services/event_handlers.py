from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.tenant import Tenant
from app.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED, EventBus, event_bus
from app.services.notifications import NotificationDispatcher, render_new_order_message, render_status_message

logger = logging.getLogger(__name__)


class OrderNotificationHandlers:
    """Avisos de pedidos: al local cuando entra uno nuevo y al cliente en cada cambio de estado."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self._dispatcher = dispatcher
        self._session_factory = session_factory

    def _notification_phone(self, tenant_id: int) -> str | None:
        db = self._session_factory()
        try:
            tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
            return tenant.notification_phone if tenant else None
        finally:
            db.close()

    def handle_order_created(self, payload: dict) -> None:
        phone = self._notification_phone(payload["tenant_id"])
        if not phone:
            logger.debug("new order notification skipped: no notification phone")
            return
        self._dispatcher.send(
            payload["tenant_id"],
            phone,
            render_new_order_message(payload),
            context={"order_id": payload["order_id"], "event": ORDER_CREATED},
        )

    def handle_order_status_changed(self, payload: dict) -> None:
        message = render_status_message(payload)
        if not message or not payload.get("customer_phone"):
            return
        self._dispatcher.send(
            payload["tenant_id"],
            payload.get("channel_chat_id") or payload["customer_phone"],
            message,
            context={"order_id": payload["order_id"], "event": ORDER_STATUS_CHANGED, "status": payload["status"]},
        )

    def register(self, bus: EventBus = event_bus) -> None:
        bus.subscribe(ORDER_CREATED, self.handle_order_created)
        bus.subscribe(ORDER_STATUS_CHANGED, self.handle_order_status_changed)

    def unregister(self, bus: EventBus = event_bus) -> None:
        bus.unsubscribe(ORDER_CREATED, self.handle_order_created)
        bus.unsubscribe(ORDER_STATUS_CHANGED, self.handle_order_status_changed)
