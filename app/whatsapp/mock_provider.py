from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable

from sqlalchemy.orm import Session

from app.models.whatsapp_config import WhatsAppConfig
from app.models.whatsapp_message_log import WhatsAppMessageLog
from app.whatsapp.base import WhatsAppProvider, create_message_log

logger = logging.getLogger(__name__)


class MockWhatsAppProvider(WhatsAppProvider):
    """No sale a la red: registra el mensaje y devuelve un id inventado."""

    def send_text(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> WhatsAppMessageLog:
        logger.info("WhatsApp mock -> %s: %s", to_phone, text, extra={"tenant_id": tenant_id})
        return create_message_log(
            db,
            tenant_id=tenant_id,
            direction="out",
            to_phone=to_phone,
            from_phone=(config.phone_number_id if config else None),
            message_type="text",
            payload={"type": "text", "to": to_phone, "text": text, "context": context or {}},
            status="sent",
            provider_message_id=f"mock-{uuid.uuid4().hex[:10]}",
        )

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        message = payload.get("message") or {}
        if not message or not message.get("from"):
            return []
        return [
            {
                "message_id": message.get("id") or f"mock-{uuid.uuid4().hex[:8]}",
                "from_number": message.get("from"),
                "text": str(message.get("text", "")).strip(),
                "message_type": message.get("type", "text"),
                "contact_name": message.get("contact_name"),
            }
        ]
