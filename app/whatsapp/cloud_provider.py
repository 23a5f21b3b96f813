from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable

import httpx
from sqlalchemy.orm import Session

from app.core.config import META_API_VERSION, WHATSAPP_HTTP_TIMEOUT_SECONDS
from app.models.whatsapp_config import WhatsAppConfig
from app.models.whatsapp_message_log import WhatsAppMessageLog
from app.whatsapp.base import WhatsAppProvider, create_message_log

logger = logging.getLogger(__name__)


def _message_text(msg: dict[str, Any]) -> str:
    """Texto normalizado del mensaje; las respuestas interactivas devuelven su id estable."""
    msg_type = msg.get("type") or "text"
    if msg_type == "text":
        return ((msg.get("text") or {}).get("body")) or ""
    if msg_type == "interactive":
        interactive = msg.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("id") or reply.get("title") or ""
    if msg_type == "button":
        button = msg.get("button") or {}
        return button.get("payload") or button.get("text") or ""
    return ""


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")

            contact_names: dict[str, str] = {}
            for contact in value.get("contacts") or []:
                name = (contact.get("profile") or {}).get("name")
                if contact.get("wa_id") and name:
                    contact_names[contact["wa_id"]] = name
            fallback_name = next(iter(contact_names.values()), None)

            for msg in value.get("messages", []) or []:
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": from_number,
                        "text": _message_text(msg).strip(),
                        "message_type": msg.get("type") or "text",
                        "phone_number_id": phone_number_id,
                        "contact_name": contact_names.get(from_number, fallback_name),
                    }
                )
    return messages


class CloudWhatsAppProvider(WhatsAppProvider):
    MAX_RETRIES = 3
    RETRY_DELAY_SECONDS = 0.5

    def __init__(self, timeout: float = WHATSAPP_HTTP_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout

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
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        if not config or not config.access_token or not config.phone_number_id:
            return create_message_log(
                db,
                tenant_id=tenant_id,
                direction="out",
                to_phone=to_phone,
                from_phone=None,
                message_type="text",
                payload=payload,
                status="failed",
                error="Credenciales de WhatsApp Cloud incompletas",
            )

        url = f"https://graph.facebook.com/{META_API_VERSION}/{config.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {config.access_token}", "Content-Type": "application/json"}
        last_error: str | None = None

        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(url, headers=headers, json=payload)

                if 200 <= response.status_code < 300:
                    provider_id = None
                    try:
                        data = response.json()
                        provider_id = ((data.get("messages") or [{}])[0].get("id"))
                    except json.JSONDecodeError:
                        data = {"raw": response.text}
                    return create_message_log(
                        db,
                        tenant_id=tenant_id,
                        direction="out",
                        to_phone=to_phone,
                        from_phone=config.phone_number_id,
                        message_type="text",
                        payload={**payload, "context": context or {}, "response": data},
                        status="sent",
                        provider_message_id=provider_id,
                    )

                last_error = f"Error WhatsApp {response.status_code}: {response.text}"
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    break
            except httpx.HTTPError as exc:
                last_error = str(exc)

            logger.warning(
                "WhatsApp Cloud send failed attempt=%s/%s",
                attempt,
                self.MAX_RETRIES,
                extra={"tenant_id": tenant_id},
            )
            if attempt < self.MAX_RETRIES:
                time.sleep(self.RETRY_DELAY_SECONDS * attempt)

        return create_message_log(
            db,
            tenant_id=tenant_id,
            direction="out",
            to_phone=to_phone,
            from_phone=config.phone_number_id,
            message_type="text",
            payload={**payload, "context": context or {}},
            status="failed",
            error=last_error,
        )

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return parse_cloud_webhook(payload)
