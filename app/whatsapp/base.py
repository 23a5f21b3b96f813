from __future__ import annotations

import json
from typing import Any, Iterable, Protocol

from sqlalchemy.orm import Session

from app.models.whatsapp_config import WhatsAppConfig
from app.models.whatsapp_message_log import WhatsAppMessageLog


class WhatsAppProvider(Protocol):
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
        ...

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        ...


SENSITIVE_KEYS = {"access_token", "verify_token", "authorization", "token", "password", "secret"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if str(key).lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)


def safe_json(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def create_message_log(
    db: Session,
    *,
    tenant_id: int,
    direction: str,
    to_phone: str | None,
    from_phone: str | None,
    message_type: str,
    payload: dict[str, Any],
    status: str,
    provider_message_id: str | None = None,
    error: str | None = None,
) -> WhatsAppMessageLog:
    log_entry = WhatsAppMessageLog(
        tenant_id=tenant_id,
        direction=direction,
        to_phone=to_phone,
        from_phone=from_phone,
        message_type=message_type,
        payload_json=safe_json(sanitize_payload(payload)),
        status=status,
        error=error,
        provider_message_id=provider_message_id,
    )
    db.add(log_entry)
    db.commit()
    return log_entry
