from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import IS_DEV, META_WA_ACCESS_TOKEN, META_WA_PHONE_NUMBER_ID
from app.models.whatsapp_config import WhatsAppConfig
from app.models.whatsapp_message_log import WhatsAppMessageLog
from app.whatsapp.base import WhatsAppProvider, create_message_log
from app.whatsapp.cloud_provider import CloudWhatsAppProvider
from app.whatsapp.mock_provider import MockWhatsAppProvider

logger = logging.getLogger(__name__)


class WhatsAppService:
    def __init__(
        self,
        mock_provider: WhatsAppProvider | None = None,
        cloud_provider: WhatsAppProvider | None = None,
        fallback_to_mock: bool = IS_DEV,
    ) -> None:
        self._mock_provider = mock_provider or MockWhatsAppProvider()
        self._cloud_provider = cloud_provider or CloudWhatsAppProvider()
        self._fallback_to_mock = fallback_to_mock

    def get_config(self, db: Session, tenant_id: int) -> WhatsAppConfig | None:
        config = (
            db.query(WhatsAppConfig)
            .filter(WhatsAppConfig.tenant_id == tenant_id)
            .first()
        )
        if config is not None:
            return config
        if META_WA_ACCESS_TOKEN and META_WA_PHONE_NUMBER_ID:
            # credenciales globales del proceso; no se persiste
            return WhatsAppConfig(
                tenant_id=tenant_id,
                provider="cloud",
                phone_number_id=META_WA_PHONE_NUMBER_ID,
                access_token=META_WA_ACCESS_TOKEN,
                is_enabled=True,
            )
        return None

    def _select_provider(self, config: WhatsAppConfig | None) -> WhatsAppProvider:
        if not config or not config.is_enabled:
            return self._mock_provider
        if config.provider == "cloud" and config.access_token and config.phone_number_id:
            return self._cloud_provider
        return self._mock_provider

    def send_text(
        self,
        db: Session,
        *,
        tenant_id: int,
        to_phone: str,
        text: str,
        context: dict[str, Any] | None = None,
    ) -> WhatsAppMessageLog:
        config = self.get_config(db, tenant_id)
        provider = self._select_provider(config)
        log_entry = provider.send_text(
            db,
            tenant_id=tenant_id,
            config=config,
            to_phone=to_phone,
            text=text,
            context=context,
        )
        if log_entry.status == "failed" and provider is self._cloud_provider and self._fallback_to_mock:
            logger.warning("WhatsApp Cloud falló, usando mock (tenant=%s)", tenant_id)
            return self._mock_provider.send_text(
                db,
                tenant_id=tenant_id,
                config=config,
                to_phone=to_phone,
                text=text,
                context={"fallback": "mock", **(context or {})},
            )
        return log_entry

    def log_inbound(
        self,
        db: Session,
        *,
        tenant_id: int,
        from_phone: str,
        to_phone: str | None,
        message_type: str,
        payload: dict[str, Any],
        provider_message_id: str | None = None,
    ) -> WhatsAppMessageLog:
        return create_message_log(
            db,
            tenant_id=tenant_id,
            direction="in",
            to_phone=to_phone,
            from_phone=from_phone,
            message_type=message_type,
            payload=payload,
            status="received",
            provider_message_id=provider_message_id,
        )
