import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import META_WA_VERIFY_TOKEN
from app.core.database import get_db
from app.deps import get_engine
from app.fsm.engine import ConversationEngine
from app.fsm.states import InboundEvent
from app.models.processed_message import ProcessedMessage
from app.models.whatsapp_config import WhatsAppConfig
from app.whatsapp.cloud_provider import parse_cloud_webhook
from app.whatsapp.mock_provider import MockWhatsAppProvider
from app.whatsapp.service import WhatsAppService

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])
logger = logging.getLogger(__name__)


def _verify_tenant_token(db: Session, tenant_id: int, token: str | None) -> bool:
    if not token:
        return False
    config = db.query(WhatsAppConfig).filter(WhatsAppConfig.tenant_id == tenant_id).first()
    if config and config.verify_token:
        return token == config.verify_token
    if META_WA_VERIFY_TOKEN:
        return token == META_WA_VERIFY_TOKEN
    return False


def _mark_processed(db: Session, tenant_id: int, message_id: str) -> bool:
    """False si el mensaje ya se había recibido (reentrega de Meta)."""
    if db.query(ProcessedMessage).filter_by(message_id=message_id).first():
        return False
    try:
        db.add(ProcessedMessage(message_id=message_id, tenant_id=tenant_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def _to_event(tenant_id: int, extracted: dict[str, Any]) -> InboundEvent:
    return InboundEvent(
        tenant_id=tenant_id,
        customer_id=extracted["from_number"],
        text=extracted.get("text", ""),
        contact_name=extracted.get("contact_name"),
        message_id=extracted.get("message_id"),
    )


@router.get("/{tenant_id}/webhook")
async def verify_webhook(tenant_id: int, request: Request, db: Session = Depends(get_db)):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and _verify_tenant_token(db, tenant_id, token):
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Token de verificación inválido")


@router.post("/{tenant_id}/webhook")
async def whatsapp_webhook(
    tenant_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    engine: ConversationEngine = Depends(get_engine),
):
    payload = await request.json()
    messages = parse_cloud_webhook(payload)
    if not messages:
        return {"status": "ignored"}

    service = WhatsAppService()
    accepted = 0
    for extracted in messages:
        if not _mark_processed(db, tenant_id, extracted["message_id"]):
            logger.info("duplicate message dropped id=%s", extracted["message_id"], extra={"tenant_id": tenant_id})
            continue
        service.log_inbound(
            db,
            tenant_id=tenant_id,
            from_phone=extracted["from_number"],
            to_phone=extracted.get("phone_number_id"),
            message_type=extracted.get("message_type", "text"),
            payload={"text": extracted.get("text", ""), "contact_name": extracted.get("contact_name")},
            provider_message_id=extracted["message_id"],
        )
        # Meta reintenta si no respondemos rápido; el procesamiento va después de la respuesta
        background_tasks.add_task(engine.handle, _to_event(tenant_id, extracted))
        accepted += 1

    if not accepted:
        return {"status": "duplicate"}
    return {"status": "accepted"}


@router.post("/{tenant_id}/simulate")
def simulate_message(
    tenant_id: int,
    payload: dict[str, Any],
    engine: ConversationEngine = Depends(get_engine),
):
    """Procesa un mensaje en línea y devuelve las respuestas; para pruebas manuales."""
    messages = list(MockWhatsAppProvider().parse_webhook(payload))
    if not messages:
        raise HTTPException(status_code=400, detail="Falta el mensaje")
    replies = engine.handle(_to_event(tenant_id, messages[0]))
    return {"replies": replies}
