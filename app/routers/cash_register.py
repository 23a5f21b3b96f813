from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.cash_register import CashRegisterClose
from app.services import cash_register as cash_service

router = APIRouter(prefix="/api/tenants/{tenant_id}/cash-register", tags=["cash-register"])


class CashRegisterCloseCreate(BaseModel):
    date: date
    closed_by: str = Field(..., min_length=1)
    notes: Optional[str] = None


def _close_to_dict(close: CashRegisterClose) -> Dict[str, Any]:
    return {
        "id": close.id,
        "tenant_id": close.tenant_id,
        "date": close.date.isoformat(),
        "summary": close.summary,
        "closed_by": close.closed_by,
        "notes": close.notes,
        "closed_at": close.closed_at.isoformat() if close.closed_at else None,
    }


@router.get("")
def list_closes(tenant_id: int, db: Session = Depends(get_db)):
    return [_close_to_dict(close) for close in cash_service.list_closes(db, tenant_id)]


@router.get("/summary")
def daily_summary(tenant_id: int, day: date, db: Session = Depends(get_db)):
    return cash_service.daily_summary(db, tenant_id, day)


@router.get("/{close_id}")
def get_close(tenant_id: int, close_id: int, db: Session = Depends(get_db)):
    return _close_to_dict(cash_service.get_close_by_id(db, tenant_id, close_id))


@router.post("/close", status_code=201)
def close_register(tenant_id: int, payload: CashRegisterCloseCreate, db: Session = Depends(get_db)):
    close = cash_service.close_register(db, tenant_id, payload.date, payload.closed_by, payload.notes)
    return _close_to_dict(close)
