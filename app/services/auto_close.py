"""Cierre automático de caja del día anterior.

Para cada tenant activo: si la caja de ayer no está cerrada, cancela los
pedidos que quedaron abiertos y cierra la caja a nombre del sistema.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import Session

from app.core.config import AUTO_CLOSE_CHECK_INTERVAL_SECONDS, AUTO_CLOSE_HOUR
from app.core.database import SessionLocal
from app.core.errors import DomainError
from app.core.request_context import bind_order_context
from app.models.tenant import Tenant
from app.services.cash_register import SYSTEM_CLOSER, close_register, is_closed
from app.services.order_events import format_order_number
from app.services.orders import cancel_order, list_pending_orders_by_date

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "Cancelado por cierre automático de caja"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def auto_close_tenant(db: Session, tenant_id: int, day: date) -> tuple[bool, str]:
    if is_closed(db, tenant_id, day):
        return True, "Caja ya cerrada"

    pending = list_pending_orders_by_date(db, tenant_id, day)
    if pending:
        logger.info(
            "auto-cancelling %s pending orders from %s",
            len(pending),
            day.isoformat(),
            extra={"tenant_id": tenant_id, "operation": "auto_close"},
        )
    for order in pending:
        order_id = order.id
        with bind_order_context(order_id):
            try:
                cancel_order(db, tenant_id, order_id, reason=AUTO_CANCEL_REASON)
            except DomainError as exc:
                logger.warning(
                    "could not auto-cancel order #%s: %s",
                    format_order_number(order_id),
                    exc.message,
                    extra={"tenant_id": tenant_id},
                )

    try:
        close_register(db, tenant_id, day, SYSTEM_CLOSER)
    except DomainError as exc:
        logger.error(
            "auto close failed date=%s: %s",
            day.isoformat(),
            exc.message,
            extra={"tenant_id": tenant_id, "operation": "auto_close"},
        )
        return False, exc.message
    return True, "Caja cerrada automáticamente"


def run_auto_close(
    session_factory: Callable[[], Session] = SessionLocal,
    now: datetime | None = None,
) -> dict[int, tuple[bool, str]]:
    day = ((now or _utcnow()) - timedelta(days=1)).date()
    results: dict[int, tuple[bool, str]] = {}

    db = session_factory()
    try:
        tenant_ids = [row.id for row in db.query(Tenant.id).filter(Tenant.is_active.is_(True)).all()]
    finally:
        db.close()

    logger.info("auto close start date=%s tenants=%s", day.isoformat(), len(tenant_ids))
    for tenant_id in tenant_ids:
        db = session_factory()
        try:
            results[tenant_id] = auto_close_tenant(db, tenant_id, day)
        except Exception as exc:
            db.rollback()
            logger.exception("auto close crashed", extra={"tenant_id": tenant_id, "operation": "auto_close"})
            results[tenant_id] = (False, str(exc))
        finally:
            db.close()

    succeeded = sum(1 for ok, _ in results.values() if ok)
    logger.info("auto close done ok=%s failed=%s", succeeded, len(results) - succeeded)
    return results


class AutoCloseScheduler:
    """Revisa cada ``interval_seconds`` y corre el cierre cuando la hora UTC es ``check_hour``."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        check_hour: int = AUTO_CLOSE_HOUR,
        interval_seconds: float = AUTO_CLOSE_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._check_hour = check_hour
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_run: date | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        now = self._clock()
        if now.hour != self._check_hour or self._last_run == now.date():
            return False
        self._last_run = now.date()
        run_auto_close(self._session_factory, now=now)
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("auto close tick failed")
            self._stop.wait(self._interval_seconds)

    def start(self) -> None:
        if self.running:
            logger.warning("auto close scheduler already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="auto-close", daemon=True)
        self._thread.start()
        logger.info("auto close scheduler started hour=%s", self._check_hour)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("auto close scheduler stopped")
