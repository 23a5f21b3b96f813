from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.errors import DomainError
from app.main import domain_error_handler
from app.models.cash_register import CashRegisterClose
from app.models.order import Order
from app.routers.cash_register import router as cash_register_router
from app.services import order_status as st
from app.services import orders as order_service
from app.services.auto_close import AUTO_CANCEL_REASON, AutoCloseScheduler, run_auto_close
from app.services.cash_register import SYSTEM_CLOSER, close_register, daily_summary
from tests.fixtures_data import (
    CARNE,
    HAPPY_PATH_ORDER_PAYLOAD,
    PICKUP_ORDER_PAYLOAD,
    TENANT_ID,
    build_session_factory,
    seed_catalog,
    stock_of,
)


def _build_factory():
    session_factory = build_session_factory()
    db = session_factory()
    seed_catalog(db)
    db.close()
    return session_factory


def _today():
    return datetime.now(timezone.utc).date()


def _deliver(db, order_id):
    for status in (st.CONFIRMED, st.IN_PREPARATION, st.READY, st.DELIVERED):
        order_service.update_order(db, TENANT_ID, order_id, {"status": status})


def test_close_register_stores_summary():
    db = _build_factory()()
    delivered = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)
    _deliver(db, delivered.id)
    cancelled = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    order_service.cancel_order(db, TENANT_ID, cancelled.id)

    close = close_register(db, TENANT_ID, _today(), "Marta", notes="Sin novedades")

    assert close.summary == {
        "cash_total": 5300,
        "transfer_total": 0,
        "delivery_cost_total": 300,
        "subtotal": 5000,
        "grand_total": 5300,
        "order_count": 1,
        "cancelled_count": 1,
    }
    assert close.closed_by == "Marta"

    with pytest.raises(DomainError, match="Ya existe un cierre"):
        close_register(db, TENANT_ID, _today(), "Marta")


def test_close_register_refuses_open_orders():
    db = _build_factory()()
    first = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)

    with pytest.raises(DomainError) as exc_info:
        close_register(db, TENANT_ID, _today(), "Marta")

    assert "Hay 2 pedido(s)" in exc_info.value.message
    assert f"#{first.id:06d}" in exc_info.value.message
    assert db.query(CashRegisterClose).count() == 0


def test_summary_for_empty_day_is_zero():
    db = _build_factory()()

    summary = daily_summary(db, TENANT_ID, _today() - timedelta(days=30))

    assert summary["grand_total"] == 0
    assert summary["order_count"] == 0


def test_auto_close_cancels_leftovers_and_restores_stock():
    session_factory = _build_factory()
    db = session_factory()
    pending_id = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD).id
    confirmed_id = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD).id
    order_service.confirm_order(db, TENANT_ID, confirmed_id)
    assert stock_of(db, CARNE) == 48
    db.close()

    results = run_auto_close(session_factory, now=datetime.now(timezone.utc) + timedelta(days=1))

    assert results == {TENANT_ID: (True, "Caja cerrada automáticamente")}
    db = session_factory()
    for order_id in (pending_id, confirmed_id):
        order = db.get(Order, order_id)
        assert order.status == st.CANCELLED
        assert order.cancel_reason == AUTO_CANCEL_REASON
    assert stock_of(db, CARNE) == 50
    close = db.query(CashRegisterClose).one()
    assert close.closed_by == SYSTEM_CLOSER
    assert close.summary["cancelled_count"] == 2
    db.close()

    again = run_auto_close(session_factory, now=datetime.now(timezone.utc) + timedelta(days=1))
    assert again == {TENANT_ID: (True, "Caja ya cerrada")}


def test_auto_close_reports_orders_it_cannot_cancel():
    session_factory = _build_factory()
    db = session_factory()
    order = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    order_service.update_order(db, TENANT_ID, order.id, {"status": st.CONFIRMED})
    order_service.update_order(db, TENANT_ID, order.id, {"status": st.IN_PREPARATION})
    db.close()

    results = run_auto_close(session_factory, now=datetime.now(timezone.utc) + timedelta(days=1))

    ok, message = results[TENANT_ID]
    assert not ok
    assert "No se puede cerrar la caja" in message
    db = session_factory()
    assert db.query(CashRegisterClose).count() == 0
    db.close()


def test_scheduler_runs_once_per_day_at_configured_hour():
    session_factory = _build_factory()
    moments = iter(
        [
            datetime(2026, 5, 2, 2, 0, tzinfo=timezone.utc),
            datetime(2026, 5, 2, 3, 0, tzinfo=timezone.utc),
            datetime(2026, 5, 2, 3, 30, tzinfo=timezone.utc),
            datetime(2026, 5, 3, 3, 5, tzinfo=timezone.utc),
        ]
    )
    scheduler = AutoCloseScheduler(session_factory, check_hour=3, interval_seconds=60, clock=lambda: next(moments))

    assert [scheduler.tick() for _ in range(4)] == [False, True, False, True]

    db = session_factory()
    closed_days = sorted(close.date.isoformat() for close in db.query(CashRegisterClose).all())
    assert closed_days == ["2026-05-01", "2026-05-02"]
    db.close()


def test_scheduler_start_and_stop():
    scheduler = AutoCloseScheduler(
        _build_factory(),
        check_hour=25,
        interval_seconds=0.01,
        clock=lambda: datetime(2026, 5, 2, 3, 0, tzinfo=timezone.utc),
    )

    scheduler.start()
    assert scheduler.running
    scheduler.stop()
    assert not scheduler.running


def test_cash_register_api():
    db = _build_factory()()
    app = FastAPI()
    app.include_router(cash_register_router)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.dependency_overrides[get_db] = lambda: db
    client = TestClient(app)
    today = _today().isoformat()

    order = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    blocked = client.post(f"/api/tenants/{TENANT_ID}/cash-register/close", json={"date": today, "closed_by": "Marta"})
    assert blocked.status_code == 400
    assert "No se puede cerrar la caja" in blocked.json()["error"]

    _deliver(db, order.id)
    summary = client.get(f"/api/tenants/{TENANT_ID}/cash-register/summary", params={"day": today}).json()
    assert summary["transfer_total"] == 3500

    created = client.post(f"/api/tenants/{TENANT_ID}/cash-register/close", json={"date": today, "closed_by": "Marta"})
    assert created.status_code == 201
    close_id = created.json()["id"]

    assert client.get(f"/api/tenants/{TENANT_ID}/cash-register/{close_id}").json()["date"] == today
    assert [entry["id"] for entry in client.get(f"/api/tenants/{TENANT_ID}/cash-register").json()] == [close_id]
    assert client.get(f"/api/tenants/{TENANT_ID}/cash-register/999").status_code == 404
