from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.database import get_db
from app.core.errors import DomainError, InsufficientStockError, InvalidStatusTransitionError, ValidationError
from app.main import domain_error_handler
from app.models.inventory import Ingredient, StockMovement
from app.routers.orders import router as orders_router
from app.services import order_status as st
from app.services import orders as order_service
from tests.fixtures_data import (
    CARNE,
    CEBOLLA,
    HAPPY_PATH_ORDER_PAYLOAD,
    PAN,
    PICKUP_ORDER_PAYLOAD,
    QUESO,
    TENANT_ID,
    build_session_factory,
    seed_catalog,
    stock_of,
)


def _build_db():
    session_factory = build_session_factory()
    db = session_factory()
    seed_catalog(db)
    return db


def _build_client(db):
    app = FastAPI()
    app.include_router(orders_router)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.dependency_overrides[get_db] = lambda: db
    return TestClient(app)


def _advance(db, order_id, *statuses):
    for status in statuses:
        order_service.update_order(db, TENANT_ID, order_id, {"status": status})


def test_create_order_computes_totals_and_starts_pending():
    db = _build_db()

    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    assert order.status == st.PENDING
    assert order.subtotal == 5000
    assert order.total == 5300
    assert order.items[0]["item_total"] == 5000


def test_pickup_order_ignores_delivery_cost():
    db = _build_db()
    payload = dict(PICKUP_ORDER_PAYLOAD, delivery_cost=500)

    order = order_service.create_order(db, TENANT_ID, payload)

    assert order.delivery_cost == 0
    assert order.total == 3500


def test_create_order_rejects_delivery_without_address():
    db = _build_db()
    payload = dict(HAPPY_PATH_ORDER_PAYLOAD, delivery_address="  ")

    with pytest.raises(ValidationError):
        order_service.create_order(db, TENANT_ID, payload)


def test_confirm_debits_recipe_and_cancel_restores_it():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    order_service.confirm_order(db, TENANT_ID, order.id)

    assert stock_of(db, PAN) == 48
    assert stock_of(db, CARNE) == 48
    assert stock_of(db, QUESO) == 48
    assert stock_of(db, CEBOLLA) == 18
    debits = db.query(StockMovement).filter_by(order_id=order.id, type="salida").all()
    assert len(debits) == 4
    assert all(movement.reason == f"Pedido #{order.id:06d}" for movement in debits)

    cancelled = order_service.cancel_order(db, TENANT_ID, order.id, reason="Cliente no responde")

    assert cancelled.status == st.CANCELLED
    assert cancelled.cancel_reason == "Cliente no responde"
    for ingredient_id, expected in ((PAN, 50), (CARNE, 50), (QUESO, 50), (CEBOLLA, 20)):
        assert stock_of(db, ingredient_id) == expected
    assert db.query(StockMovement).filter_by(order_id=order.id, type="entrada").count() == 4


def test_customizations_and_linked_extras_consume_stock():
    db = _build_db()
    payload = dict(HAPPY_PATH_ORDER_PAYLOAD)
    payload["items"] = [
        {
            "product_id": 1,
            "product_name": "Clásica",
            "unit_price": 2500,
            "quantity": 2,
            "customizations": [
                {"ingredient_id": QUESO, "ingredient_name": "Queso", "type": "agregar", "extra_price": 300},
                {"ingredient_id": CEBOLLA, "ingredient_name": "Cebolla", "type": "quitar"},
            ],
            "extras": [{"extra_id": 1, "name": "Bacon extra", "unit_price": 400, "quantity": 1}],
        }
    ]
    order = order_service.create_order(db, TENANT_ID, payload)
    assert order.subtotal == (2500 + 300 + 400) * 2

    order_service.confirm_order(db, TENANT_ID, order.id)

    assert stock_of(db, QUESO) == 50 - 2 - 2
    assert stock_of(db, 5) == 30 - 2


def test_cancel_before_confirm_writes_no_movements():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    order_service.cancel_order(db, TENANT_ID, order.id)

    assert db.query(StockMovement).count() == 0
    assert stock_of(db, CARNE) == 50


def test_confirm_with_insufficient_stock_changes_nothing():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)
    db.get(Ingredient, CEBOLLA).stock = 1
    db.commit()

    with pytest.raises(InsufficientStockError):
        order_service.confirm_order(db, TENANT_ID, order.id)

    db.expire_all()
    assert order_service.get_order(db, TENANT_ID, order.id).status == st.PENDING
    assert stock_of(db, PAN) == 50
    assert db.query(StockMovement).count() == 0


def test_full_lifecycle_and_terminal_states():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    _advance(db, order.id, st.CONFIRMED, st.IN_PREPARATION, st.READY, st.ON_THE_WAY, st.DELIVERED)

    assert order_service.get_order(db, TENANT_ID, order.id).status == st.DELIVERED
    assert stock_of(db, PAN) == 48
    with pytest.raises(InvalidStatusTransitionError):
        _advance(db, order.id, st.CANCELLED)
    with pytest.raises(DomainError):
        order_service.cancel_order(db, TENANT_ID, order.id)


def test_invalid_transitions_are_rejected():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    with pytest.raises(InvalidStatusTransitionError):
        _advance(db, order.id, st.READY)
    _advance(db, order.id, st.CONFIRMED, st.IN_PREPARATION)
    with pytest.raises(InvalidStatusTransitionError):
        _advance(db, order.id, st.CANCELLED)
    with pytest.raises(DomainError):
        order_service.confirm_order(db, TENANT_ID, order.id)


def test_transition_table_matches_lifecycle():
    assert st.can_transition(st.PENDING_PAYMENT, st.PENDING)
    assert st.can_transition(st.READY, st.DELIVERED)
    assert st.can_transition(st.READY, st.ON_THE_WAY)
    assert not st.can_transition(st.IN_PREPARATION, st.CANCELLED)
    assert not st.can_transition(st.DELIVERED, st.CANCELLED)
    assert not st.can_transition(st.CANCELLED, st.PENDING)
    assert all(not st.VALID_TRANSITIONS[terminal] for terminal in (st.DELIVERED, st.CANCELLED))


def test_payment_approval_and_rejection():
    db = _build_db()
    approved = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD, initial_status=st.PENDING_PAYMENT)
    rejected = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD, initial_status=st.PENDING_PAYMENT)

    with pytest.raises(DomainError):
        order_service.confirm_order(db, TENANT_ID, approved.id)

    approved = order_service.approve_payment(db, TENANT_ID, approved.id)
    rejected = order_service.reject_payment(db, TENANT_ID, rejected.id)

    assert approved.status == st.PENDING
    assert approved.payment_status == "aprobado"
    assert rejected.status == st.CANCELLED
    assert rejected.payment_status == "rechazado"
    assert db.query(StockMovement).count() == 0


def test_order_lookups_are_scoped_by_tenant():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)

    with pytest.raises(DomainError) as exc_info:
        order_service.get_order(db, 999, order.id)

    assert exc_info.value.status_code == 404


def test_order_stats_count_only_delivered():
    db = _build_db()
    today = datetime.now(timezone.utc).date()
    delivered = order_service.create_order(db, TENANT_ID, HAPPY_PATH_ORDER_PAYLOAD)
    pickup = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    cancelled = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)
    _advance(db, delivered.id, st.CONFIRMED, st.IN_PREPARATION, st.READY, st.DELIVERED)
    _advance(db, pickup.id, st.CONFIRMED, st.IN_PREPARATION, st.READY, st.DELIVERED)
    order_service.cancel_order(db, TENANT_ID, cancelled.id)

    stats = order_service.get_order_stats(db, TENANT_ID, today, today)

    assert stats == {
        "total_orders": 2,
        "total_sales": 5300 + 3500,
        "total_cash": 5300,
        "total_transfer": 3500,
        "total_delivery_cost": 300,
        "cancelled_orders": 1,
    }


def test_orders_api_flow():
    db = _build_db()
    client = _build_client(db)

    created = client.post(f"/api/tenants/{TENANT_ID}/orders", json=HAPPY_PATH_ORDER_PAYLOAD)
    assert created.status_code == 201
    body = created.json()
    assert body["order_number"] == "000001"
    assert body["total"] == 5300

    order_id = body["id"]
    assert client.post(f"/api/tenants/{TENANT_ID}/orders/{order_id}/confirm").json()["status"] == "confirmado"
    pending = client.get(f"/api/tenants/{TENANT_ID}/orders/pending").json()
    assert [entry["id"] for entry in pending] == [order_id]

    invalid = client.patch(f"/api/tenants/{TENANT_ID}/orders/{order_id}", json={"status": "entregado"})
    assert invalid.status_code == 400
    assert "error" in invalid.json()

    cancelled = client.post(f"/api/tenants/{TENANT_ID}/orders/{order_id}/cancel", json={"reason": "Sin repartidor"})
    assert cancelled.json()["status"] == "cancelado"
    assert stock_of(db, CARNE) == 50

    listed = client.get(f"/api/tenants/{TENANT_ID}/orders", params={"status": "cancelado"}).json()
    assert [entry["id"] for entry in listed] == [order_id]


def test_orders_api_awaiting_payment_and_missing_order():
    db = _build_db()
    client = _build_client(db)

    created = client.post(
        f"/api/tenants/{TENANT_ID}/orders",
        json=dict(PICKUP_ORDER_PAYLOAD, awaiting_payment=True),
    )
    assert created.json()["status"] == "pendiente_pago"

    approved = client.post(f"/api/tenants/{TENANT_ID}/orders/{created.json()['id']}/payment/approve")
    assert approved.json()["status"] == "pendiente"

    missing = client.get(f"/api/tenants/{TENANT_ID}/orders/404")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Pedido no encontrado."}


def test_update_rejects_blank_customer_fields():
    db = _build_db()
    order = order_service.create_order(db, TENANT_ID, PICKUP_ORDER_PAYLOAD)

    for patch in ({"customer_name": None}, {"customer_phone": "   "}):
        with pytest.raises(ValidationError):
            order_service.update_order(db, TENANT_ID, order.id, patch)

    updated = order_service.update_order(db, TENANT_ID, order.id, {"customer_name": "  Ana  "})
    assert updated.customer_name == "Ana"


def test_orders_api_patch_with_null_name_is_a_client_error():
    db = _build_db()
    client = _build_client(db)
    order_id = client.post(f"/api/tenants/{TENANT_ID}/orders", json=PICKUP_ORDER_PAYLOAD).json()["id"]

    response = client.patch(f"/api/tenants/{TENANT_ID}/orders/{order_id}", json={"customer_name": None})

    assert response.status_code == 400
    assert "customer_name" in response.json()["error"]
    assert client.get(f"/api/tenants/{TENANT_ID}/orders/{order_id}").json()["customer_name"] == PICKUP_ORDER_PAYLOAD["customer_name"]
