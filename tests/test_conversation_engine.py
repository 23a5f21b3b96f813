from app.fsm import messages as msg
from app.fsm.engine import ConversationEngine, normalize_text
from app.fsm.states import InboundEvent, Step
from app.fsm.store import InMemoryConversationStore
from app.models.inventory import Ingredient, StockMovement
from app.models.order import Order
from app.models.product import Product
from tests.fixtures_data import (
    CARNE,
    CLASICA,
    CUSTOMER_PHONE,
    DOBLE,
    TENANT_ID,
    RecordingDispatcher,
    build_session_factory,
    seed_catalog,
)

HAPPY_PATH = [
    "pedir",
    "1",
    "2",
    "no",
    "no",
    "no",
    "1",
    "1",
    "Calle Falsa 123, depto 2",
    "portón negro",
    "1",
    "confirmar",
]


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _build_engine(**seed_kwargs):
    session_factory = build_session_factory()
    db = session_factory()
    seed_catalog(db, **seed_kwargs)
    db.close()

    clock = _Clock()
    store = InMemoryConversationStore(ttl_seconds=1800, clock=clock)
    dispatcher = RecordingDispatcher()
    engine = ConversationEngine(store, dispatcher, session_factory, fail_closed=True)
    return engine, session_factory, store, dispatcher, clock


def _say(engine, text, phone=CUSTOMER_PHONE):
    return engine.handle(InboundEvent(tenant_id=TENANT_ID, customer_id=phone, text=text, contact_name="Juan"))


def _run(engine, messages, phone=CUSTOMER_PHONE):
    replies = []
    for text in messages:
        replies = _say(engine, text, phone)
    return replies


def test_normalize_text_strips_accents_case_and_punctuation():
    assert normalize_text("  ¡Sí!  ") == "si"
    assert normalize_text("Buen   Día") == "buen dia"
    assert normalize_text("CANCELAR.") == "cancelar"


def test_happy_path_delivery_creates_pending_order_with_totals():
    engine, session_factory, store, dispatcher, _ = _build_engine()

    replies = _run(engine, HAPPY_PATH)

    assert "#000001" in replies[-1]
    assert store.get(TENANT_ID, CUSTOMER_PHONE) is None

    db = session_factory()
    order = db.query(Order).one()
    assert order.status == "pendiente"
    assert order.subtotal == 5000
    assert order.delivery_cost == 300
    assert order.total == 5300
    assert order.order_type == "delivery"
    assert order.delivery_zone_name == "Centro"
    assert order.delivery_address == "Calle Falsa 123, depto 2"
    assert order.delivery_notes == "portón negro"
    assert order.payment_method == "efectivo"
    assert order.customer_name == "Juan"
    assert order.customer_phone == CUSTOMER_PHONE
    assert order.items[0]["quantity"] == 2
    assert order.items[0]["item_total"] == 5000
    # la conversación no toca stock: se descuenta al confirmar el pedido
    assert db.query(StockMovement).count() == 0
    db.close()

    assert dispatcher.texts_to(CUSTOMER_PHONE)[-1] == replies[-1]


def test_state_advances_step_by_step():
    engine, _, store, _, _ = _build_engine()

    _say(engine, "pedir")
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_PRODUCT
    _say(engine, "1")
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_QUANTITY
    _say(engine, "2")
    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.SELECTING_EXTRAS
    assert state.cart[0]["quantity"] == 2
    assert state.cart[0]["product"]["name"] == "Clásica"


def test_adding_more_products_reloads_the_menu():
    engine, session_factory, store, _, _ = _build_engine()
    _run(engine, ["pedir", "1", "1", "no", "no"])
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.ASKING_MORE_PRODUCTS

    db = session_factory()
    db.get(Product, CLASICA).available = False
    db.commit()
    db.close()

    replies = _say(engine, "si")

    assert "Clásica" not in replies[-1]
    assert "Doble" in replies[-1]
    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.SELECTING_PRODUCT
    assert [product["id"] for product in state.products] == [DOBLE]
    assert len(state.cart) == 1

    _say(engine, "1")
    assert store.get(TENANT_ID, CUSTOMER_PHONE).current_product["id"] == DOBLE


def test_invalid_quantity_keeps_step():
    engine, _, store, _, _ = _build_engine()
    _run(engine, ["pedir", "1"])

    for text in ("0", "11", "dos"):
        replies = _say(engine, text)
        assert replies == [msg.INVALID_QUANTITY_TEXT]
        assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_QUANTITY


def test_out_of_range_product_index_reprompts():
    engine, _, store, _, _ = _build_engine()
    _say(engine, "pedir")

    replies = _say(engine, "7")

    assert replies == [msg.invalid_index_text(2)]
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_PRODUCT


def test_extras_aggregate_by_id_and_price_into_total():
    engine, session_factory, _, _, _ = _build_engine()

    _run(engine, ["pedir", "1", "1", "1", "1", "listo", "no", "no", "2", "2", "confirmar"])

    db = session_factory()
    order = db.query(Order).one()
    extras = order.items[0]["extras"]
    assert len(extras) == 1
    assert extras[0]["quantity"] == 2
    assert order.subtotal == 2500 + 2 * 400
    assert order.order_type == "pickup"
    assert order.delivery_cost == 0
    assert order.payment_method == "transferencia"
    db.close()


def test_customizations_are_deduplicated_and_priced():
    engine, session_factory, store, _, _ = _build_engine(with_extras=False)

    _run(engine, ["pedir", "1", "1", "si", "1", "1", "1", "listo", "2", "1", "listo", "3"])
    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.ASKING_MORE_PRODUCTS
    customizations = state.cart[0]["customizations"]
    assert [(entry["ingredient_name"], entry["type"]) for entry in customizations] == [
        ("Queso", "agregar"),
        ("Cebolla", "quitar"),
    ]

    _run(engine, ["no", "2", "1", "confirmar"])
    db = session_factory()
    order = db.query(Order).one()
    assert order.subtotal == 2500 + 300
    db.close()


def test_product_without_options_skips_customization():
    engine, _, store, _, _ = _build_engine(with_extras=False)

    replies = _run(engine, ["pedir", "2", "1", "si"])

    assert msg.NO_CUSTOMIZATION_TEXT in replies[0]
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.ASKING_MORE_PRODUCTS


def test_insufficient_stock_at_payment_discards_cart():
    engine, session_factory, store, _, _ = _build_engine()
    db = session_factory()
    db.get(Ingredient, CARNE).stock = 1
    db.commit()
    db.close()

    replies = _run(engine, HAPPY_PATH[:11])

    assert "Stock insuficiente de Carne" in replies[0]
    assert store.get(TENANT_ID, CUSTOMER_PHONE) is None
    db = session_factory()
    assert db.query(Order).count() == 0
    db.close()

    # el siguiente mensaje arranca de cero
    assert _say(engine, "confirmar") == [msg.FALLBACK_TEXT]


def test_stock_is_checked_again_at_confirmation():
    engine, session_factory, store, _, _ = _build_engine()
    _run(engine, HAPPY_PATH[:11])
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.CONFIRMING_ORDER

    db = session_factory()
    db.get(Ingredient, CARNE).stock = 0
    db.commit()
    db.close()

    replies = _say(engine, "confirmar")

    assert "Stock insuficiente de Carne" in replies[0]
    assert store.get(TENANT_ID, CUSTOMER_PHONE) is None
    db = session_factory()
    assert db.query(Order).count() == 0
    db.close()


def test_cancel_from_any_step_resets_and_allows_new_order():
    engine, session_factory, store, _, _ = _build_engine()
    _run(engine, HAPPY_PATH[:8])
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.AWAITING_ADDRESS

    assert _say(engine, "Cancelar") == [msg.CANCELLED_TEXT]
    assert store.get(TENANT_ID, CUSTOMER_PHONE) is None

    _run(engine, HAPPY_PATH)
    db = session_factory()
    assert db.query(Order).count() == 1
    db.close()


def test_conversation_expires_after_ttl():
    engine, _, store, _, clock = _build_engine()
    _run(engine, ["pedir", "1"])

    clock.now += 1801

    assert store.get(TENANT_ID, CUSTOMER_PHONE) is None
    # "2" en idle es el atajo numérico: vuelve a elegir producto desde cero
    _say(engine, "2")
    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.SELECTING_QUANTITY
    assert state.current_product["name"] == "Doble"
    assert state.cart == []


def test_idle_number_starts_order_and_selects_product():
    engine, _, store, _, _ = _build_engine()

    replies = _say(engine, "1")

    assert replies == [msg.product_selected_text(store.get(TENANT_ID, CUSTOMER_PHONE).current_product)]
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_QUANTITY


def test_idle_help_greeting_and_menu_do_not_store_state():
    engine, _, store, _, _ = _build_engine()

    assert _say(engine, "ayuda") == [msg.HELP_TEXT]
    assert _say(engine, "Hola!") == [msg.GREETING_TEXT]
    menu = _say(engine, "carta")
    assert "Clásica" in menu[0] and "Doble" in menu[0]
    assert _say(engine, "qué tal") == [msg.FALLBACK_TEXT]
    assert len(store) == 0


def test_pickup_only_tenant_skips_order_type():
    engine, _, store, _, _ = _build_engine(has_delivery=False, with_extras=False)

    _run(engine, ["pedir", "1", "1", "no", "no"])

    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.SELECTING_PAYMENT
    assert state.order_type == "pickup"


def test_delivery_without_zones_goes_straight_to_address():
    engine, session_factory, store, _, _ = _build_engine(has_pickup=False, with_extras=False, with_zones=False)

    _run(engine, ["pedir", "1", "1", "no", "no"])
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.AWAITING_ADDRESS

    _run(engine, ["Av. Siempreviva 742", "no", "1", "confirmar"])
    db = session_factory()
    order = db.query(Order).one()
    assert order.delivery_cost == 0
    assert order.delivery_notes is None
    assert order.total == 2500
    db.close()


def test_short_address_and_notes_are_rejected():
    engine, _, store, _, _ = _build_engine()
    _run(engine, HAPPY_PATH[:8])

    assert _say(engine, "Calle 1") == [msg.SHORT_ADDRESS_TEXT]
    _say(engine, "Calle Falsa 123")
    assert _say(engine, "ok") == [msg.SHORT_NOTES_TEXT]
    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.AWAITING_DELIVERY_NOTES


def test_customers_are_isolated():
    engine, _, store, _, _ = _build_engine()
    other = "5491177776666"

    _run(engine, ["pedir", "1"])
    _say(engine, "pedir", phone=other)

    assert store.get(TENANT_ID, CUSTOMER_PHONE).step == Step.SELECTING_QUANTITY
    assert store.get(TENANT_ID, other).step == Step.SELECTING_PRODUCT


def test_unexpected_error_keeps_previous_state(monkeypatch):
    engine, _, store, _, _ = _build_engine()
    _run(engine, ["pedir", "1"])

    def _boom(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr("app.fsm.engine.list_active_extras", _boom)

    assert _say(engine, "2") == [msg.TEMPORARY_ERROR_TEXT]
    state = store.get(TENANT_ID, CUSTOMER_PHONE)
    assert state.step == Step.SELECTING_QUANTITY
    assert state.cart == []


def test_empty_message_is_ignored():
    engine, _, store, dispatcher, _ = _build_engine()

    assert _say(engine, "   ") == []
    assert dispatcher.sent == []
    assert len(store) == 0
