from __future__ import annotations

import logging
import re
import unicodedata
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.config import STOCK_CHECK_FAIL_CLOSED
from app.core.database import SessionLocal
from app.core.errors import DomainError, NotFoundError
from app.core.request_context import clear_request_context, set_request_context
from app.fsm import messages as msg
from app.fsm.states import ConversationState, InboundEvent, Step
from app.fsm.store import ConversationStore, KeyedLocks
from app.services import order_status as st
from app.services.catalog import (
    IngredientRef,
    ProductSnapshot,
    get_tenant_capabilities,
    list_active_delivery_zones,
    list_active_extras,
    list_available_products,
)
from app.services.notifications import NotificationDispatcher
from app.services.order_events import format_order_number
from app.services.orders import create_order, normalize_items
from app.services.pricing import CUSTOMIZATION_ADD, CUSTOMIZATION_REMOVE
from app.services.stock_verification import verify

logger = logging.getLogger(__name__)

CUSTOMER_FALLBACK_NAME = "Cliente WhatsApp"
MIN_ADDRESS_LENGTH = 10
MIN_NOTES_LENGTH = 5

CANCEL_WORDS = {"cancelar"}
HELP_WORDS = {"menu", "help", "ayuda", "opciones"}
MENU_WORDS = {"hamburguesas", "carta", "productos"}
ORDER_WORDS = {"pedir", "ordenar", "quiero", "pedido"}
GREETINGS = ("hola", "hello", "buenas", "buenos", "buen dia", "buenas tardes", "buenas noches")
YES_WORDS = {"si", "s", "dale", "ok", "claro", "yes"}
NO_WORDS = {"no", "n", "nop"}
DONE_WORDS = {"listo", "no", "nada", "continuar", "seguir"}
CONFIRM_WORDS = {"confirmar", "confirmo", "confirmado"}
SKIP_NOTES_WORDS = {"no", "ninguna", "ninguno", "nada", "sin referencias"}


def normalize_text(text: str) -> str:
    text = text.lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _parse_int(normalized: str) -> int | None:
    if re.fullmatch(r"\d{1,3}", normalized):
        return int(normalized)
    return None


def _pick(options: list, normalized: str) -> Any | None:
    index = _parse_int(normalized)
    if index is None or not 1 <= index <= len(options):
        return None
    return options[index - 1]


def cart_to_order_items(cart: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Pasa el carrito de la conversación al formato de ítems de un pedido."""
    raw_items = []
    for entry in cart:
        product = entry["product"]
        raw_items.append(
            {
                "product_id": product["id"],
                "product_name": product["name"],
                "unit_price": product["price"],
                "quantity": entry["quantity"],
                "customizations": entry.get("customizations") or [],
                "extras": [
                    {
                        "extra_id": selected["extra"]["id"],
                        "name": selected["extra"]["name"],
                        "unit_price": selected["extra"]["price"],
                        "quantity": selected["quantity"],
                    }
                    for selected in entry.get("extras") or []
                ],
                "notes": entry.get("notes"),
            }
        )
    return normalize_items(raw_items)


@dataclass
class _Turn:
    state: ConversationState
    replies: list[str] = field(default_factory=list)
    clear: bool = False

    def say(self, text: str) -> None:
        self.replies.append(text)

    def abort(self, text: str) -> None:
        self.say(text)
        self.clear = True


class ConversationEngine:
    """Máquina de estados del pedido por WhatsApp.

    Cada mensaje entrante se procesa de forma aislada: se lee el estado del
    store, se aplica el paso que corresponde y se guarda (o borra) el
    resultado. Los mensajes de un mismo cliente se serializan con un lock por
    (tenant, cliente), así que dos entregas simultáneas no pisan el carrito.
    """

    def __init__(
        self,
        store: ConversationStore,
        dispatcher: NotificationDispatcher,
        session_factory: Callable[[], Session] = SessionLocal,
        fail_closed: bool | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._session_factory = session_factory
        self._fail_closed = STOCK_CHECK_FAIL_CLOSED if fail_closed is None else fail_closed
        self._locks = locks or KeyedLocks()
        self._handlers = {
            Step.IDLE: self._on_idle,
            Step.SELECTING_PRODUCT: self._on_selecting_product,
            Step.SELECTING_QUANTITY: self._on_selecting_quantity,
            Step.SELECTING_EXTRAS: self._on_selecting_extras,
            Step.ASKING_CUSTOMIZATION: self._on_asking_customization,
            Step.SELECTING_CUSTOMIZATION_TYPE: self._on_selecting_customization_type,
            Step.SELECTING_CUSTOMIZATION: self._on_selecting_customization,
            Step.ASKING_MORE_PRODUCTS: self._on_asking_more_products,
            Step.SELECTING_ORDER_TYPE: self._on_selecting_order_type,
            Step.SELECTING_DELIVERY_ZONE: self._on_selecting_delivery_zone,
            Step.AWAITING_ADDRESS: self._on_awaiting_address,
            Step.AWAITING_DELIVERY_NOTES: self._on_awaiting_delivery_notes,
            Step.SELECTING_PAYMENT: self._on_selecting_payment,
            Step.CONFIRMING_ORDER: self._on_confirming_order,
        }

    def handle(self, event: InboundEvent) -> list[str]:
        text = (event.text or "").strip()
        if not text:
            return []

        with self._locks.hold((event.tenant_id, event.customer_id)):
            set_request_context(
                request_id=event.message_id or uuid.uuid4().hex,
                tenant_id=str(event.tenant_id),
                customer_id=event.customer_id,
            )
            try:
                replies = self._process(event, text)
                for reply in replies:
                    self._dispatcher.send(event.tenant_id, event.customer_id, reply)
            finally:
                clear_request_context()
        return replies

    def _process(self, event: InboundEvent, text: str) -> list[str]:
        state = self._store.get(event.tenant_id, event.customer_id) or ConversationState()
        if event.contact_name and not state.customer_name:
            state.customer_name = event.contact_name
        previous_step = state.step
        set_request_context(step=previous_step.value)
        turn = _Turn(state)
        normalized = normalize_text(text)

        db = self._session_factory()
        try:
            if normalized in CANCEL_WORDS:
                turn.abort(msg.CANCELLED_TEXT)
            else:
                self._handlers[state.step](db, event, turn, text, normalized)
        except NotFoundError as exc:
            db.rollback()
            logger.warning("conversation aborted: %s", exc.message, extra={"step": previous_step.value})
            turn = _Turn(state)
            turn.abort(msg.NOT_FOUND_TEXT)
        except DomainError as exc:
            db.rollback()
            logger.warning("conversation aborted: %s", exc.message, extra={"step": previous_step.value})
            turn = _Turn(state)
            turn.abort(msg.domain_error_text(exc.message))
        except Exception:
            db.rollback()
            logger.exception("conversation step failed", extra={"step": previous_step.value})
            # el estado guardado queda como estaba; el cliente puede reintentar el mismo paso
            return [msg.TEMPORARY_ERROR_TEXT]
        finally:
            db.close()

        if turn.clear or (state.step == Step.IDLE and not state.cart):
            self._store.delete(event.tenant_id, event.customer_id)
        else:
            self._store.set(event.tenant_id, event.customer_id, state)

        if state.step != previous_step or turn.clear:
            logger.info(
                "conversation %s -> %s",
                previous_step.value,
                Step.IDLE.value if turn.clear else state.step.value,
                extra={"step": state.step.value},
            )
        return turn.replies

    # idle

    def _on_idle(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        if normalized in HELP_WORDS:
            turn.say(msg.HELP_TEXT)
            return
        if normalized.startswith(GREETINGS):
            turn.say(msg.GREETING_TEXT)
            return

        tokens = set(normalized.split())
        if tokens & ORDER_WORDS:
            if self._start_order(db, event, turn):
                turn.say(msg.start_order_text(turn.state.products))
            return
        if tokens & MENU_WORDS:
            products = self._load_products(db, event, turn)
            if products is not None:
                turn.say(msg.menu_text(products))
            return

        # un número suelto arranca el pedido y elige ese producto en la misma transición
        if _parse_int(normalized) is not None:
            if not self._start_order(db, event, turn):
                return
            product = _pick(turn.state.products, normalized)
            if product is None:
                turn.say(msg.start_order_text(turn.state.products))
                return
            self._select_product(turn, product)
            return

        turn.say(msg.FALLBACK_TEXT)

    def _load_products(self, db: Session, event: InboundEvent, turn: _Turn) -> list[dict] | None:
        try:
            products = list_available_products(db, event.tenant_id)
        except Exception:
            db.rollback()
            logger.exception("menu load failed")
            turn.say(msg.MENU_UNAVAILABLE_TEXT)
            return None
        return [product.to_dict() for product in products]

    def _start_order(self, db: Session, event: InboundEvent, turn: _Turn) -> bool:
        products = self._load_products(db, event, turn)
        if products is None:
            return False
        if not products:
            turn.say(msg.NO_PRODUCTS_ORDER_TEXT)
            return False
        turn.state.products = products
        turn.state.step = Step.SELECTING_PRODUCT
        return True

    # armado del carrito

    def _select_product(self, turn: _Turn, product: dict) -> None:
        turn.state.current_product = product
        turn.state.current_quantity = None
        turn.state.step = Step.SELECTING_QUANTITY
        turn.say(msg.product_selected_text(product))

    def _on_selecting_product(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        product = _pick(turn.state.products, normalized)
        if product is None:
            turn.say(msg.invalid_index_text(len(turn.state.products)))
            return
        self._select_product(turn, product)

    def _on_selecting_quantity(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        state = turn.state
        quantity = _parse_int(normalized)
        if quantity is None or not 1 <= quantity <= msg.MAX_QUANTITY:
            turn.say(msg.INVALID_QUANTITY_TEXT)
            return

        state.current_quantity = quantity
        state.cart.append(
            {
                "product": state.current_product,
                "quantity": quantity,
                "customizations": [],
                "extras": [],
                "notes": None,
            }
        )
        added = msg.added_to_cart_text(state.current_product, quantity)

        extras = list_active_extras(db, event.tenant_id)
        if extras:
            state.available_extras = [extra.to_dict() for extra in extras]
            state.step = Step.SELECTING_EXTRAS
            turn.say(f"{added}\n\n{msg.extras_text(state.available_extras)}")
            return
        state.available_extras = []
        state.step = Step.ASKING_CUSTOMIZATION
        turn.say(f"{added}\n\n{msg.ASK_CUSTOMIZATION_TEXT}")

    def _on_selecting_extras(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        state = turn.state
        if normalized in DONE_WORDS:
            state.step = Step.ASKING_CUSTOMIZATION
            turn.say(msg.ASK_CUSTOMIZATION_TEXT)
            return

        extra = _pick(state.available_extras, normalized)
        if extra is None:
            turn.say(msg.invalid_index_text(len(state.available_extras)))
            return

        item = state.current_item
        for selected in item["extras"]:
            if selected["extra"]["id"] == extra["id"]:
                selected["quantity"] += 1
                quantity = selected["quantity"]
                break
        else:
            item["extras"].append({"extra": extra, "quantity": 1})
            quantity = 1
        turn.say(msg.extra_added_text(extra["name"], quantity))

    def _on_asking_customization(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        state = turn.state
        if normalized in YES_WORDS:
            product = ProductSnapshot.from_dict(state.current_item["product"])
            if product.is_customizable:
                state.step = Step.SELECTING_CUSTOMIZATION_TYPE
                turn.say(msg.CUSTOMIZATION_TYPE_TEXT)
                return
            state.step = Step.ASKING_MORE_PRODUCTS
            turn.say(f"{msg.NO_CUSTOMIZATION_TEXT}\n\n{msg.MORE_PRODUCTS_TEXT}")
            return
        if normalized in NO_WORDS:
            state.step = Step.ASKING_MORE_PRODUCTS
            turn.say(msg.MORE_PRODUCTS_TEXT)
            return
        turn.say(msg.YES_NO_TEXT)

    def _customization_options(self, state: ConversationState) -> list[IngredientRef]:
        product = ProductSnapshot.from_dict(state.current_item["product"])
        if state.customization_type == CUSTOMIZATION_ADD:
            return product.addable_ingredients
        return product.removable_ingredients

    def _on_selecting_customization_type(
        self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str
    ) -> None:
        state = turn.state
        if normalized in {"3"} | DONE_WORDS:
            state.customization_type = None
            state.step = Step.ASKING_MORE_PRODUCTS
            turn.say(msg.MORE_PRODUCTS_TEXT)
            return
        if normalized in {"1", "agregar"}:
            kind = CUSTOMIZATION_ADD
        elif normalized in {"2", "quitar", "sacar"}:
            kind = CUSTOMIZATION_REMOVE
        else:
            turn.say(msg.INVALID_CUSTOMIZATION_TYPE_TEXT)
            return

        state.customization_type = kind
        options = self._customization_options(state)
        if not options:
            state.customization_type = None
            turn.say(msg.no_options_for_kind_text(kind))
            return
        state.step = Step.SELECTING_CUSTOMIZATION
        turn.say(msg.customization_options_text([asdict(ref) for ref in options], kind))

    def _on_selecting_customization(
        self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str
    ) -> None:
        state = turn.state
        if normalized in DONE_WORDS:
            state.customization_type = None
            state.step = Step.SELECTING_CUSTOMIZATION_TYPE
            turn.say(msg.CUSTOMIZATION_TYPE_TEXT)
            return

        options = self._customization_options(state)
        ref = _pick(options, normalized)
        if ref is None:
            turn.say(msg.invalid_index_text(len(options)))
            return

        kind = state.customization_type
        customizations = state.current_item["customizations"]
        already = any(
            entry["ingredient_id"] == ref.ingredient_id and entry["type"] == kind for entry in customizations
        )
        if not already:
            customizations.append(
                {
                    "ingredient_id": ref.ingredient_id,
                    "ingredient_name": ref.name,
                    "type": kind,
                    "extra_price": ref.extra_price if kind == CUSTOMIZATION_ADD else 0.0,
                }
            )
        turn.say(msg.customization_applied_text(ref.name, kind))

    def _on_asking_more_products(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        state = turn.state
        if normalized in YES_WORDS:
            state.current_product = None
            state.current_quantity = None
            state.available_extras = []
            state.customization_type = None
            if self._start_order(db, event, turn):
                turn.say(msg.start_order_text(state.products))
            return
        if normalized not in NO_WORDS:
            turn.say(msg.YES_NO_TEXT)
            return

        turn.say(msg.cart_text(cart_to_order_items(state.cart)))
        capabilities = get_tenant_capabilities(db, event.tenant_id)
        if capabilities.has_delivery and capabilities.has_pickup:
            state.step = Step.SELECTING_ORDER_TYPE
            turn.say(msg.ORDER_TYPE_TEXT)
        elif capabilities.has_delivery:
            self._begin_delivery(db, event, turn)
        else:
            self._begin_pickup(turn)

    # entrega

    def _begin_delivery(self, db: Session, event: InboundEvent, turn: _Turn) -> None:
        state = turn.state
        state.order_type = st.ORDER_TYPE_DELIVERY
        state.selected_zone = None
        zones = list_active_delivery_zones(db, event.tenant_id)
        if zones:
            state.zones = [zone.to_dict() for zone in zones]
            state.step = Step.SELECTING_DELIVERY_ZONE
            turn.say(msg.zones_text(state.zones))
            return
        state.zones = []
        state.step = Step.AWAITING_ADDRESS
        turn.say(msg.ADDRESS_PROMPT_TEXT)

    def _begin_pickup(self, turn: _Turn) -> None:
        state = turn.state
        state.order_type = st.ORDER_TYPE_PICKUP
        state.selected_zone = None
        state.delivery_address = None
        state.delivery_notes = None
        state.step = Step.SELECTING_PAYMENT
        turn.say(msg.payment_prompt_text(state.order_type, None, 0))

    def _on_selecting_order_type(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        if normalized in {"1", "delivery", "envio"}:
            self._begin_delivery(db, event, turn)
        elif normalized in {"2", "retiro", "retirar", "pickup"}:
            self._begin_pickup(turn)
        else:
            turn.say(msg.INVALID_ORDER_TYPE_TEXT)

    def _on_selecting_delivery_zone(
        self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str
    ) -> None:
        state = turn.state
        zone = _pick(state.zones, normalized)
        if zone is None:
            turn.say(msg.invalid_index_text(len(state.zones)))
            return
        state.selected_zone = zone
        state.step = Step.AWAITING_ADDRESS
        turn.say(msg.zone_selected_text(zone))

    def _on_awaiting_address(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        if len(text) < MIN_ADDRESS_LENGTH:
            turn.say(msg.SHORT_ADDRESS_TEXT)
            return
        turn.state.delivery_address = text
        turn.state.step = Step.AWAITING_DELIVERY_NOTES
        turn.say(msg.NOTES_PROMPT_TEXT)

    def _on_awaiting_delivery_notes(
        self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str
    ) -> None:
        state = turn.state
        if normalized in SKIP_NOTES_WORDS:
            state.delivery_notes = None
        elif len(text) < MIN_NOTES_LENGTH:
            turn.say(msg.SHORT_NOTES_TEXT)
            return
        else:
            state.delivery_notes = text
        state.step = Step.SELECTING_PAYMENT
        turn.say(msg.payment_prompt_text(state.order_type, state.delivery_address, state.delivery_cost))

    # pago y confirmación

    def _on_selecting_payment(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        state = turn.state
        if normalized in {"1", "efectivo"}:
            state.payment_method = st.PAYMENT_CASH
        elif normalized in {"2", "transferencia"}:
            state.payment_method = st.PAYMENT_TRANSFER
        else:
            turn.say(msg.INVALID_PAYMENT_TEXT)
            return

        items = cart_to_order_items(state.cart)
        if not self._stock_available(db, event, turn, items):
            return
        state.step = Step.CONFIRMING_ORDER
        turn.say(
            msg.summary_text(
                items,
                state.order_type,
                state.delivery_address,
                state.delivery_cost,
                state.payment_method,
            )
        )

    def _stock_available(self, db: Session, event: InboundEvent, turn: _Turn, items: list[dict]) -> bool:
        result = verify(db, items, event.tenant_id, fail_closed=self._fail_closed)
        if result.ok:
            return True
        logger.info("order blocked by stock: %s", "; ".join(result.issues))
        turn.abort(msg.stock_issues_text(result.issues))
        return False

    def _on_confirming_order(self, db: Session, event: InboundEvent, turn: _Turn, text: str, normalized: str) -> None:
        if normalized not in CONFIRM_WORDS:
            turn.say(msg.CONFIRM_REPROMPT_TEXT)
            return
        self._place_order(db, event, turn)

    def _place_order(self, db: Session, event: InboundEvent, turn: _Turn) -> None:
        state = turn.state
        # pase lo que pase el carrito se descarta; no hay reintento silencioso
        turn.clear = True

        items = cart_to_order_items(state.cart)
        if not self._stock_available(db, event, turn, items):
            return

        zone = state.selected_zone or {}
        data = {
            "customer_name": state.customer_name or CUSTOMER_FALLBACK_NAME,
            "customer_phone": event.customer_id,
            "channel_chat_id": event.customer_id,
            "items": items,
            "order_type": state.order_type,
            "delivery_address": state.delivery_address,
            "delivery_zone_id": zone.get("id"),
            "delivery_zone_name": zone.get("name"),
            "delivery_notes": state.delivery_notes,
            "delivery_cost": state.delivery_cost,
            "payment_method": state.payment_method,
        }
        try:
            order = create_order(db, event.tenant_id, data)
        except DomainError as exc:
            turn.say(msg.order_failed_text(exc.message))
            return
        except Exception:
            logger.exception("order create from conversation failed")
            turn.say(msg.ORDER_ERROR_TEXT)
            return

        turn.say(msg.order_confirmed_text(format_order_number(order.id), state.order_type))
