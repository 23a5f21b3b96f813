from __future__ import annotations

from app.core.errors import InvalidStatusTransitionError

PENDING_PAYMENT = "pendiente_pago"
PENDING = "pendiente"
CONFIRMED = "confirmado"
IN_PREPARATION = "en_preparacion"
READY = "listo"
ON_THE_WAY = "en_camino"
DELIVERED = "entregado"
CANCELLED = "cancelado"

ALL_STATUSES = (
    PENDING_PAYMENT,
    PENDING,
    CONFIRMED,
    IN_PREPARATION,
    READY,
    ON_THE_WAY,
    DELIVERED,
    CANCELLED,
)

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING_PAYMENT: frozenset({PENDING, CANCELLED}),
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({IN_PREPARATION, CANCELLED}),
    IN_PREPARATION: frozenset({READY}),
    READY: frozenset({ON_THE_WAY, DELIVERED}),
    ON_THE_WAY: frozenset({DELIVERED}),
    DELIVERED: frozenset(),
    CANCELLED: frozenset(),
}

# Pedidos que todavía no salieron del circuito de cocina/entrega
OPEN_STATUSES = (PENDING, CONFIRMED, IN_PREPARATION, READY, ON_THE_WAY)

# cancel_order solo opera sobre estos; pendiente_pago se rechaza por reject_payment
CANCELLABLE_STATUSES = frozenset({PENDING, CONFIRMED})

PAYMENT_CASH = "efectivo"
PAYMENT_TRANSFER = "transferencia"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_TRANSFER)

ORDER_TYPE_DELIVERY = "delivery"
ORDER_TYPE_PICKUP = "pickup"
ORDER_TYPES = (ORDER_TYPE_DELIVERY, ORDER_TYPE_PICKUP)


def can_transition(current: str, requested: str) -> bool:
    return requested in VALID_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, requested: str) -> None:
    if not can_transition(current, requested):
        raise InvalidStatusTransitionError(current, requested)
