from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class Step(str, Enum):
    IDLE = "idle"
    SELECTING_PRODUCT = "selectingProduct"
    SELECTING_QUANTITY = "selectingQuantity"
    SELECTING_EXTRAS = "selectingExtras"
    ASKING_CUSTOMIZATION = "askingCustomization"
    SELECTING_CUSTOMIZATION_TYPE = "selectingCustomizationType"
    SELECTING_CUSTOMIZATION = "selectingCustomization"
    ASKING_MORE_PRODUCTS = "askingMoreProducts"
    SELECTING_ORDER_TYPE = "selectingOrderType"
    SELECTING_DELIVERY_ZONE = "selectingDeliveryZone"
    AWAITING_ADDRESS = "awaitingAddress"
    AWAITING_DELIVERY_NOTES = "awaitingDeliveryNotes"
    SELECTING_PAYMENT = "selectingPayment"
    CONFIRMING_ORDER = "confirmingOrder"


@dataclass
class InboundEvent:
    tenant_id: int
    customer_id: str
    text: str
    contact_name: str | None = None
    message_id: str | None = None


@dataclass
class ConversationState:
    """Todo lo que hace falta para retomar la conversación desde un solo registro.

    Los productos, extras y zonas se guardan como dicts de sus snapshots para
    que el estado sea serializable a JSON tal cual.
    """

    step: Step = Step.IDLE
    cart: list[dict[str, Any]] = field(default_factory=list)
    products: list[dict[str, Any]] = field(default_factory=list)
    current_product: dict[str, Any] | None = None
    current_quantity: int | None = None
    available_extras: list[dict[str, Any]] = field(default_factory=list)
    customization_type: str | None = None
    order_type: str | None = None
    zones: list[dict[str, Any]] = field(default_factory=list)
    selected_zone: dict[str, Any] | None = None
    delivery_address: str | None = None
    delivery_notes: str | None = None
    payment_method: str | None = None
    customer_name: str | None = None

    @property
    def current_item(self) -> dict[str, Any] | None:
        return self.cart[-1] if self.cart else None

    @property
    def delivery_cost(self) -> float:
        if self.order_type != "delivery" or not self.selected_zone:
            return 0.0
        return float(self.selected_zone.get("price") or 0)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["step"] = self.step.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationState":
        known = {name for name in cls.__dataclass_fields__}
        values = {key: value for key, value in data.items() if key in known}
        values["step"] = Step(values.get("step") or Step.IDLE.value)
        return cls(**values)
