from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class CustomizationIn(BaseModel):
    ingredient_id: int
    ingredient_name: str = ""
    type: Literal["agregar", "quitar"]
    extra_price: float = Field(0, ge=0)


class ExtraIn(BaseModel):
    extra_id: int
    name: str = ""
    unit_price: float = Field(0, ge=0)
    quantity: int = Field(1, ge=1)


class OrderItemIn(BaseModel):
    product_id: int
    product_name: str = ""
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    customizations: List[CustomizationIn] = []
    extras: List[ExtraIn] = []
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = Field(..., min_length=1)
    channel_chat_id: Optional[str] = None
    items: List[OrderItemIn] = Field(..., min_length=1)
    order_type: Literal["delivery", "pickup"]
    delivery_address: Optional[str] = None
    delivery_zone_id: Optional[int] = None
    delivery_zone_name: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_cost: float = Field(0, ge=0)
    payment_method: Literal["efectivo", "transferencia"]
    payment_status: Optional[str] = None
    notes: Optional[str] = None
    # pendiente_pago cuando el pago se captura antes de que cocina lo vea
    awaiting_payment: bool = False


class OrderUpdate(BaseModel):
    status: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_notes: Optional[str] = None
    delivery_person_id: Optional[str] = None
    delivery_person_cost: Optional[float] = Field(None, ge=0)
    delivery_cost: Optional[float] = Field(None, ge=0)
    payment_status: Optional[str] = None
    notes: Optional[str] = None


class OrderCancel(BaseModel):
    reason: Optional[str] = None
