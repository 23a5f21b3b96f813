"""Vista de solo lectura del catálogo de un tenant.

Todo lo que devuelve este módulo son copias inmutables (dataclasses) que se
pueden guardar tal cual en el estado de la conversación: el carrito referencia
el producto como estaba al momento de elegirlo, no la fila viva.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session, selectinload

from app.core.errors import NotFoundError
from app.models.delivery_zone import DeliveryZone
from app.models.extra import Extra
from app.models.product import Product, ProductIngredient
from app.models.tenant import Tenant


@dataclass(frozen=True)
class IngredientRef:
    ingredient_id: int
    name: str
    quantity: float
    is_removable: bool = False
    is_extra: bool = False
    extra_price: float = 0.0


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    price: float
    description: str | None = None
    ingredients: tuple[IngredientRef, ...] = field(default_factory=tuple)

    @property
    def removable_ingredients(self) -> list[IngredientRef]:
        return [ref for ref in self.ingredients if ref.is_removable]

    @property
    def addable_ingredients(self) -> list[IngredientRef]:
        return [ref for ref in self.ingredients if ref.is_extra]

    @property
    def is_customizable(self) -> bool:
        return bool(self.removable_ingredients or self.addable_ingredients)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["ingredients"] = [asdict(ref) for ref in self.ingredients]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductSnapshot":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            price=float(data.get("price") or 0),
            description=data.get("description"),
            ingredients=tuple(IngredientRef(**ref) for ref in data.get("ingredients") or []),
        )


@dataclass(frozen=True)
class ExtraSnapshot:
    id: int
    name: str
    price: float
    linked_ingredient_id: int | None = None
    stock_consumption: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtraSnapshot":
        return cls(**data)


@dataclass(frozen=True)
class ZoneSnapshot:
    id: int
    name: str
    price: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZoneSnapshot":
        return cls(**data)


@dataclass(frozen=True)
class TenantCapabilities:
    tenant_id: int
    name: str
    has_delivery: bool
    has_pickup: bool
    has_zones: bool
    has_extras: bool
    notification_phone: str | None = None


def _product_to_snapshot(product: Product) -> ProductSnapshot:
    refs = []
    for line in product.ingredients:
        ingredient = line.ingredient
        refs.append(
            IngredientRef(
                ingredient_id=line.ingredient_id,
                name=ingredient.name if ingredient else f"Ingrediente {line.ingredient_id}",
                quantity=float(line.quantity or 0),
                is_removable=bool(line.is_removable),
                is_extra=bool(line.is_extra),
                extra_price=float(line.extra_price or 0),
            )
        )
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        price=float(product.price or 0),
        description=product.description,
        ingredients=tuple(refs),
    )


def _products_query(db: Session, tenant_id: int):
    return (
        db.query(Product)
        .options(selectinload(Product.ingredients).selectinload(ProductIngredient.ingredient))
        .filter(Product.tenant_id == tenant_id)
    )


def list_available_products(db: Session, tenant_id: int) -> list[ProductSnapshot]:
    products = (
        _products_query(db, tenant_id)
        .filter(Product.available.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return [_product_to_snapshot(product) for product in products]


def get_product_by_id(db: Session, tenant_id: int, product_id: int) -> ProductSnapshot:
    product = _products_query(db, tenant_id).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Producto no encontrado.")
    return _product_to_snapshot(product)


def list_active_delivery_zones(db: Session, tenant_id: int) -> list[ZoneSnapshot]:
    zones = (
        db.query(DeliveryZone)
        .filter(DeliveryZone.tenant_id == tenant_id, DeliveryZone.is_active.is_(True))
        .order_by(DeliveryZone.name.asc(), DeliveryZone.id.asc())
        .all()
    )
    return [ZoneSnapshot(id=zone.id, name=zone.name, price=float(zone.price or 0)) for zone in zones]


def list_active_extras(db: Session, tenant_id: int) -> list[ExtraSnapshot]:
    extras = (
        db.query(Extra)
        .filter(Extra.tenant_id == tenant_id, Extra.is_active.is_(True))
        .order_by(Extra.name.asc(), Extra.id.asc())
        .all()
    )
    return [
        ExtraSnapshot(
            id=extra.id,
            name=extra.name,
            price=float(extra.price or 0),
            linked_ingredient_id=extra.linked_ingredient_id,
            stock_consumption=float(extra.stock_consumption or 0),
        )
        for extra in extras
    ]


def get_extras_by_ids(db: Session, tenant_id: int, extra_ids: list[int]) -> dict[int, ExtraSnapshot]:
    """Incluye extras desactivados: un pedido viejo sigue descontando lo que vendió."""
    if not extra_ids:
        return {}
    extras = (
        db.query(Extra)
        .filter(Extra.tenant_id == tenant_id, Extra.id.in_(set(extra_ids)))
        .all()
    )
    return {
        extra.id: ExtraSnapshot(
            id=extra.id,
            name=extra.name,
            price=float(extra.price or 0),
            linked_ingredient_id=extra.linked_ingredient_id,
            stock_consumption=float(extra.stock_consumption or 0),
        )
        for extra in extras
    }


def get_tenant(db: Session, tenant_id: int) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFoundError("Tenant no encontrado.")
    return tenant


def get_tenant_capabilities(db: Session, tenant_id: int) -> TenantCapabilities:
    tenant = get_tenant(db, tenant_id)
    has_zones = (
        db.query(DeliveryZone.id)
        .filter(DeliveryZone.tenant_id == tenant_id, DeliveryZone.is_active.is_(True))
        .first()
        is not None
    )
    has_extras = (
        db.query(Extra.id)
        .filter(Extra.tenant_id == tenant_id, Extra.is_active.is_(True))
        .first()
        is not None
    )
    return TenantCapabilities(
        tenant_id=tenant.id,
        name=tenant.name,
        has_delivery=bool(tenant.has_delivery),
        has_pickup=bool(tenant.has_pickup),
        has_zones=has_zones,
        has_extras=has_extras,
        notification_phone=tenant.notification_phone,
    )
