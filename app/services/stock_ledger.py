from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Mapping

from sqlalchemy.orm import Session

from app.core.errors import InsufficientStockError, NotFoundError, ValidationError
from app.models.inventory import (
    MOVEMENT_ADJUST,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_TYPES,
    Ingredient,
    StockMovement,
)
from app.services.catalog import ExtraSnapshot, ProductSnapshot, get_extras_by_ids, get_product_by_id
from app.services.pricing import CUSTOMIZATION_ADD

logger = logging.getLogger(__name__)


def get_ingredient(db: Session, tenant_id: int, ingredient_id: int) -> Ingredient:
    ingredient = (
        db.query(Ingredient)
        .filter(Ingredient.id == ingredient_id, Ingredient.tenant_id == tenant_id)
        .first()
    )
    if not ingredient:
        raise NotFoundError("Ingrediente no encontrado.")
    return ingredient


def list_ingredients(db: Session, tenant_id: int) -> list[Ingredient]:
    return (
        db.query(Ingredient)
        .filter(Ingredient.tenant_id == tenant_id)
        .order_by(Ingredient.name.asc())
        .all()
    )


def list_low_stock(db: Session, tenant_id: int) -> list[Ingredient]:
    return (
        db.query(Ingredient)
        .filter(
            Ingredient.tenant_id == tenant_id,
            Ingredient.is_active.is_(True),
            Ingredient.stock <= Ingredient.min_stock,
        )
        .order_by(Ingredient.name.asc())
        .all()
    )


def item_requirements(
    product: ProductSnapshot,
    item: Mapping[str, Any],
    extras: Mapping[int, ExtraSnapshot],
) -> dict[int, float]:
    """Ingredientes que consume un ítem del carrito/pedido, ya multiplicados por su cantidad."""
    quantity = int(item.get("quantity") or 0)
    required: dict[int, float] = defaultdict(float)
    if quantity <= 0:
        return required

    for ref in product.ingredients:
        if ref.quantity > 0:
            required[ref.ingredient_id] += ref.quantity * quantity

    for customization in item.get("customizations") or []:
        if customization.get("type") == CUSTOMIZATION_ADD:
            required[int(customization["ingredient_id"])] += quantity

    for selected in item.get("extras") or []:
        extra = extras.get(int(selected["extra_id"]))
        if not extra or not extra.linked_ingredient_id:
            continue
        consumption = extra.stock_consumption * int(selected.get("quantity") or 0) * quantity
        if consumption > 0:
            required[extra.linked_ingredient_id] += consumption

    return required


def _extra_ids(items: Iterable[Mapping[str, Any]]) -> list[int]:
    return [int(extra["extra_id"]) for item in items for extra in item.get("extras") or []]


def accumulate_requirements(db: Session, tenant_id: int, items: list[Mapping[str, Any]]) -> dict[int, float]:
    """Suma lo que consume el pedido completo usando la receta actual de cada producto."""
    extras = get_extras_by_ids(db, tenant_id, _extra_ids(items))
    totals: dict[int, float] = defaultdict(float)
    for item in items:
        product = get_product_by_id(db, tenant_id, int(item["product_id"]))
        for ingredient_id, quantity in item_requirements(product, item, extras).items():
            totals[ingredient_id] += quantity
    return dict(totals)


def net_debits_for_order(db: Session, tenant_id: int, order_id: int) -> dict[int, float]:
    """Lo que el pedido descontó y todavía no se devolvió, por ingrediente."""
    movements = (
        db.query(StockMovement)
        .filter(StockMovement.tenant_id == tenant_id, StockMovement.order_id == order_id)
        .all()
    )
    net: dict[int, float] = defaultdict(float)
    for movement in movements:
        if movement.type == MOVEMENT_OUT:
            net[movement.ingredient_id] += movement.quantity
        elif movement.type == MOVEMENT_IN:
            net[movement.ingredient_id] -= movement.quantity
    return {ingredient_id: qty for ingredient_id, qty in net.items() if qty > 0}


def apply_movements(
    db: Session,
    tenant_id: int,
    requirements: Mapping[int, float],
    movement_type: str,
    reason: str | None,
    order_id: int | None = None,
) -> list[StockMovement]:
    """Aplica un lote de movimientos; si uno falla no se aplica ninguno.

    Hace flush pero no commit: el llamador decide la transacción (por ejemplo,
    junto con el cambio de estado del pedido).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("Tipo de movimiento inválido.")
    if not requirements:
        return []

    ingredient_ids = sorted(requirements)
    ingredients = (
        db.query(Ingredient)
        .filter(Ingredient.tenant_id == tenant_id, Ingredient.id.in_(ingredient_ids))
        .order_by(Ingredient.id.asc())
        .with_for_update()
        .all()
    )
    by_id = {ingredient.id: ingredient for ingredient in ingredients}

    for ingredient_id in ingredient_ids:
        ingredient = by_id.get(ingredient_id)
        if ingredient is None:
            raise NotFoundError("Ingrediente no encontrado.")
        quantity = float(requirements[ingredient_id])
        if quantity < 0:
            raise ValidationError("La cantidad no puede ser negativa.")
        if movement_type == MOVEMENT_OUT and float(ingredient.stock or 0) < quantity:
            raise InsufficientStockError(ingredient.name)

    movements: list[StockMovement] = []
    for ingredient_id in ingredient_ids:
        ingredient = by_id[ingredient_id]
        quantity = float(requirements[ingredient_id])
        previous = float(ingredient.stock or 0)

        if movement_type == MOVEMENT_OUT:
            updated = (
                db.query(Ingredient)
                .filter(Ingredient.id == ingredient_id, Ingredient.stock >= quantity)
                .update({Ingredient.stock: Ingredient.stock - quantity}, synchronize_session="fetch")
            )
            if not updated:
                # otro pedido descontó entre la lectura y la escritura
                raise InsufficientStockError(ingredient.name)
            new_stock = previous - quantity
        elif movement_type == MOVEMENT_IN:
            db.query(Ingredient).filter(Ingredient.id == ingredient_id).update(
                {Ingredient.stock: Ingredient.stock + quantity}, synchronize_session="fetch"
            )
            new_stock = previous + quantity
        else:
            ingredient.stock = quantity
            new_stock = quantity

        movement = StockMovement(
            tenant_id=tenant_id,
            ingredient_id=ingredient_id,
            type=movement_type,
            quantity=quantity,
            previous_stock=previous,
            new_stock=new_stock,
            reason=reason,
            order_id=order_id,
        )
        db.add(movement)
        movements.append(movement)

    db.flush()
    logger.info(
        "stock movements applied type=%s count=%s order_id=%s",
        movement_type,
        len(movements),
        order_id,
        extra={"tenant_id": tenant_id, "order_id": order_id},
    )
    return movements


def create_manual_movement(
    db: Session,
    tenant_id: int,
    ingredient_id: int,
    movement_type: str,
    quantity: float,
    reason: str | None,
) -> StockMovement:
    movement_type = (movement_type or "").strip().lower()
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("Tipo de movimiento inválido.")
    if quantity < 0 or (movement_type != MOVEMENT_ADJUST and quantity == 0):
        raise ValidationError("La cantidad debe ser mayor que cero.")
    if movement_type == MOVEMENT_ADJUST and not (reason or "").strip():
        raise ValidationError("El motivo es obligatorio para un ajuste.")

    get_ingredient(db, tenant_id, ingredient_id)
    try:
        movements = apply_movements(
            db,
            tenant_id,
            {ingredient_id: quantity},
            movement_type,
            reason or "Movimiento manual",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    movement = movements[0]
    db.refresh(movement)
    return movement


def list_movements(
    db: Session,
    tenant_id: int,
    ingredient_id: int | None = None,
    order_id: int | None = None,
) -> list[StockMovement]:
    query = db.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if ingredient_id is not None:
        query = query.filter(StockMovement.ingredient_id == ingredient_id)
    if order_id is not None:
        query = query.filter(StockMovement.order_id == order_id)
    return query.order_by(StockMovement.id.desc()).all()
