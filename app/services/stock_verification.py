from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from sqlalchemy.orm import Session

from app.core.config import STOCK_CHECK_FAIL_CLOSED
from app.models.inventory import Ingredient
from app.services.catalog import get_extras_by_ids, get_product_by_id
from app.services.stock_ledger import item_requirements

logger = logging.getLogger(__name__)


@dataclass
class StockCheckResult:
    ok: bool
    issues: list[str] = field(default_factory=list)


def verify(
    db: Session,
    cart: Sequence[Mapping[str, Any]],
    tenant_id: int,
    fail_closed: bool | None = None,
) -> StockCheckResult:
    """Compara lo que pide el carrito contra el stock actual sin tocarlo.

    Usa la receta vigente de cada producto, no la copia guardada en el carrito.
    Con ``fail_closed`` un producto, extra o ingrediente que no se puede leer
    bloquea la confirmación; sin él se registra y se ignora.
    """
    if fail_closed is None:
        fail_closed = STOCK_CHECK_FAIL_CLOSED

    issues: list[str] = []
    required: dict[int, float] = defaultdict(float)

    extra_ids = [int(extra["extra_id"]) for item in cart for extra in item.get("extras") or []]
    try:
        extras = get_extras_by_ids(db, tenant_id, extra_ids)
    except Exception:
        logger.exception("stock check: extras lookup failed", extra={"tenant_id": tenant_id})
        if fail_closed:
            return StockCheckResult(ok=False, issues=["No pudimos verificar el stock de los extras."])
        extras = {}

    for item in cart:
        product_name = item.get("product_name") or f"producto {item.get('product_id')}"
        try:
            product = get_product_by_id(db, tenant_id, int(item["product_id"]))
        except Exception:
            logger.warning(
                "stock check: product lookup failed product_id=%s",
                item.get("product_id"),
                extra={"tenant_id": tenant_id},
            )
            if fail_closed:
                issues.append(f"No pudimos verificar el stock de {product_name}.")
            continue

        if fail_closed:
            for selected in item.get("extras") or []:
                if int(selected["extra_id"]) not in extras:
                    issues.append(f"No pudimos verificar el stock de {selected.get('name', 'un extra')}.")

        for ingredient_id, quantity in item_requirements(product, item, extras).items():
            required[ingredient_id] += quantity

    for ingredient_id, quantity in sorted(required.items()):
        try:
            ingredient = (
                db.query(Ingredient)
                .filter(Ingredient.id == ingredient_id, Ingredient.tenant_id == tenant_id)
                .first()
            )
        except Exception:
            logger.exception("stock check: ingredient lookup failed ingredient_id=%s", ingredient_id)
            ingredient = None
        if ingredient is None:
            if fail_closed:
                issues.append(f"No pudimos verificar el stock del ingrediente {ingredient_id}.")
            else:
                logger.warning(
                    "stock check: ingredient %s missing, skipping",
                    ingredient_id,
                    extra={"tenant_id": tenant_id},
                )
            continue
        available = float(ingredient.stock or 0)
        if available < quantity:
            issues.append(
                f"Stock insuficiente de {ingredient.name} (disponible: {available:g}, necesario: {quantity:g})."
            )

    return StockCheckResult(ok=not issues, issues=issues)
