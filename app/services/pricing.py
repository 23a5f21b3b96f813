from __future__ import annotations

from typing import Any, Iterable, Mapping

from app.core.config import CURRENCY_SYMBOL

CUSTOMIZATION_ADD = "agregar"
CUSTOMIZATION_REMOVE = "quitar"


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def customizations_total(customizations: Iterable[Mapping[str, Any]]) -> float:
    """Solo los agregados suman; quitar un ingrediente no descuenta precio."""
    return sum(
        _to_float(entry.get("extra_price"))
        for entry in customizations or []
        if entry.get("type") == CUSTOMIZATION_ADD
    )


def extras_total(extras: Iterable[Mapping[str, Any]]) -> float:
    return sum(
        _to_float(entry.get("unit_price")) * int(entry.get("quantity") or 0)
        for entry in extras or []
    )


def item_total(item: Mapping[str, Any]) -> float:
    unit = _to_float(item.get("unit_price"))
    unit += customizations_total(item.get("customizations") or [])
    unit += extras_total(item.get("extras") or [])
    return unit * int(item.get("quantity") or 0)


def calculate_totals(items: Iterable[Mapping[str, Any]], delivery_cost: float = 0) -> tuple[float, float]:
    subtotal = sum(item_total(item) for item in items)
    return subtotal, subtotal + _to_float(delivery_cost)


def format_price(value: float) -> str:
    amount = _to_float(value)
    if amount == int(amount):
        formatted = f"{int(amount):,}"
    else:
        formatted = f"{amount:,.2f}"
    # separadores es-AR: punto para miles, coma para decimales
    formatted = formatted.replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{CURRENCY_SYMBOL}{formatted}"
