"""Textos que el bot envía por WhatsApp.

Cada función devuelve el mensaje listo para mandar; el formato (*negrita*,
_cursiva_) es el de WhatsApp.
"""
from __future__ import annotations

from typing import Any, Mapping, Sequence

from app.core.config import ESTIMATED_TIME_DELIVERY, ESTIMATED_TIME_PICKUP
from app.services.order_status import ORDER_TYPE_DELIVERY, PAYMENT_CASH
from app.services.pricing import CUSTOMIZATION_ADD, calculate_totals, format_price

MAX_QUANTITY = 10

HELP_TEXT = "\n".join(
    [
        "🍔 *BurgerFlow* - Sistema de Pedidos",
        "",
        "Comandos disponibles:",
        "• *menu* - Ver esta ayuda",
        "• *hamburguesas* - Ver el menú disponible",
        "• *pedir* - Iniciar un nuevo pedido",
        "• *cancelar* - Cancelar el pedido actual",
        "",
        "También puedes escribirnos libremente y te ayudaremos con tu pedido.",
    ]
)

GREETING_TEXT = (
    "¡Hola! 🍔 Bienvenido a *BurgerFlow*\n\n"
    "Escribe *hamburguesas* para ver nuestro menú o *pedir* para hacer tu pedido."
)

FALLBACK_TEXT = (
    "No entendí tu mensaje. 🤔\n\n"
    "Escribe *menu* para ver las opciones o *pedir* para hacer un pedido."
)

CANCELLED_TEXT = "Pedido cancelado. Escribe *pedir* para comenzar uno nuevo."
MENU_UNAVAILABLE_TEXT = "No pudimos cargar el menú. Intenta más tarde."
NO_PRODUCTS_TEXT = "No hay productos disponibles en este momento."
NO_PRODUCTS_ORDER_TEXT = "Lo sentimos, no hay productos disponibles en este momento. Intenta más tarde."
INVALID_QUANTITY_TEXT = f"Por favor, escribe una cantidad válida (1-{MAX_QUANTITY})."
YES_NO_TEXT = "Por favor, responde *si* o *no*."
NO_CUSTOMIZATION_TEXT = "Este producto no tiene opciones de personalización disponibles."
INVALID_ORDER_TYPE_TEXT = "Por favor, escribe *1* para delivery o *2* para retiro en local."
SHORT_ADDRESS_TEXT = "Por favor, escribe una dirección más completa para poder enviarte el pedido."
SHORT_NOTES_TEXT = (
    "Por favor, escribe una referencia un poco más detallada (mínimo 5 caracteres) "
    "o *no* si no hace falta."
)
INVALID_PAYMENT_TEXT = "Por favor, escribe *1* para efectivo o *2* para transferencia."
CONFIRM_REPROMPT_TEXT = "Escribe *confirmar* para realizar el pedido o *cancelar* para cancelar."
ORDER_ERROR_TEXT = "Hubo un problema al procesar tu pedido. Por favor, intenta nuevamente."
NOT_FOUND_TEXT = (
    "Lo sentimos, algo de tu pedido ya no está disponible. "
    "Escribe *pedir* para empezar de nuevo."
)
EMPTY_CART_TEXT = "Tu carrito está vacío."
TEMPORARY_ERROR_TEXT = "Tuvimos un problema técnico. Por favor, intenta nuevamente en unos minutos."
INVALID_CUSTOMIZATION_TYPE_TEXT = "Por favor, escribe *1* para agregar, *2* para quitar o *3* para continuar."

ASK_CUSTOMIZATION_TEXT = (
    "¿Deseas personalizar este producto? (quitar/agregar ingredientes)\n\n"
    "Responde *si* o *no*."
)

MORE_PRODUCTS_TEXT = (
    "¿Deseas agregar otro producto?\n\n"
    "Responde *si* para agregar más o *no* para continuar con el pedido."
)

ORDER_TYPE_TEXT = (
    "¿Cómo deseas recibir tu pedido?\n\n"
    "*1.* Delivery (envío a domicilio)\n"
    "*2.* Retiro en local"
)

ADDRESS_PROMPT_TEXT = (
    "Por favor, escribe tu *dirección completa* para el envío.\n\n"
    "_(Calle, número, piso/depto, barrio/localidad)_"
)

NOTES_PROMPT_TEXT = (
    "¿Alguna referencia para el repartidor? (portón, timbre, entre calles)\n\n"
    "Escribe *no* si no hace falta."
)

PAYMENT_OPTIONS_TEXT = "¿Cómo deseas pagar?\n\n*1.* Efectivo\n*2.* Transferencia"

CUSTOMIZATION_TYPE_TEXT = (
    "¿Qué deseas hacer?\n\n"
    "*1.* Agregar ingredientes\n"
    "*2.* Quitar ingredientes\n"
    "*3.* Listo, continuar"
)


def invalid_index_text(count: int) -> str:
    return f"Por favor, escribe un número válido entre 1 y {count}."


def _product_lines(products: Sequence[Mapping[str, Any]]) -> list[str]:
    lines = []
    for index, product in enumerate(products, start=1):
        lines.append(f"*{index}.* {product['name']} - {format_price(product['price'])}")
        if product.get("description"):
            lines.append(f"   _{product['description']}_")
    return lines


def menu_text(products: Sequence[Mapping[str, Any]]) -> str:
    if not products:
        return NO_PRODUCTS_TEXT
    lines = ["🍔 *Nuestro Menú*", ""]
    lines.extend(_product_lines(products))
    lines.extend(["", "Escribe *pedir* para hacer tu pedido."])
    return "\n".join(lines)


def start_order_text(products: Sequence[Mapping[str, Any]]) -> str:
    lines = ["🍔 *Nuestro Menú*", ""]
    lines.extend(_product_lines(products))
    lines.extend(
        [
            "",
            "Escribe el *número* del producto que deseas agregar.",
            "Escribe *cancelar* para salir.",
        ]
    )
    return "\n".join(lines)


def product_selected_text(product: Mapping[str, Any]) -> str:
    return f"Seleccionaste *{product['name']}* ({format_price(product['price'])})\n\n¿Cuántas unidades deseas?"


def extras_text(extras: Sequence[Mapping[str, Any]]) -> str:
    lines = ["¿Deseas sumar algún extra?", ""]
    for index, extra in enumerate(extras, start=1):
        lines.append(f"*{index}.* {extra['name']} +{format_price(extra['price'])}")
    lines.extend(["", "Escribe el número del extra o *no* para continuar."])
    return "\n".join(lines)


def extra_added_text(name: str, quantity: int) -> str:
    return (
        f"Agregaste *{name}* (x{quantity}).\n\n"
        "Escribe otro número para sumar más extras o *listo* para continuar."
    )


def added_to_cart_text(product: Mapping[str, Any], quantity: int) -> str:
    return f"Agregaste {quantity}x *{product['name']}* al carrito."


def customization_options_text(options: Sequence[Mapping[str, Any]], kind: str) -> str:
    header = "Ingredientes que puedes agregar:" if kind == CUSTOMIZATION_ADD else "Ingredientes que puedes quitar:"
    lines = [header, ""]
    for index, option in enumerate(options, start=1):
        price = option.get("extra_price") or 0
        suffix = f" +{format_price(price)}" if kind == CUSTOMIZATION_ADD and price > 0 else ""
        lines.append(f"*{index}.* {option['name']}{suffix}")
    lines.extend(["", "Escribe el número de la opción o *listo* para continuar."])
    return "\n".join(lines)


def no_options_for_kind_text(kind: str) -> str:
    if kind == CUSTOMIZATION_ADD:
        return "Este producto no tiene ingredientes para agregar.\n\n" + CUSTOMIZATION_TYPE_TEXT
    return "Este producto no tiene ingredientes para quitar.\n\n" + CUSTOMIZATION_TYPE_TEXT


def customization_applied_text(name: str, kind: str) -> str:
    verb = "Agregaste" if kind == CUSTOMIZATION_ADD else "Quitaste"
    return f"{verb} *{name}*.\n\nEscribe otro número para más cambios o *listo* para continuar."


def zones_text(zones: Sequence[Mapping[str, Any]]) -> str:
    lines = ["¿En qué zona estás?", ""]
    for index, zone in enumerate(zones, start=1):
        lines.append(f"*{index}.* {zone['name']} - envío {format_price(zone['price'])}")
    lines.extend(["", "Escribe el *número* de tu zona."])
    return "\n".join(lines)


def zone_selected_text(zone: Mapping[str, Any]) -> str:
    return f"Zona *{zone['name']}* (envío {format_price(zone['price'])}).\n\n{ADDRESS_PROMPT_TEXT}"


def payment_prompt_text(order_type: str | None, address: str | None, delivery_cost: float) -> str:
    if order_type == ORDER_TYPE_DELIVERY:
        return (
            f"Dirección registrada: *{address}*\n"
            f"Costo de envío: {format_price(delivery_cost)}\n\n"
            f"{PAYMENT_OPTIONS_TEXT}"
        )
    return f"Perfecto, retiro en local.\n\n{PAYMENT_OPTIONS_TEXT}"


def _item_detail(item: Mapping[str, Any]) -> str | None:
    parts = []
    for customization in item.get("customizations") or []:
        sign = "+" if customization["type"] == CUSTOMIZATION_ADD else "-"
        parts.append(f"{sign} {customization['ingredient_name']}")
    for extra in item.get("extras") or []:
        parts.append(f"+ {extra['quantity']}x {extra['name']}")
    if not parts:
        return None
    return f"   _{', '.join(parts)}_"


def cart_text(items: Sequence[Mapping[str, Any]]) -> str:
    """Carrito en formato de pedido (ítems ya normalizados con item_total)."""
    if not items:
        return EMPTY_CART_TEXT
    lines = ["🛒 *Tu Pedido*", ""]
    for index, item in enumerate(items, start=1):
        lines.append(
            f"{index}. {item['quantity']}x {item['product_name']} - {format_price(item['item_total'])}"
        )
        detail = _item_detail(item)
        if detail:
            lines.append(detail)
    subtotal, _ = calculate_totals(items)
    lines.extend(["", f"*Total: {format_price(subtotal)}*"])
    return "\n".join(lines)


def summary_text(
    items: Sequence[Mapping[str, Any]],
    order_type: str | None,
    address: str | None,
    delivery_cost: float,
    payment_method: str | None,
) -> str:
    _, total = calculate_totals(items, delivery_cost)
    if order_type == ORDER_TYPE_DELIVERY:
        destination = f"🚗 Delivery a: {address}"
    else:
        destination = "🏪 Retiro en local"
    payment = "💵 Efectivo" if payment_method == PAYMENT_CASH else "💳 Transferencia"
    return (
        "📋 *Resumen de tu pedido*\n\n"
        f"{cart_text(items)}\n\n"
        f"{destination}\n"
        f"Envío: {format_price(delivery_cost)}\n"
        f"Pago: {payment}\n\n"
        f"*TOTAL: {format_price(total)}*\n\n"
        "¿Confirmamos el pedido?\n\n"
        "Responde *confirmar* o *cancelar*."
    )


def stock_issues_text(issues: Sequence[str]) -> str:
    lines = ["⚠️ No podemos tomar tu pedido en este momento:", ""]
    lines.extend(f"• {issue}" for issue in issues)
    lines.extend(["", "Tu carrito fue descartado. Escribe *pedir* para armar uno nuevo."])
    return "\n".join(lines)


def order_confirmed_text(order_number: str, order_type: str | None) -> str:
    estimated = ESTIMATED_TIME_DELIVERY if order_type == ORDER_TYPE_DELIVERY else ESTIMATED_TIME_PICKUP
    return (
        "✅ *¡Pedido confirmado!*\n\n"
        f"Número de pedido: *#{order_number}*\n\n"
        f"Tiempo estimado: {estimated}\n\n"
        "Te avisaremos cuando tu pedido esté listo. ¡Gracias por elegirnos! 🍔"
    )


def order_failed_text(message: str) -> str:
    return f"No se pudo crear el pedido: {message}"


def domain_error_text(message: str) -> str:
    return f"{message}\n\nEscribe *pedir* para empezar de nuevo."
