from app.fsm.engine import cart_to_order_items
from app.services.pricing import calculate_totals, format_price, item_total


def test_item_total_adds_customizations_and_extras_per_unit():
    item = {
        "unit_price": 2500,
        "quantity": 3,
        "customizations": [
            {"type": "agregar", "extra_price": 300},
            {"type": "quitar", "extra_price": 999},
        ],
        "extras": [{"unit_price": 400, "quantity": 2}],
    }

    assert item_total(item) == (2500 + 300 + 800) * 3


def test_totals_include_delivery_cost_once():
    items = [
        {"unit_price": 2500, "quantity": 2},
        {"unit_price": 3500, "quantity": 1},
    ]

    assert calculate_totals(items, 300) == (8500, 8800)
    assert calculate_totals([], 0) == (0, 0)


def test_format_price_uses_local_separators():
    assert format_price(5300) == "$5.300"
    assert format_price(1234567.5) == "$1.234.567,50"
    assert format_price(0) == "$0"


def test_cart_lines_become_priced_order_items():
    cart = [
        {
            "product": {"id": 1, "name": "Clásica", "price": 2500, "ingredients": []},
            "quantity": 2,
            "customizations": [
                {"ingredient_id": 3, "ingredient_name": "Queso", "type": "agregar", "extra_price": 300},
                {"ingredient_id": 3, "ingredient_name": "Queso", "type": "agregar", "extra_price": 300},
            ],
            "extras": [
                {"extra": {"id": 1, "name": "Bacon extra", "price": 400}, "quantity": 1},
                {"extra": {"id": 1, "name": "Bacon extra", "price": 400}, "quantity": 2},
            ],
            "notes": None,
        }
    ]

    [item] = cart_to_order_items(cart)

    assert item["product_name"] == "Clásica"
    assert len(item["customizations"]) == 1
    assert item["extras"] == [{"extra_id": 1, "name": "Bacon extra", "unit_price": 400.0, "quantity": 3}]
    assert item["item_total"] == (2500 + 300 + 1200) * 2
