"""Datos y armado de base reutilizables para los tests."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
import app.models  # noqa: F401
from app.models.delivery_zone import DeliveryZone
from app.models.extra import Extra
from app.models.inventory import Ingredient
from app.models.product import Product, ProductIngredient
from app.models.tenant import Tenant

TENANT_ID = 1
CUSTOMER_PHONE = "5491122334455"
NOTIFICATION_PHONE = "5491100000000"

PAN, CARNE, QUESO, CEBOLLA, BACON = 1, 2, 3, 4, 5
CLASICA, DOBLE = 1, 2
BACON_EXTRA = 1
CENTRO = 1

INGREDIENTS = [
    {"id": PAN, "name": "Pan", "stock": 50, "min_stock": 5},
    {"id": CARNE, "name": "Carne", "stock": 50, "min_stock": 5},
    {"id": QUESO, "name": "Queso", "stock": 50, "min_stock": 5},
    {"id": CEBOLLA, "name": "Cebolla", "stock": 20, "min_stock": 2},
    {"id": BACON, "name": "Bacon", "stock": 30, "min_stock": 3},
]

PRODUCTS = [
    {
        "id": CLASICA,
        "name": "Clásica",
        "price": 2500,
        "description": "Carne, queso y cebolla",
        "recipe": [
            {"ingredient_id": PAN, "quantity": 1},
            {"ingredient_id": CARNE, "quantity": 1},
            {"ingredient_id": QUESO, "quantity": 1, "is_extra": True, "extra_price": 300},
            {"ingredient_id": CEBOLLA, "quantity": 1, "is_removable": True},
        ],
    },
    {
        "id": DOBLE,
        "name": "Doble",
        "price": 3500,
        "description": None,
        "recipe": [
            {"ingredient_id": PAN, "quantity": 1},
            {"ingredient_id": CARNE, "quantity": 2},
        ],
    },
]

HAPPY_PATH_ORDER_PAYLOAD = {
    "customer_name": "Juan",
    "customer_phone": CUSTOMER_PHONE,
    "channel_chat_id": CUSTOMER_PHONE,
    "items": [
        {
            "product_id": CLASICA,
            "product_name": "Clásica",
            "unit_price": 2500,
            "quantity": 2,
            "customizations": [],
            "extras": [],
        }
    ],
    "order_type": "delivery",
    "delivery_address": "Calle Falsa 123, depto 2",
    "delivery_zone_id": CENTRO,
    "delivery_zone_name": "Centro",
    "delivery_cost": 300,
    "payment_method": "efectivo",
}

PICKUP_ORDER_PAYLOAD = {
    "customer_name": "Ana",
    "customer_phone": "5491199998888",
    "items": [
        {
            "product_id": DOBLE,
            "product_name": "Doble",
            "unit_price": 3500,
            "quantity": 1,
        }
    ],
    "order_type": "pickup",
    "payment_method": "transferencia",
}


def build_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_catalog(db, *, has_delivery=True, has_pickup=True, with_extras=True, with_zones=True) -> None:
    db.add(
        Tenant(
            id=TENANT_ID,
            name="Burger Test",
            has_delivery=has_delivery,
            has_pickup=has_pickup,
            notification_phone=NOTIFICATION_PHONE,
        )
    )
    for data in INGREDIENTS:
        db.add(Ingredient(tenant_id=TENANT_ID, unit="unidades", **data))
    for data in PRODUCTS:
        product = Product(
            id=data["id"],
            tenant_id=TENANT_ID,
            name=data["name"],
            price=data["price"],
            description=data["description"],
            available=True,
        )
        for line in data["recipe"]:
            product.ingredients.append(ProductIngredient(**line))
        db.add(product)
    if with_extras:
        db.add(
            Extra(
                id=BACON_EXTRA,
                tenant_id=TENANT_ID,
                name="Bacon extra",
                price=400,
                linked_ingredient_id=BACON,
                stock_consumption=1,
            )
        )
    if with_zones:
        db.add(DeliveryZone(id=CENTRO, tenant_id=TENANT_ID, name="Centro", price=300))
    db.commit()


def stock_of(db, ingredient_id: int) -> float:
    db.expire_all()
    return db.get(Ingredient, ingredient_id).stock


class RecordingDispatcher:
    """Reemplaza al dispatcher real: guarda cada envío en memoria."""

    def __init__(self):
        self.sent = []

    def send(self, tenant_id, to_phone, text, context=None):
        self.sent.append({"tenant_id": tenant_id, "to": to_phone, "text": text, "context": context or {}})
        return f"rec-{len(self.sent)}"

    def texts_to(self, phone):
        return [entry["text"] for entry in self.sent if entry["to"] == phone]
