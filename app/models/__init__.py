from app.models.tenant import Tenant
from app.models.inventory import Ingredient, StockMovement
from app.models.product import Product, ProductIngredient
from app.models.extra import Extra
from app.models.delivery_zone import DeliveryZone
from app.models.order import Order
from app.models.conversation import Conversation
from app.models.processed_message import ProcessedMessage
from app.models.whatsapp_config import WhatsAppConfig
from app.models.whatsapp_message_log import WhatsAppMessageLog
from app.models.cash_register import CashRegisterClose
