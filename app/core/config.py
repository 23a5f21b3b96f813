import os
from dotenv import load_dotenv

# Carga el .env de la raíz del proyecto
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./burger_orders.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_WA_VERIFY_TOKEN = os.getenv("META_WA_VERIFY_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
WHATSAPP_HTTP_TIMEOUT_SECONDS = float(os.getenv("WHATSAPP_HTTP_TIMEOUT_SECONDS", "20"))

# Conversación
CONVERSATION_TTL_SECONDS = int(os.getenv("CONVERSATION_TTL_SECONDS", "1800"))
CONVERSATION_STORE = os.getenv("CONVERSATION_STORE", "memory").strip().lower()
STOCK_CHECK_FAIL_CLOSED = _env_flag("STOCK_CHECK_FAIL_CLOSED", "1")

ESTIMATED_TIME_DELIVERY = os.getenv("ESTIMATED_TIME_DELIVERY", "40-50 min")
ESTIMATED_TIME_PICKUP = os.getenv("ESTIMATED_TIME_PICKUP", "20-30 min")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "$")

# Auto-cierre de caja
AUTO_CLOSE_ENABLED = _env_flag("AUTO_CLOSE_ENABLED", "0" if IS_TEST else "1")
AUTO_CLOSE_HOUR = int(os.getenv("AUTO_CLOSE_HOUR", "3"))
AUTO_CLOSE_CHECK_INTERVAL_SECONDS = int(os.getenv("AUTO_CLOSE_CHECK_INTERVAL_SECONDS", "3600"))

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
