import os

from dotenv import load_dotenv

load_dotenv()

# Backends (default to localhost; override with env vars when deployed)
API_URL = os.getenv("API_URL", "http://localhost:5000/api").rstrip("/")  # restaurant REST API
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10.0"))
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*").strip()

# Cart / payment flow
CART_TTL_DAYS = int(os.getenv("CART_TTL_DAYS", "7"))
PAYMENT_POLL_INTERVAL = float(os.getenv("PAYMENT_POLL_INTERVAL", "3.0"))
PAYMENT_CANCEL_GRACE = float(os.getenv("PAYMENT_CANCEL_GRACE", "10.0"))
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "EGP")
PAYMENT_METHOD = os.getenv("PAYMENT_METHOD", "easykash")
PUBLIC_URL = os.getenv("PUBLIC_URL", "http://localhost:3000").rstrip("/")

# i18n
DEFAULT_LANG = os.getenv("DEFAULT_LANG", "ar")
SUPPORTED_LANGS = ("ar", "en")

# Contact / third parties (only surfaced to the front end)
WHATSAPP_NUMBER = os.getenv("WHATSAPP_NUMBER", "")
SUPPORT_PHONE = os.getenv("SUPPORT_PHONE", "17533")
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
FACEBOOK_APP_ID = os.getenv("FACEBOOK_APP_ID", "")
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")

# Shopper sessions
STORAGE_DIR = os.getenv("STORAGE_DIR", "")  # empty -> carts kept in memory
SESSION_COOKIE = os.getenv("SESSION_COOKIE", "storefront_session")
SESSION_IDLE_MINUTES = int(os.getenv("SESSION_IDLE_MINUTES", str(24 * 60)))  # evicted from memory after this

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
