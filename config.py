import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent
TEMPLATES_DIR = BASE_DIR / "templates"
DB_PATH = Path(os.getenv("DB_PATH", str(BASE_DIR / "base.sqlite")))

DOMAIN = os.getenv("DOMAIN", "example.com")

SESSION_DURATION = int(os.getenv("SESSION_DURATION", "1800"))
LOGIN_TIMEOUT = float(os.getenv("LOGIN_TIMEOUT", "10"))
LOGIN_EVENT_MAX_AGE = int(os.getenv("LOGIN_EVENT_MAX_AGE", "60"))
MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
LOCKOUT_DURATION = int(os.getenv("LOCKOUT_DURATION", "900"))
RATE_LIMIT_ACTIONS = int(os.getenv("RATE_LIMIT_ACTIONS", "10"))
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "3600"))
SWEEP_INTERVAL = float(os.getenv("SWEEP_INTERVAL", "300"))

HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))
RELAY_TIMEOUT = float(os.getenv("RELAY_TIMEOUT", "5"))
DEFAULT_RELAY = os.getenv("DEFAULT_RELAY", "wss://relay.damus.io")

_popular_raw = os.getenv("POPULAR_RELAYS", "")
if _popular_raw:
    POPULAR_RELAYS = [r.strip() for r in _popular_raw.split(",") if r.strip()]
else:
    POPULAR_RELAYS = [
        "wss://relay.damus.io",
        "wss://nos.lol",
        "wss://relay.nostr.band",
        "wss://relay.nostr.bg",
        "wss://relay.nostr.land",
        "wss://relay.nostr.ws",
    ]

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS:
    origins = [f"https://{DOMAIN}"] if DOMAIN != "example.com" else []
    origins.append("http://localhost")
    origins.append("http://localhost:8000")
    origins.append("http://127.0.0.1")
    origins.append("http://127.0.0.1:8000")
    ALLOWED_ORIGINS = origins

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() == "true"
if DOMAIN in ("example.com", "localhost") or "localhost" in DOMAIN or "127.0.0.1" in DOMAIN:
    COOKIE_SECURE = False
