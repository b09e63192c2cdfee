import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).lower() in ("1", "true", "yes")

APP_ENV = _get_env("APP_ENV", "local")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

SEED_DEMO_USERS = _get_bool("SEED_DEMO_USERS", "true")

# Daily reset happens at RESET_HOUR:00 in a fixed UTC offset (JST by default)
RESET_HOUR = int(_get_env("RESET_HOUR", "5"))
RESET_UTC_OFFSET_HOURS = int(_get_env("RESET_UTC_OFFSET_HOURS", "9"))

GRID_METERS = float(_get_env("GRID_METERS", "300"))
DEFAULT_RADIUS_KM = float(_get_env("DEFAULT_RADIUS_KM", "3"))

WS_HEARTBEAT_SECONDS = float(_get_env("WS_HEARTBEAT_SECONDS", "25"))
SUBSCRIBER_QUEUE_SIZE = int(_get_env("SUBSCRIBER_QUEUE_SIZE", "100"))

HOST = _get_env("HOST", "0.0.0.0")
PORT = int(_get_env("PORT", "8000"))

logger.debug(
    f"Config loaded: APP_ENV={APP_ENV}, LOG_LEVEL={LOG_LEVEL}, "
    f"SEED_DEMO_USERS={SEED_DEMO_USERS}, RESET_HOUR={RESET_HOUR}, "
    f"RESET_UTC_OFFSET_HOURS={RESET_UTC_OFFSET_HOURS}"
)
