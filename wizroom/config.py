# config.py
# Global runtime configuration, overridable from the environment
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.error("Invalid value for %s: %r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw, 10)
    except ValueError:
        logger.error("Invalid value for %s: %r, using %s", name, raw, default)
        return default


WIZ_PORT = 38899                     # every bulb listens here
BULB_TIMEOUT = _env_float("WIZROOM_BULB_TIMEOUT", 1.0)      # seconds per attempt
BULB_RETRIES = _env_int("WIZROOM_BULB_RETRIES", 2)          # retransmissions after the first send
APPLY_DEADLINE = _env_float("WIZROOM_APPLY_DEADLINE", 10.0)  # overall fan-out budget for API calls

STORAGE_PATH = Path(os.environ.get("WIZROOM_STORAGE_PATH", ".")) / "rooms.json"

API_HOST = "0.0.0.0"
API_PORT = _env_int("WIZROOM_PORT", 8080)
CORS_ORIGIN = os.environ.get("WIZROOM_CORS_ORIGIN", "http://localhost:8000")
