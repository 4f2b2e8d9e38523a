import json
import os
from decimal import Decimal
from pathlib import Path

from whale_tracker.core.constants import SOL_PRICE_USD_ESTIMATE
from whale_tracker.ingestion.models import TrackedWallet

# Database
DATABASE_URL = os.environ.get("DATABASE_URL")

# Helius
HELIUS_API_KEY = os.environ.get("HELIUS_API_KEY", "")
HELIUS_API_URL = os.environ.get("HELIUS_API_URL", "https://api.helius.xyz/v0")
HELIUS_RPC_URL = os.environ.get("HELIUS_RPC_URL", "https://mainnet.helius-rpc.com")

# Telegram
TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")

# Monitoring
POLL_INTERVAL_MS = int(os.environ.get("POLL_INTERVAL_MS", "10000"))
WALLET_DELAY_SECONDS = float(os.environ.get("WALLET_DELAY_SECONDS", "1.0"))
TX_FETCH_LIMIT = int(os.environ.get("TX_FETCH_LIMIT", "10"))
MIN_BUY_VALUE_USD = Decimal(os.environ.get("MIN_BUY_VALUE_USD", "1000"))
MAX_TOKEN_AGE_MINUTES = int(os.environ.get("MAX_TOKEN_AGE_MINUTES", "60"))  # 0 disables

# Pricing
NATIVE_PRICE_USD = Decimal(os.environ.get("NATIVE_PRICE_USD", str(SOL_PRICE_USD_ESTIMATE)))
PRICE_SOURCE = os.environ.get("PRICE_SOURCE", "static").lower()  # "static" | "jupiter"

# Wallets
WALLETS_FILE = os.environ.get("WALLETS_FILE", "config/wallets.json")

# Optional extra wallets: "Address:Label,Address"
TRACKED_WALLETS = os.environ.get("TRACKED_WALLETS", "")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text").lower()  # "text" | "json"

REQUIRED_ENV = (
    "DATABASE_URL",
    "HELIUS_API_KEY",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
)


def validate_env(environ=None):
    """Raise RuntimeError naming every required variable that is unset."""
    environ = os.environ if environ is None else environ
    missing = [key for key in REQUIRED_ENV if not environ.get(key)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")


def parse_wallet_labels(raw: str) -> list[TrackedWallet]:
    wallets = []
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        if ":" in pair:
            address, label = pair.split(":", 1)
            wallets.append(TrackedWallet(address=address.strip(), label=label.strip() or None))
        else:
            wallets.append(TrackedWallet(address=pair))
    return wallets


def load_wallets(path=None, extra: str = None) -> list[TrackedWallet]:
    """
    Load the tracked wallet set from the JSON wallets file and the
    TRACKED_WALLETS env var. File entries win on duplicate addresses.
    Inactive wallets are dropped.

    File format: {"wallets": [{"address": "...", "label": "...", "active": true}]}
    """
    path = Path(path or WALLETS_FILE)
    extra = TRACKED_WALLETS if extra is None else extra

    wallets: dict[str, TrackedWallet] = {}

    if path.exists():
        with open(path, "r") as f:
            data = json.load(f)
        for entry in data.get("wallets", []):
            address = (entry.get("address") or "").strip()
            if not address:
                continue
            wallets.setdefault(address, TrackedWallet(
                address=address,
                label=entry.get("label") or None,
                active=bool(entry.get("active", True)),
            ))

    for wallet in parse_wallet_labels(extra):
        wallets.setdefault(wallet.address, wallet)

    return [w for w in wallets.values() if w.active]
