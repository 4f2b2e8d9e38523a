"""
Telegram Notifier
=================
Buy/sell alerts through the Bot API `sendMessage` endpoint (HTML parse mode).
Delivery failures raise NotificationError; retry policy belongs to the caller.
"""
import html
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from whale_tracker.core.config import TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID
from whale_tracker.core.constants import SOLSCAN_TX_URL
from whale_tracker.core.errors import NotificationError
from whale_tracker.core.logger import get_logger
from whale_tracker.engines.filters import format_hold_duration, format_percent, format_usd

logger = get_logger("whale_tracker.telegram")

TELEGRAM_API = "https://api.telegram.org"


@dataclass
class BuyNotification:
    wallet_address: str
    token_symbol: str
    token_name: str
    amount: Decimal
    price_usd: Decimal
    value_usd: Decimal
    signature: str
    wallet_label: Optional[str] = None


@dataclass
class SellNotification:
    wallet_address: str
    token_symbol: str
    token_name: str
    amount: Decimal
    buy_price_usd: Decimal
    sell_price_usd: Decimal
    buy_value_usd: Decimal
    sell_value_usd: Decimal
    profit_loss_usd: Decimal
    profit_loss_percent: Optional[Decimal]
    hold_duration_seconds: int
    signature: str
    wallet_label: Optional[str] = None


def truncate_address(address: str) -> str:
    return f"{address[:4]}...{address[-4:]}"


def _token_lines(symbol: str, name: str) -> str:
    line = f"<b>Token:</b> {html.escape(symbol)}"
    if name and name != symbol:
        line += f"\n<i>{html.escape(name)}</i>"
    return line


def format_buy_message(data: BuyNotification) -> str:
    wallet_display = html.escape(data.wallet_label or truncate_address(data.wallet_address))
    return (
        "<b>BUY ALERT</b>\n"
        "\n"
        f"<b>Wallet:</b> {wallet_display}\n"
        f"<code>{data.wallet_address}</code>\n"
        "\n"
        f"{_token_lines(data.token_symbol, data.token_name)}\n"
        "\n"
        f"<b>Amount:</b> {data.amount:,}\n"
        f"<b>Price:</b> ${data.price_usd:.6f}\n"
        f"<b>Value:</b> {format_usd(data.value_usd)}\n"
        "\n"
        f'<a href="{SOLSCAN_TX_URL.format(signature=data.signature)}">View Transaction</a>'
    )


def format_sell_message(data: SellNotification) -> str:
    wallet_display = html.escape(data.wallet_label or truncate_address(data.wallet_address))
    if data.profit_loss_percent is None:
        outcome = "SELL ALERT"
    else:
        outcome = "SELL ALERT (PROFIT)" if data.profit_loss_percent >= 0 else "SELL ALERT (LOSS)"

    return (
        f"<b>{outcome}</b>\n"
        "\n"
        f"<b>Wallet:</b> {wallet_display}\n"
        f"<code>{data.wallet_address}</code>\n"
        "\n"
        f"{_token_lines(data.token_symbol, data.token_name)}\n"
        "\n"
        f"<b>Amount:</b> {data.amount:,}\n"
        "\n"
        f"<b>Buy Price:</b> ${data.buy_price_usd:.6f}\n"
        f"<b>Sell Price:</b> ${data.sell_price_usd:.6f}\n"
        "\n"
        f"<b>Buy Value:</b> {format_usd(data.buy_value_usd)}\n"
        f"<b>Sell Value:</b> {format_usd(data.sell_value_usd)}\n"
        "\n"
        f"<b>P&amp;L:</b> {format_usd(data.profit_loss_usd)} ({format_percent(data.profit_loss_percent)})\n"
        f"<b>Hold Time:</b> {format_hold_duration(data.hold_duration_seconds)}\n"
        "\n"
        f'<a href="{SOLSCAN_TX_URL.format(signature=data.signature)}">View Transaction</a>'
    )


class TelegramNotifier:

    def __init__(self, bot_token: str = None, chat_id: str = None, client: httpx.AsyncClient = None):
        self.bot_token = bot_token if bot_token is not None else TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else TELEGRAM_CHAT_ID
        self.api = f"{TELEGRAM_API}/bot{self.bot_token}"
        self.client = client or httpx.AsyncClient(timeout=15)

    async def aclose(self):
        await self.client.aclose()

    async def send_message(self, text: str):
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            resp = await self.client.post(f"{self.api}/sendMessage", json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Telegram request failed: {e}") from e

        if resp.status_code != 200:
            raise NotificationError(f"Telegram error {resp.status_code}: {resp.text[:200]}")

    async def notify_buy(self, data: BuyNotification):
        await self.send_message(format_buy_message(data))

    async def notify_sell(self, data: SellNotification):
        await self.send_message(format_sell_message(data))

    async def test_connection(self) -> bool:
        try:
            resp = await self.client.get(f"{self.api}/getMe")
            resp.raise_for_status()
            username = resp.json().get("result", {}).get("username")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Telegram bot connection failed: {e}")
            return False
        logger.info(f"Telegram bot connected: @{username}")
        return True
