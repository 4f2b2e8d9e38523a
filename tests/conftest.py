"""
In-memory stand-ins for the Postgres-backed store/ledger, the Helius source
and the Telegram notifier, plus builders for Helius-shaped transactions.
"""
import asyncio
import logging
import os
from decimal import Decimal
from itertools import count
from typing import Dict, List, Optional

import pytest

from whale_tracker.core.constants import USDC_MINT, WRAPPED_SOL
from whale_tracker.core.errors import (
    DuplicateSignature,
    FetchFailure,
    NoOpenPosition,
    NotificationError,
    PositionAlreadyOpen,
)
from whale_tracker.core.logger import ROOT_LOGGER
from whale_tracker.core.prices import StaticPriceOracle
from whale_tracker.engines.classifier import TransferClassifier
from whale_tracker.ingestion.base import TransactionSource
from whale_tracker.ingestion.models import ParsedTransfer, Position, RawTransaction, TrackedWallet
from whale_tracker.storage.ledger import WalletCursor
from whale_tracker.storage.positions import compute_close_metrics
from whale_tracker.workers.poll_worker import PollWorker

WALLET = "WhaLeWa11et1111111111111111111111111111111"
OTHER_WALLET = "0therWa11et222222222222222222222222222222"
POOL = "Poo1Acc0unt33333333333333333333333333333333"
MEME_MINT = "MeMeM1nt444444444444444444444444444444pump"
OTHER_MINT = "0therM1nt55555555555555555555555555555pump"

T0 = 1_700_000_000

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
requires_db = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")


def run(coro):
    return asyncio.run(coro)


def token_transfer(mint, amount, frm=None, to=None):
    return {
        "mint": mint,
        "tokenAmount": amount,
        "fromUserAccount": frm,
        "toUserAccount": to,
        "tokenStandard": "Fungible",
    }


def native_transfer(lamports, frm=None, to=None):
    return {"amount": lamports, "fromUserAccount": frm, "toUserAccount": to}


def make_tx(signature, timestamp=T0, token_transfers=(), native_transfers=(),
            tx_type="SWAP", error=None) -> RawTransaction:
    return RawTransaction.from_helius({
        "signature": signature,
        "timestamp": timestamp,
        "type": tx_type,
        "tokenTransfers": list(token_transfers),
        "nativeTransfers": list(native_transfers),
        "transactionError": error,
    })


def usdc_buy(signature, wallet=WALLET, mint=MEME_MINT, amount=1_000_000, usdc=25, timestamp=T0):
    return make_tx(signature, timestamp, [
        token_transfer(mint, amount, frm=POOL, to=wallet),
        token_transfer(USDC_MINT, usdc, frm=wallet, to=POOL),
    ])


def usdc_sell(signature, wallet=WALLET, mint=MEME_MINT, amount=1_000_000, usdc=35, timestamp=T0 + 3600):
    return make_tx(signature, timestamp, [
        token_transfer(mint, amount, frm=wallet, to=POOL),
        token_transfer(USDC_MINT, usdc, frm=POOL, to=wallet),
    ])


def sol_buy(signature, sol, wallet=WALLET, mint=MEME_MINT, amount=1_000_000, timestamp=T0):
    return make_tx(signature, timestamp, [
        token_transfer(WRAPPED_SOL, sol, frm=wallet, to=POOL),
        token_transfer(mint, amount, frm=POOL, to=wallet),
    ])


def parsed(direction, signature, value_usd, amount=1_000_000, timestamp=T0, mint=MEME_MINT):
    amount = Decimal(str(amount))
    value_usd = Decimal(str(value_usd))
    return ParsedTransfer(
        direction=direction,
        token_mint=mint,
        amount=amount,
        price_usd=value_usd / amount if amount else Decimal(0),
        value_usd=value_usd,
        signature=signature,
        timestamp=timestamp,
        token_symbol="MEME",
        token_name="Meme Coin",
    )


class FakeSource(TransactionSource):

    def __init__(self):
        # address -> newest-first transactions
        self.history: Dict[str, List[RawTransaction]] = {}
        self.creation_times: Dict[str, Optional[int]] = {}
        self.failing = set()
        self.fetch_calls = []
        self.creation_calls = []

    def push(self, address: str, *txs: RawTransaction):
        """Append transactions in chronological order."""
        for tx in txs:
            self.history.setdefault(address, []).insert(0, tx)

    async def fetch(self, address, limit):
        self.fetch_calls.append(address)
        if address in self.failing:
            raise FetchFailure(address, "rate limited", status_code=429)
        return self.history.get(address, [])[:limit]

    async def get_token_creation_time(self, mint):
        self.creation_calls.append(mint)
        return self.creation_times.get(mint)


class InMemoryPositionStore:

    def __init__(self):
        self.positions: List[Position] = []
        self._ids = count(1)

    async def _before_write(self):
        pass

    def open_rows(self, wallet_address, token_mint):
        return [p for p in self.positions
                if p.wallet_address == wallet_address and p.token_mint == token_mint and p.is_open]

    async def open_position(self, wallet_address, token_mint):
        rows = sorted(self.open_rows(wallet_address, token_mint), key=lambda p: p.buy_timestamp, reverse=True)
        return rows[0] if rows else None

    async def record_buy(self, wallet_address, token_mint, transfer):
        for p in self.positions:
            if p.buy_signature == transfer.signature:
                raise DuplicateSignature(transfer.signature, p)
        existing = await self.open_position(wallet_address, token_mint)
        if existing is not None:
            raise PositionAlreadyOpen(wallet_address, token_mint, existing)
        await self._before_write()

        position = Position(
            id=next(self._ids),
            wallet_address=wallet_address,
            token_mint=token_mint,
            token_symbol=transfer.token_symbol,
            token_name=transfer.token_name,
            buy_signature=transfer.signature,
            buy_timestamp=transfer.block_time,
            buy_price_usd=transfer.price_usd,
            buy_amount=transfer.amount,
            buy_value_usd=transfer.value_usd,
        )
        self.positions.append(position)
        return position

    async def record_sell(self, wallet_address, token_mint, transfer):
        for p in self.positions:
            if p.sell_signature == transfer.signature:
                return p
        position = await self.open_position(wallet_address, token_mint)
        if position is None:
            raise NoOpenPosition(wallet_address, token_mint)

        metrics = compute_close_metrics(position, transfer)
        await self._before_write()
        position.sell_signature = transfer.signature
        position.sell_timestamp = transfer.block_time
        position.sell_price_usd = transfer.price_usd
        position.sell_amount = transfer.amount
        position.sell_value_usd = transfer.value_usd
        position.hold_duration_seconds = metrics.hold_duration_seconds
        position.profit_loss_usd = metrics.profit_loss_usd
        position.profit_loss_percent = metrics.profit_loss_percent
        position.is_open = False
        return position

    async def list_positions(self, wallet_address=None, is_open=None, limit=50):
        rows = [p for p in self.positions
                if (wallet_address is None or p.wallet_address == wallet_address)
                and (is_open is None or p.is_open == is_open)]
        return sorted(rows, key=lambda p: p.buy_timestamp, reverse=True)[:limit]

    async def wallet_summary(self, wallet_address):
        rows = [p for p in self.positions if p.wallet_address == wallet_address]
        closed = [p for p in rows if not p.is_open]
        return {
            "wallet_address": wallet_address,
            "open_positions": len(rows) - len(closed),
            "closed_positions": len(closed),
            "winning_positions": sum(1 for p in closed if p.profit_loss_usd > 0),
            "total_profit_loss_usd": sum((p.profit_loss_usd for p in closed), Decimal(0)),
            "avg_hold_duration_seconds": (
                sum(p.hold_duration_seconds for p in closed) // len(closed) if closed else None
            ),
        }

    def snapshot(self):
        return [vars(p).copy() for p in self.positions]


class InMemoryLedger:

    def __init__(self):
        self.processed: Dict[str, str] = {}

    async def is_processed(self, signature):
        return signature in self.processed

    async def mark_processed(self, signature, wallet_address):
        if signature in self.processed:
            return False
        self.processed[signature] = wallet_address
        return True


class RecordingNotifier:

    def __init__(self):
        self.buys = []
        self.sells = []
        self.fail_next = 0

    def _maybe_fail(self):
        if self.fail_next:
            self.fail_next -= 1
            raise NotificationError("Telegram error 502: bad gateway")

    async def notify_buy(self, data):
        self._maybe_fail()
        self.buys.append(data)

    async def notify_sell(self, data):
        self._maybe_fail()
        self.sells.append(data)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def store():
    return InMemoryPositionStore()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_worker(source, store, ledger, notifier):
    def factory(wallets=None, max_token_age_minutes=0, native_price=Decimal("100"), position_store=None, **kwargs):
        wallets = wallets or [TrackedWallet(address=WALLET, label="Whale #1")]
        classifier = TransferClassifier(source, StaticPriceOracle(native_price), max_token_age_minutes)
        options = dict(
            fetch_limit=10,
            min_buy_value_usd=Decimal("1000"),
            poll_interval_ms=0,
            wallet_delay_seconds=0,
            cursor=WalletCursor(),
        )
        options.update(kwargs)
        return PollWorker(wallets, source, classifier, position_store or store, ledger, notifier, **options)
    return factory


@pytest.fixture
def tracker_logs(caplog, monkeypatch):
    """caplog for the `whale_tracker` logger, which normally stops propagation at itself."""
    monkeypatch.setattr(logging.getLogger(ROOT_LOGGER), "propagate", True)
    caplog.set_level(logging.INFO, logger=ROOT_LOGGER)
    return caplog
