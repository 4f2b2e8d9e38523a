"""
Poll Worker
===========
Every cycle, for each tracked wallet in turn:

    fetch -> oldest-first over unseen txs
        [ledger check -> classify -> open/close position -> filter -> notify -> mark processed]
    -> advance watermark

A failing wallet is logged and skipped; its watermark stays put so the same
batch is walked again next cycle. Storage writes are idempotent, which makes
that replay safe.
"""
import asyncio
import signal
import sys
from collections import Counter
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from whale_tracker.core import config
from whale_tracker.core.db import check_tables, close_db, init_db
from whale_tracker.core.errors import (
    DuplicateSignature,
    FetchFailure,
    NoOpenPosition,
    OutOfOrderSell,
    PositionAlreadyOpen,
)
from whale_tracker.core.logger import get_logger, log_event
from whale_tracker.core.prices import build_price_oracle
from whale_tracker.engines.classifier import TransferClassifier
from whale_tracker.engines.filters import should_notify_buy, should_notify_sell
from whale_tracker.ingestion.base import TransactionSource
from whale_tracker.ingestion.helius import HeliusSource
from whale_tracker.ingestion.models import ParsedTransfer, RawTransaction, TrackedWallet
from whale_tracker.notify.telegram import BuyNotification, SellNotification, TelegramNotifier
from whale_tracker.storage.ledger import SignatureLedger, WalletCursor
from whale_tracker.storage.positions import PositionStore

logger = get_logger("whale_tracker.worker")


class KeyedLocks:
    """
    One asyncio.Lock per key, created on first use. Locks are never dropped:
    there is one per (wallet, mint) pair the tracked wallets have traded.
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def get(self, key: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


class PollWorker:

    def __init__(
        self,
        wallets: Sequence[TrackedWallet],
        source: TransactionSource,
        classifier: TransferClassifier,
        store: PositionStore,
        ledger: SignatureLedger,
        notifier: TelegramNotifier,
        cursor: WalletCursor = None,
        fetch_limit: int = config.TX_FETCH_LIMIT,
        min_buy_value_usd: Decimal = config.MIN_BUY_VALUE_USD,
        poll_interval_ms: int = config.POLL_INTERVAL_MS,
        wallet_delay_seconds: float = config.WALLET_DELAY_SECONDS,
        shutdown_event: asyncio.Event = None,
    ):
        self.wallets = list(wallets)
        self.source = source
        self.classifier = classifier
        self.store = store
        self.ledger = ledger
        self.notifier = notifier
        self.cursor = cursor or WalletCursor()
        self.fetch_limit = fetch_limit
        self.min_buy_value_usd = min_buy_value_usd
        self.poll_interval_ms = poll_interval_ms
        self.wallet_delay_seconds = wallet_delay_seconds
        self.shutdown_event = shutdown_event or asyncio.Event()
        self.locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Per transaction
    # ------------------------------------------------------------------

    async def handle_transaction(self, wallet: TrackedWallet, tx: RawTransaction) -> str:
        if await self.ledger.is_processed(tx.signature):
            logger.debug(f"Skipping already processed signature: {tx.signature}")
            return "already_processed"

        parsed = await self.classifier.classify(tx, wallet.address)
        if parsed is None:
            await self.ledger.mark_processed(tx.signature, wallet.address)
            return "ignored"

        log_event(logger, "transfer_detected", {
            "direction": parsed.direction,
            "wallet": wallet.address,
            "label": wallet.label,
            "token": parsed.token_mint,
            "symbol": parsed.token_symbol,
            "amount": parsed.amount,
            "value_usd": parsed.value_usd,
            "signature": parsed.signature,
        })

        async with self.locks.get((wallet.address, parsed.token_mint)):
            if parsed.is_buy:
                outcome = await self._handle_buy(wallet, parsed)
            else:
                outcome = await self._handle_sell(wallet, parsed)

        await self.ledger.mark_processed(tx.signature, wallet.address)
        return outcome

    async def _handle_buy(self, wallet: TrackedWallet, parsed: ParsedTransfer) -> str:
        outcome = "buy"
        existing = await self.store.open_position(wallet.address, parsed.token_mint)
        if existing is not None and existing.buy_signature != parsed.signature:
            logger.info(
                f"{wallet.display_name} already holds {parsed.token_symbol} "
                f"(opened by {existing.buy_signature}), keeping existing position"
            )
            outcome = "buy_while_open"
        else:
            try:
                await self.store.record_buy(wallet.address, parsed.token_mint, parsed)
            except DuplicateSignature:
                logger.debug(f"Buy {parsed.signature} already recorded")
            except PositionAlreadyOpen:
                logger.info(f"Open position for {parsed.token_mint} appeared concurrently, keeping it")
                outcome = "buy_while_open"

        if not parsed.is_priced:
            logger.info(f"Unpriced buy (zero token amount), not notifying: {parsed.signature}")
        elif should_notify_buy(parsed.value_usd, self.min_buy_value_usd):
            logger.info(f"Sending buy notification: {parsed.token_symbol} - {parsed.value_usd:.2f} USD")
            await self.notifier.notify_buy(BuyNotification(
                wallet_address=wallet.address,
                wallet_label=wallet.label,
                token_symbol=parsed.token_symbol or parsed.token_mint,
                token_name=parsed.token_name or parsed.token_mint,
                amount=parsed.amount,
                price_usd=parsed.price_usd,
                value_usd=parsed.value_usd,
                signature=parsed.signature,
            ))
        else:
            logger.info(f"Buy below threshold, not notifying: {parsed.value_usd:.2f} USD")
        return outcome

    async def _handle_sell(self, wallet: TrackedWallet, parsed: ParsedTransfer) -> str:
        try:
            position = await self.store.record_sell(wallet.address, parsed.token_mint, parsed)
        except NoOpenPosition:
            logger.warning(f"Sell without open position: {wallet.address} {parsed.token_mint}")
            return "unmatched_sell"
        except OutOfOrderSell as e:
            logger.error(f"Rejected sell for {wallet.address} {parsed.token_mint}: {e}")
            return "out_of_order_sell"

        if should_notify_sell():
            logger.info(
                f"Sending sell notification: {parsed.token_symbol} - P&L: {position.profit_loss_percent}%"
            )
            await self.notifier.notify_sell(SellNotification(
                wallet_address=wallet.address,
                wallet_label=wallet.label,
                token_symbol=position.token_symbol or parsed.token_symbol or parsed.token_mint,
                token_name=position.token_name or parsed.token_name or parsed.token_mint,
                amount=parsed.amount,
                buy_price_usd=position.buy_price_usd,
                sell_price_usd=position.sell_price_usd,
                buy_value_usd=position.buy_value_usd,
                sell_value_usd=position.sell_value_usd,
                profit_loss_usd=position.profit_loss_usd,
                profit_loss_percent=position.profit_loss_percent,
                hold_duration_seconds=position.hold_duration_seconds,
                signature=parsed.signature,
            ))
        return "sell"

    # ------------------------------------------------------------------
    # Per wallet / per cycle
    # ------------------------------------------------------------------

    async def _process_wallet(self, wallet: TrackedWallet) -> Optional[Counter]:
        logger.debug(f"Fetching transactions for wallet: {wallet.address}")
        batch = await self.source.fetch(wallet.address, self.fetch_limit)

        outcomes = Counter()
        for tx in self.cursor.unseen(wallet.address, batch):
            if self.shutdown_event.is_set():
                # Unfinished walk: leave the watermark where it was
                return None
            outcomes[await self.handle_transaction(wallet, tx)] += 1

        self.cursor.advance(wallet.address, batch)
        return outcomes

    async def process_wallet(self, wallet: TrackedWallet) -> Optional[Counter]:
        try:
            return await self._process_wallet(wallet)
        except FetchFailure as e:
            logger.error(f"Error fetching wallet {wallet.address}: {e}")
        except Exception as e:
            logger.exception(f"Error processing wallet {wallet.address}: {e}")
        return None

    async def run_cycle(self) -> Counter:
        logger.debug("Starting monitoring cycle...")
        totals = Counter()
        for index, wallet in enumerate(self.wallets):
            if self.shutdown_event.is_set():
                break

            outcomes = await self.process_wallet(wallet)
            if outcomes is None:
                totals["failed_wallets"] += 1
            else:
                totals.update(outcomes)

            # Small delay between wallets to avoid rate limiting
            if index < len(self.wallets) - 1:
                await self._sleep(self.wallet_delay_seconds)

        if totals:
            log_event(logger, "cycle_complete", dict(totals))
        return totals

    async def _sleep(self, seconds: float):
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self):
        logger.info(f"Monitoring {len(self.wallets)} wallet(s) every {self.poll_interval_ms}ms")
        while not self.shutdown_event.is_set():
            await self.run_cycle()
            logger.debug(f"Monitoring cycle complete. Waiting {self.poll_interval_ms}ms...")
            await self._sleep(self.poll_interval_ms / 1000)
        logger.info("Poll worker stopped.")


async def run_worker():
    logger.info("Starting Solana Whale Tracker...")
    config.validate_env()

    await init_db()
    source = HeliusSource()
    notifier = TelegramNotifier()
    oracle = build_price_oracle(config.PRICE_SOURCE, config.NATIVE_PRICE_USD)

    try:
        logger.info("Testing database connection...")
        if not await check_tables():
            raise RuntimeError("Tracker tables missing, run scripts/apply_schema.py")

        logger.info("Testing Helius API connection...")
        if not await source.test_connection():
            raise RuntimeError("Helius API connection failed")

        logger.info("Testing Telegram bot connection...")
        if not await notifier.test_connection():
            raise RuntimeError("Telegram bot connection failed")

        wallets = config.load_wallets()
        if not wallets:
            raise RuntimeError(f"No active wallets in {config.WALLETS_FILE} or TRACKED_WALLETS")
        logger.info(f"Loaded {len(wallets)} wallet(s) to monitor")
        for wallet in wallets:
            logger.info(f"  - {wallet.label or wallet.address}")

        worker = PollWorker(
            wallets=wallets,
            source=source,
            classifier=TransferClassifier(source, oracle, config.MAX_TOKEN_AGE_MINUTES),
            store=PositionStore(),
            ledger=SignatureLedger(),
            notifier=notifier,
        )

        def handle_signal():
            logger.info("Shutdown signal received, finishing current transaction...")
            worker.shutdown_event.set()

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, handle_signal)
        loop.add_signal_handler(signal.SIGTERM, handle_signal)

        await worker.run()
    finally:
        await source.aclose()
        await notifier.aclose()
        if hasattr(oracle, "aclose"):
            await oracle.aclose()
        await close_db()


def main():
    try:
        asyncio.run(run_worker())
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
