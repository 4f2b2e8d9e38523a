"""
Transfer Classifier
===================
Turns a raw wallet transaction into a directional token transfer with a USD
estimate, or None when the transaction is not a relevant swap.

Transfer order is whatever the transaction source reports; the first
eligible transfer touching the wallet decides the direction.

Every quote mint (wrapped SOL, USDC, USDT) is skipped when looking for the
traded token, not only wrapped SOL. A stablecoin leg therefore never becomes
the position, and a plain SOL -> USDC swap is ignored rather than recorded as
a USDC buy.
"""
from decimal import Decimal
from typing import Dict, Optional, Sequence

from whale_tracker.core.constants import (
    LAMPORTS_PER_SOL,
    QUOTE_MINTS,
    STABLECOIN_MINTS,
    SWAP_TYPES,
    WRAPPED_SOL,
)
from whale_tracker.core.logger import get_logger
from whale_tracker.core.prices import PriceOracle
from whale_tracker.ingestion.base import TransactionSource
from whale_tracker.ingestion.models import (
    NativeTransfer,
    ParsedTransfer,
    RawTransaction,
    TokenTransfer,
)

logger = get_logger("whale_tracker.classifier")


def _same(account: Optional[str], wallet: str) -> bool:
    return bool(account) and account.lower() == wallet.lower()


def calculate_usd_value(
    token_transfers: Sequence[TokenTransfer],
    native_transfers: Sequence[NativeTransfer],
    wallet: str,
    is_buy: bool,
    native_price_usd: Decimal,
) -> Decimal:
    """
    USD value of the swap's quote leg:
    1. stablecoin sent (buy) / received (sell) by the wallet, taken at face value
    2. any wrapped SOL transfer x native price
    3. native SOL sent (buy) / received (sell) by the wallet x native price
    4. zero
    """
    for transfer in token_transfers:
        if transfer.mint not in STABLECOIN_MINTS:
            continue
        if is_buy and _same(transfer.from_account, wallet):
            return transfer.amount
        if not is_buy and _same(transfer.to_account, wallet):
            return transfer.amount

    for transfer in token_transfers:
        if transfer.mint == WRAPPED_SOL:
            return transfer.amount * native_price_usd

    for transfer in native_transfers:
        account = transfer.from_account if is_buy else transfer.to_account
        if _same(account, wallet):
            return transfer.amount / LAMPORTS_PER_SOL * native_price_usd

    return Decimal(0)


def classify_transfer(tx: RawTransaction, wallet: str, native_price_usd: Decimal) -> Optional[ParsedTransfer]:
    if tx.type not in SWAP_TYPES:
        return None

    # Failed transactions move nothing
    if tx.error:
        return None

    token_transfer = None
    is_buy = False

    for transfer in tx.token_transfers:
        if transfer.mint in QUOTE_MINTS:
            continue

        if _same(transfer.to_account, wallet):
            # Receiving token = BUY
            is_buy = True
            token_transfer = transfer
            break
        if _same(transfer.from_account, wallet):
            # Sending token = SELL
            is_buy = False
            token_transfer = transfer
            break

    if token_transfer is None:
        return None

    value_usd = calculate_usd_value(
        tx.token_transfers, tx.native_transfers, wallet, is_buy, native_price_usd
    )
    if token_transfer.amount > 0:
        price_usd = value_usd / token_transfer.amount
    else:
        price_usd = Decimal(0)

    return ParsedTransfer(
        direction="buy" if is_buy else "sell",
        token_mint=token_transfer.mint,
        amount=token_transfer.amount,
        price_usd=price_usd,
        value_usd=value_usd,
        signature=tx.signature,
        timestamp=tx.timestamp,
    )


class TokenAgeCache:
    """
    Mint creation times, each fetched from the source at most once per process
    once known. Holds one int per traded mint and is never evicted.
    """

    def __init__(self, source: TransactionSource):
        self.source = source
        self._created: Dict[str, int] = {}

    async def creation_time(self, mint: str) -> Optional[int]:
        if mint in self._created:
            return self._created[mint]

        created = await self.source.get_token_creation_time(mint)
        if created is not None:
            self._created[mint] = created
        return created


class TransferClassifier:
    """
    Async front for classify_transfer: pulls the SOL price from the oracle,
    drops buys of tokens older than max_token_age_minutes (0 disables) and
    attaches token metadata.
    """

    def __init__(self, source: TransactionSource, oracle: PriceOracle, max_token_age_minutes: int = 60):
        self.source = source
        self.oracle = oracle
        self.max_token_age_minutes = max_token_age_minutes
        self.token_ages = TokenAgeCache(source)

    async def classify(self, tx: RawTransaction, wallet: str) -> Optional[ParsedTransfer]:
        if tx.type not in SWAP_TYPES or tx.error:
            return None

        native_price = await self.oracle.native_asset_usd_price(tx.timestamp)
        parsed = classify_transfer(tx, wallet, native_price)
        if parsed is None:
            return None

        if parsed.is_buy and self.max_token_age_minutes > 0:
            created = await self.token_ages.creation_time(parsed.token_mint)
            if created is not None:
                age_minutes = (parsed.timestamp - created) // 60
                if age_minutes > self.max_token_age_minutes:
                    logger.info(
                        f"Filtering out buy: Token {parsed.token_mint} is {age_minutes} minutes old "
                        f"(> {self.max_token_age_minutes} min threshold)"
                    )
                    return None

        metadata = await self.source.get_token_metadata(parsed.token_mint)
        parsed.token_symbol = metadata.get("symbol") or parsed.token_mint
        parsed.token_name = metadata.get("name") or parsed.token_symbol
        return parsed
