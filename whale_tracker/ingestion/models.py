from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any


def safe_decimal(val) -> Decimal:
    try:
        return Decimal(str(val)) if val not in (None, "", "None") else Decimal("0")
    except (InvalidOperation, TypeError):
        return Decimal("0")


@dataclass(frozen=True)
class TrackedWallet:
    address: str
    label: Optional[str] = None
    active: bool = True

    @property
    def display_name(self) -> str:
        return self.label or self.address[:8]


@dataclass(frozen=True)
class TokenTransfer:
    mint: str
    amount: Decimal
    from_account: Optional[str] = None
    to_account: Optional[str] = None


@dataclass(frozen=True)
class NativeTransfer:
    amount: Decimal  # lamports
    from_account: Optional[str] = None
    to_account: Optional[str] = None


@dataclass(frozen=True)
class RawTransaction:
    signature: str
    timestamp: int
    type: str
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    native_transfers: List[NativeTransfer] = field(default_factory=list)
    error: Optional[Any] = None

    @classmethod
    def from_helius(cls, raw: Dict) -> "RawTransaction":
        """Build from a Helius enhanced-transaction JSON object."""
        token_transfers = [
            TokenTransfer(
                mint=t.get("mint"),
                amount=safe_decimal(t.get("tokenAmount")),
                from_account=t.get("fromUserAccount"),
                to_account=t.get("toUserAccount"),
            )
            for t in raw.get("tokenTransfers") or []
            if t.get("mint")
        ]
        native_transfers = [
            NativeTransfer(
                amount=safe_decimal(t.get("amount")),
                from_account=t.get("fromUserAccount"),
                to_account=t.get("toUserAccount"),
            )
            for t in raw.get("nativeTransfers") or []
        ]
        return cls(
            signature=raw["signature"],
            timestamp=int(raw.get("timestamp") or 0),
            type=raw.get("type") or "UNKNOWN",
            token_transfers=token_transfers,
            native_transfers=native_transfers,
            error=raw.get("transactionError"),
        )


@dataclass
class ParsedTransfer:
    direction: str  # 'buy' | 'sell'
    token_mint: str
    amount: Decimal
    price_usd: Decimal
    value_usd: Decimal
    signature: str
    timestamp: int
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None

    @property
    def is_buy(self) -> bool:
        return self.direction == "buy"

    @property
    def is_priced(self) -> bool:
        """False when the token amount was zero and no price could be derived."""
        return self.amount > 0

    @property
    def block_time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass
class Position:
    wallet_address: str
    token_mint: str
    buy_signature: str
    buy_timestamp: datetime
    buy_price_usd: Decimal
    buy_amount: Decimal
    buy_value_usd: Decimal
    id: Optional[Any] = None
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    sell_signature: Optional[str] = None
    sell_timestamp: Optional[datetime] = None
    sell_price_usd: Optional[Decimal] = None
    sell_amount: Optional[Decimal] = None
    sell_value_usd: Optional[Decimal] = None
    hold_duration_seconds: Optional[int] = None
    profit_loss_usd: Optional[Decimal] = None
    profit_loss_percent: Optional[Decimal] = None
    is_open: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Position":
        names = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in row.items() if k in names})


@dataclass(frozen=True)
class CloseMetrics:
    hold_duration_seconds: int
    profit_loss_usd: Decimal
    profit_loss_percent: Optional[Decimal]  # None when the buy price was zero
