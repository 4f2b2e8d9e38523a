from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from whale_tracker.storage.positions import PositionStore

router = APIRouter(prefix="/positions", tags=["positions"])


class PositionResponse(BaseModel):
    id: int
    wallet_address: str
    token_mint: str
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    buy_signature: str
    buy_timestamp: datetime
    buy_price_usd: Decimal
    buy_amount: Decimal
    buy_value_usd: Decimal
    sell_signature: Optional[str] = None
    sell_timestamp: Optional[datetime] = None
    sell_price_usd: Optional[Decimal] = None
    sell_amount: Optional[Decimal] = None
    sell_value_usd: Optional[Decimal] = None
    hold_duration_seconds: Optional[int] = None
    profit_loss_usd: Optional[Decimal] = None
    profit_loss_percent: Optional[Decimal] = None
    is_open: bool


class WalletSummaryResponse(BaseModel):
    wallet_address: str
    open_positions: int
    closed_positions: int
    winning_positions: int
    total_profit_loss_usd: Decimal
    avg_hold_duration_seconds: Optional[int] = None


def get_position_store() -> PositionStore:
    return PositionStore()


@router.get("", response_model=List[PositionResponse])
async def list_positions(
    wallet: Optional[str] = None,
    status: Optional[str] = Query(None, description="open | closed"),
    limit: int = Query(50, ge=1, le=500),
    store: PositionStore = Depends(get_position_store),
):
    if status not in (None, "open", "closed"):
        raise HTTPException(status_code=400, detail="Invalid status. Supported: open, closed")

    is_open = None if status is None else status == "open"
    positions = await store.list_positions(wallet_address=wallet, is_open=is_open, limit=limit)
    return [PositionResponse(**vars(p)) for p in positions]


@router.get("/wallets/{address}/summary", response_model=WalletSummaryResponse)
async def wallet_summary(address: str, store: PositionStore = Depends(get_position_store)):
    return WalletSummaryResponse(**await store.wallet_summary(address))
