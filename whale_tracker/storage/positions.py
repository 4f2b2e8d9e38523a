"""
Position Store
==============
One row per (wallet, token) holding period. A buy opens a row, the next sell
of that token by the same wallet closes it, writing every sell-side field in
a single UPDATE.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg
from psycopg.rows import dict_row

from whale_tracker.core.db import get_db_connection
from whale_tracker.core.errors import (
    DuplicateSignature,
    NoOpenPosition,
    OutOfOrderSell,
    PositionAlreadyOpen,
)
from whale_tracker.ingestion.models import CloseMetrics, ParsedTransfer, Position

PERCENT_PLACES = Decimal("0.01")


def compute_close_metrics(position: Position, sell: ParsedTransfer) -> CloseMetrics:
    """
    Hold time and P&L for closing `position` with `sell`.

    profit_loss_percent compares per-unit prices and is None when the buy
    price is zero (no USD leg was found for the buy).
    """
    hold_duration_seconds = sell.timestamp - int(position.buy_timestamp.timestamp())
    if hold_duration_seconds < 0:
        raise OutOfOrderSell(sell.signature, hold_duration_seconds)

    profit_loss_usd = sell.value_usd - position.buy_value_usd

    buy_price = position.buy_price_usd or Decimal(0)
    if buy_price == 0:
        profit_loss_percent = None
    else:
        profit_loss_percent = ((sell.price_usd - buy_price) / buy_price * 100).quantize(PERCENT_PLACES)

    return CloseMetrics(
        hold_duration_seconds=hold_duration_seconds,
        profit_loss_usd=profit_loss_usd,
        profit_loss_percent=profit_loss_percent,
    )


class PositionStore:

    def __init__(self, connection_factory=get_db_connection):
        self.connection_factory = connection_factory

    @staticmethod
    async def _fetch_position(conn, where: str, params: tuple, lock: bool = False) -> Optional[Position]:
        query = f"SELECT * FROM positions WHERE {where} ORDER BY buy_timestamp DESC LIMIT 1"
        if lock:
            query += " FOR UPDATE"
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
        return Position.from_row(row) if row else None

    async def open_position(self, wallet_address: str, token_mint: str) -> Optional[Position]:
        async with self.connection_factory() as conn:
            return await self._fetch_position(
                conn,
                "wallet_address = %s AND token_mint = %s AND is_open",
                (wallet_address, token_mint),
            )

    async def record_buy(self, wallet_address: str, token_mint: str, transfer: ParsedTransfer) -> Position:
        async with self.connection_factory() as conn:
            try:
                async with conn.transaction():
                    async with conn.cursor(row_factory=dict_row) as cur:
                        await cur.execute(
                            """
                            INSERT INTO positions (
                                wallet_address, token_mint, token_symbol, token_name,
                                buy_signature, buy_timestamp, buy_price_usd,
                                buy_amount, buy_value_usd, is_open
                            )
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, TRUE)
                            ON CONFLICT (buy_signature) DO NOTHING
                            RETURNING *
                            """,
                            (
                                wallet_address, token_mint, transfer.token_symbol, transfer.token_name,
                                transfer.signature, transfer.block_time, transfer.price_usd,
                                transfer.amount, transfer.value_usd,
                            ),
                        )
                        row = await cur.fetchone()
            except psycopg.errors.UniqueViolation:
                # idx_positions_one_open rejected a second open row
                existing = await self._fetch_position(
                    conn,
                    "wallet_address = %s AND token_mint = %s AND is_open",
                    (wallet_address, token_mint),
                )
                raise PositionAlreadyOpen(wallet_address, token_mint, existing)

            if row is None:
                existing = await self._fetch_position(conn, "buy_signature = %s", (transfer.signature,))
                raise DuplicateSignature(transfer.signature, existing)

        return Position.from_row(row)

    async def record_sell(self, wallet_address: str, token_mint: str, transfer: ParsedTransfer) -> Position:
        async with self.connection_factory() as conn:
            async with conn.transaction():
                # Retried sell: the close already happened
                closed = await self._fetch_position(conn, "sell_signature = %s", (transfer.signature,))
                if closed is not None:
                    return closed

                position = await self._fetch_position(
                    conn,
                    "wallet_address = %s AND token_mint = %s AND is_open",
                    (wallet_address, token_mint),
                    lock=True,
                )
                if position is None:
                    raise NoOpenPosition(wallet_address, token_mint)

                metrics = compute_close_metrics(position, transfer)

                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        UPDATE positions SET
                            sell_signature = %s,
                            sell_timestamp = %s,
                            sell_price_usd = %s,
                            sell_amount = %s,
                            sell_value_usd = %s,
                            hold_duration_seconds = %s,
                            profit_loss_usd = %s,
                            profit_loss_percent = %s,
                            is_open = FALSE
                        WHERE id = %s AND is_open
                        RETURNING *
                        """,
                        (
                            transfer.signature, transfer.block_time, transfer.price_usd,
                            transfer.amount, transfer.value_usd,
                            metrics.hold_duration_seconds, metrics.profit_loss_usd,
                            metrics.profit_loss_percent, position.id,
                        ),
                    )
                    row = await cur.fetchone()

                if row is None:
                    raise NoOpenPosition(wallet_address, token_mint)

        return Position.from_row(row)

    async def list_positions(self, wallet_address: str = None, is_open: bool = None,
                             limit: int = 50) -> List[Position]:
        clauses = []
        params: list = []
        if wallet_address:
            clauses.append("wallet_address = %s")
            params.append(wallet_address)
        if is_open is not None:
            clauses.append("is_open = %s")
            params.append(is_open)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        async with self.connection_factory() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"SELECT * FROM positions {where} ORDER BY buy_timestamp DESC LIMIT %s",
                    tuple(params),
                )
                rows = await cur.fetchall()
        return [Position.from_row(r) for r in rows]

    async def wallet_summary(self, wallet_address: str) -> Dict[str, Any]:
        async with self.connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT
                        COUNT(*) FILTER (WHERE is_open),
                        COUNT(*) FILTER (WHERE NOT is_open),
                        COUNT(*) FILTER (WHERE NOT is_open AND profit_loss_usd > 0),
                        COALESCE(SUM(profit_loss_usd) FILTER (WHERE NOT is_open), 0),
                        AVG(hold_duration_seconds) FILTER (WHERE NOT is_open)
                    FROM positions
                    WHERE wallet_address = %s
                    """,
                    (wallet_address,),
                )
                open_count, closed_count, wins, total_pnl, avg_hold = await cur.fetchone()

        return {
            "wallet_address": wallet_address,
            "open_positions": open_count,
            "closed_positions": closed_count,
            "winning_positions": wins,
            "total_profit_loss_usd": total_pnl,
            "avg_hold_duration_seconds": int(avg_hold) if avg_hold is not None else None,
        }
