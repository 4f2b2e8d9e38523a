"""
Deduplication ledger.

`processed_signatures` is the durable record of every transaction that went
through the pipeline. WalletCursor is the per-process watermark that stops a
poll from re-walking what the previous poll already saw; losing it on
restart only costs extra ledger lookups.
"""
from typing import Dict, List, Optional, Sequence

from whale_tracker.core.db import get_db_connection
from whale_tracker.ingestion.models import RawTransaction


class SignatureLedger:

    def __init__(self, connection_factory=get_db_connection):
        self.connection_factory = connection_factory

    async def is_processed(self, signature: str) -> bool:
        async with self.connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT 1 FROM processed_signatures WHERE signature = %s",
                    (signature,)
                )
                return await cur.fetchone() is not None

    async def mark_processed(self, signature: str, wallet_address: str) -> bool:
        """Returns False when the signature was already recorded."""
        async with self.connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO processed_signatures (signature, wallet_address)
                    VALUES (%s, %s)
                    ON CONFLICT (signature) DO NOTHING
                    """,
                    (signature, wallet_address)
                )
                inserted = cur.rowcount == 1
            await conn.commit()
        return inserted


class WalletCursor:
    """wallet address -> newest signature seen by the last completed poll."""

    def __init__(self):
        self._last_seen: Dict[str, str] = {}

    def get(self, wallet_address: str) -> Optional[str]:
        return self._last_seen.get(wallet_address)

    def advance(self, wallet_address: str, batch: Sequence[RawTransaction]):
        """Move the watermark to the newest item of a newest-first batch."""
        if batch:
            self._last_seen[wallet_address] = batch[0].signature

    def unseen(self, wallet_address: str, batch: Sequence[RawTransaction]) -> List[RawTransaction]:
        """
        Oldest-first transactions strictly newer than the watermark.

        The newest-first batch is walked from its oldest end; everything up to
        and including the watermark signature is dropped. When the watermark
        is not in the batch (first poll, or more new transactions than the
        batch holds) the whole batch is returned.
        """
        last_seen = self.get(wallet_address)
        chronological = list(reversed(batch))
        if last_seen is None:
            return chronological

        for index, tx in enumerate(chronological):
            if tx.signature == last_seen:
                return chronological[index + 1:]
        return chronological

    def __contains__(self, wallet_address: str) -> bool:
        return wallet_address in self._last_seen
