from abc import ABC, abstractmethod
from typing import List, Optional, Dict

from .models import RawTransaction


class TransactionSource(ABC):
    """
    Abstract Base Class for transaction sources.
    Responsible for fetching wallet history and normalizing it into RawTransaction.
    """

    @abstractmethod
    async def fetch(self, address: str, limit: int) -> List[RawTransaction]:
        """Recent transactions for address, newest first. Raises FetchFailure."""
        pass

    @abstractmethod
    async def get_token_creation_time(self, mint: str) -> Optional[int]:
        """Unix timestamp of the mint's first transaction, or None if unknown."""
        pass

    async def get_token_metadata(self, mint: str) -> Dict[str, str]:
        """Display name and symbol for a mint. Defaults to a shortened address."""
        return {"name": f"{mint[:4]}...{mint[-4:]}", "symbol": mint[:6]}
