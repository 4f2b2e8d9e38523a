"""
Error kinds raised across the tracker pipeline.

Only FetchFailure and NotificationError abort a wallet's batch; the position
errors are handled per transaction by the poll worker.
"""


class WhaleTrackerError(Exception):
    pass


class FetchFailure(WhaleTrackerError):
    """Transaction source unreachable, rate-limited or returned garbage."""

    def __init__(self, address: str, message: str, status_code: int = None):
        super().__init__(f"Fetch failed for {address}: {message}")
        self.address = address
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class DuplicateSignature(WhaleTrackerError):
    """A buy signature already opened a position. Benign on retries."""

    def __init__(self, signature: str, existing=None):
        super().__init__(f"Buy signature already recorded: {signature}")
        self.signature = signature
        self.existing = existing


class PositionAlreadyOpen(WhaleTrackerError):
    def __init__(self, wallet_address: str, token_mint: str, existing=None):
        super().__init__(f"Open position already exists for {wallet_address} {token_mint}")
        self.wallet_address = wallet_address
        self.token_mint = token_mint
        self.existing = existing


class NoOpenPosition(WhaleTrackerError):
    """A sell arrived with no matching buy (e.g. bought before tracking began)."""

    def __init__(self, wallet_address: str, token_mint: str):
        super().__init__(f"No open position for sell: {wallet_address} {token_mint}")
        self.wallet_address = wallet_address
        self.token_mint = token_mint


class OutOfOrderSell(WhaleTrackerError):
    """Sell timestamp precedes the open position's buy timestamp."""

    def __init__(self, signature: str, hold_duration_seconds: int):
        super().__init__(
            f"Sell {signature} predates its buy by {-hold_duration_seconds}s"
        )
        self.signature = signature
        self.hold_duration_seconds = hold_duration_seconds


class NotificationError(WhaleTrackerError):
    pass
