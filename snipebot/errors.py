"""Exception taxonomy for the discovery → execution pipeline.

Source and scoring errors are isolated by the loops that produce them.
Wallet and execution errors end a single buy/sell attempt and are turned
into a failed TradeResult plus a notification.
"""


class SnipeBotError(Exception):
    pass


class NoWalletError(SnipeBotError):
    """User has no resolvable signer."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"No wallet found for user {user_id}")
        self.user_id = user_id


class InsufficientBalanceError(SnipeBotError):
    pass


class QuoteUnavailableError(SnipeBotError):
    pass


class SwapExecutionError(SnipeBotError):
    pass


class SourceUnavailableError(SnipeBotError):
    """A market source failed or timed out. Never fatal to the aggregator."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class ScoringUnavailableError(SnipeBotError):
    pass


class WalletRpcError(SnipeBotError):
    """Balance lookup failed at the RPC layer (not the same as a zero balance)."""


class PriceUnavailableError(SnipeBotError):
    pass


class SniperNotEnabledError(SnipeBotError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"Sniper not enabled for user {user_id}")
        self.user_id = user_id
