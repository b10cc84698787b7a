"""Shared test fixtures: record factories and in-memory collaborators.

Nothing here touches the network. The fakes implement the same protocols
the production adapters do (wallet, swap aggregator, price feed, notifier,
market source) and record every call for assertions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest
from solders.keypair import Keypair  # type: ignore[import-untyped]

from snipebot.errors import NoWalletError
from snipebot.models.token import Recommendation, RiskLevel, ScoringResult, TokenListing, TokenRecord
from snipebot.models.trade import Quote, SwapReceipt
from snipebot.trading.jupiter_swap import WSOL_MINT

NOW = 1_700_000_000.0
MINT = "Mint1111111111111111111111111111111111111111"


# ── Factories ──────────────────────────────────────────────────────────


@pytest.fixture
def make_listing() -> Callable[..., TokenListing]:
    def _make(address: str = MINT, observed_at: float = NOW, **fields) -> TokenListing:
        return TokenListing(address=address, observed_at=observed_at, **fields)

    return _make


@pytest.fixture
def make_scoring() -> Callable[..., ScoringResult]:
    def _make(
        score: int = 80,
        recommendation: Recommendation = Recommendation.BUY,
        confidence: int = 85,
        risk_level: RiskLevel = RiskLevel.LOW,
        predicted_multiple: float = 12.0,
        **extra,
    ) -> ScoringResult:
        return ScoringResult(
            score=score,
            recommendation=recommendation,
            confidence=confidence,
            risk_level=risk_level,
            predicted_multiple=predicted_multiple,
            **extra,
        )

    return _make


@pytest.fixture
def make_record() -> Callable[..., TokenRecord]:
    def _make(address: str = MINT, **fields) -> TokenRecord:
        defaults = {
            "name": "Test Token",
            "symbol": "TEST",
            "liquidity": 5_000.0,
            "market_cap": 20_000.0,
            "volume_24h": 15_000.0,
            "last_updated": NOW,
        }
        defaults.update(fields)
        return TokenRecord(address=address, **defaults)

    return _make


# ── Fake collaborators ─────────────────────────────────────────────────


class FakeWallet:
    """WalletProvider with per-user SOL and token balances."""

    def __init__(self) -> None:
        self.keypairs: dict[int, Keypair] = {}
        self.balances: dict[int, float] = {}
        self.token_balances: dict[tuple[int, str], float] = {}
        self.balance_error: Exception | None = None

    def fund(self, user_id: int, sol: float) -> Keypair:
        kp = self.keypairs.setdefault(user_id, Keypair())
        self.balances[user_id] = sol
        return kp

    async def resolve_signer(self, user_id: int) -> Keypair:
        if user_id not in self.keypairs:
            raise NoWalletError(user_id)
        return self.keypairs[user_id]

    async def get_balance(self, user_id: int) -> float:
        return self.balances.get(user_id, 0.0)

    async def get_token_balance(self, user_id: int, mint: str) -> float:
        if self.balance_error is not None:
            raise self.balance_error
        return self.token_balances.get((user_id, mint), 0.0)


class FakeSwap:
    """SwapAggregator with a fixed SOL-per-token rate. Buys credit the FakeWallet."""

    def __init__(self, wallet: FakeWallet, price_sol: float = 0.0001) -> None:
        self.wallet = wallet
        self.price_sol = price_sol
        self.quotes: list[Quote] = []
        self.swaps: list[Quote] = []
        self.quote_error: Exception | None = None
        self.swap_errors: list[Exception] = []
        self.swap_delay = 0.0

    async def quote(self, input_mint: str, output_mint: str, amount: float, slippage_bps: int) -> Quote:
        if self.quote_error is not None:
            raise self.quote_error
        if input_mint == WSOL_MINT:
            out = amount / self.price_sol
        else:
            out = amount * self.price_sol
        q = Quote(input_mint, output_mint, amount, out, slippage_bps)
        self.quotes.append(q)
        return q

    async def swap(self, signer: Keypair, quote: Quote) -> SwapReceipt:
        if self.swap_delay:
            await asyncio.sleep(self.swap_delay)
        if self.swap_errors:
            raise self.swap_errors.pop(0)
        self.swaps.append(quote)
        user_id = next(uid for uid, kp in self.wallet.keypairs.items() if kp.pubkey() == signer.pubkey())
        if quote.input_mint == WSOL_MINT:
            key = (user_id, quote.output_mint)
            self.wallet.token_balances[key] = self.wallet.token_balances.get(key, 0.0) + quote.out_amount
            self.wallet.balances[user_id] -= quote.in_amount
        else:
            key = (user_id, quote.input_mint)
            self.wallet.token_balances[key] = self.wallet.token_balances.get(key, 0.0) - quote.in_amount
            self.wallet.balances[user_id] += quote.out_amount
        return SwapReceipt(signature=f"sig{len(self.swaps)}", received_amount=quote.out_amount)


class FakePriceFeed:
    def __init__(self, prices: dict[str, float] | None = None) -> None:
        self.prices = prices or {}
        self.calls = 0
        self.errors: list[Exception] = []

    async def get_price(self, mint: str) -> float:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.prices[mint]


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[int, object]] = []

    async def notify(self, user_id: int, event) -> None:
        self.events.append((user_id, event))

    def kinds(self) -> list[str]:
        return [e.kind for _, e in self.events]


class FakeSource:
    def __init__(self, name: str, listings=None, error: Exception | None = None, delay: float = 0.0) -> None:
        self.name = name
        self.listings = listings or []
        self.error = error
        self.delay = delay
        self.calls = 0

    async def list_recent_listings(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.listings)

    async def close(self) -> None:
        pass


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def swap(wallet: FakeWallet) -> FakeSwap:
    return FakeSwap(wallet)


@pytest.fixture
def price_feed() -> FakePriceFeed:
    return FakePriceFeed()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fake_source() -> Callable[..., FakeSource]:
    return FakeSource

