"""Tests for SniperEngine: enable/disable lifecycle and feed-driven buys."""

from unittest.mock import AsyncMock

import pytest

from snipebot.discovery.feed import TokenFeed
from snipebot.discovery.registry import TokenRegistry
from snipebot.errors import InsufficientBalanceError, NoWalletError, QuoteUnavailableError, SniperNotEnabledError
from snipebot.models.token import RiskLevel
from snipebot.models.trade import PositionStatus, SniperPolicy
from snipebot.scoring.service import ScoringService
from snipebot.sniper.decision import Rejection
from snipebot.sniper.engine import SniperEngine
from snipebot.trading.executor import ExecutionEngine
from snipebot.trading.positions import PositionBook

USER = 1


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def feed() -> TokenFeed:
    return TokenFeed()


@pytest.fixture
def scorer(make_scoring):
    mock = AsyncMock()
    mock.analyze = AsyncMock(return_value=make_scoring())
    return mock


@pytest.fixture
def book() -> PositionBook:
    return PositionBook()


@pytest.fixture
def engine(feed, scorer, wallet, swap, notifier, book) -> SniperEngine:
    scoring = ScoringService(scorer, TokenRegistry())
    executor = ExecutionEngine(wallet=wallet, swap=swap, book=book, notifier=notifier)
    return SniperEngine(feed=feed, scoring=scoring, executor=executor, wallet=wallet)


def _policy(**overrides) -> SniperPolicy:
    values = {"buy_amount": 0.1, "min_score": 75, "risk_tolerance": RiskLevel.MEDIUM}
    values.update(overrides)
    return SniperPolicy(**values)


# ── Lifecycle ──────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_enable_without_wallet_fails(self, engine, feed):
        with pytest.raises(NoWalletError):
            await engine.enable(USER, _policy())

        assert not engine.is_enabled(USER)
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_enable_with_low_balance_fails(self, engine, feed, wallet):
        wallet.fund(USER, 0.1)

        with pytest.raises(InsufficientBalanceError):
            await engine.enable(USER, _policy(buy_amount=0.1))

        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_reenable_replaces_policy_keeps_one_subscription(self, engine, feed, wallet):
        wallet.fund(USER, 1.0)

        await engine.enable(USER, _policy(min_score=75))
        await engine.enable(USER, _policy(min_score=90))

        assert feed.subscriber_count == 1
        assert engine.policy(USER).min_score == 90
        assert engine.is_enabled(USER)

    @pytest.mark.asyncio
    async def test_reenable_same_policy_buys_once(self, engine, feed, wallet, swap, make_record):
        wallet.fund(USER, 1.0)
        policy = _policy()

        await engine.enable(USER, policy)
        await engine.enable(USER, policy)
        feed.publish(make_record())
        await feed.drain()

        assert feed.subscriber_count == 1
        assert len(swap.swaps) == 1

    @pytest.mark.asyncio
    async def test_disable_is_idempotent(self, engine, feed, wallet):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        await engine.disable(USER)
        await engine.disable(USER)

        assert not engine.is_enabled(USER)
        assert engine.policy(USER) is None
        assert feed.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_update_policy(self, engine, wallet):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        policy = await engine.update_policy(USER, max_slippage_bps=1500, risk_tolerance="HIGH")

        assert policy.max_slippage_bps == 1500
        assert policy.risk_tolerance == RiskLevel.HIGH
        assert engine.policy(USER) is policy
        assert engine.is_enabled(USER)

    @pytest.mark.asyncio
    async def test_update_policy_requires_enabled_sniper(self, engine):
        with pytest.raises(SniperNotEnabledError):
            await engine.update_policy(USER, min_score=90)

        assert engine.policy(USER) is None

    @pytest.mark.asyncio
    async def test_update_policy_disabled_unsubscribes(self, engine, feed, wallet, swap, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        policy = await engine.update_policy(USER, enabled=False)
        feed.publish(make_record())
        await feed.drain()

        assert not policy.enabled
        assert not engine.is_enabled(USER)
        assert engine.policy(USER) is None
        assert feed.subscriber_count == 0
        assert swap.swaps == []

    @pytest.mark.asyncio
    async def test_stats_survive_disable(self, engine, feed, wallet, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())
        feed.publish(make_record())
        await feed.drain()

        await engine.disable(USER)

        assert engine.policy(USER) is None
        assert engine.stats(USER).successful_snipes == 1
        assert engine.stats(USER).active_positions == 1


# ── Feed-driven buys ───────────────────────────────────────────────────


class TestSniping:
    @pytest.mark.asyncio
    async def test_qualifying_token_is_bought_once(self, engine, feed, wallet, swap, book, notifier, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        feed.publish(make_record(liquidity=5_000.0))
        await feed.drain()

        assert len(swap.swaps) == 1
        assert swap.swaps[0].in_amount == pytest.approx(0.15)
        positions = book.active(USER)
        assert len(positions) == 1
        assert positions[0].status == PositionStatus.OPEN
        assert notifier.kinds() == ["buy_success"]
        stats = engine.stats(USER)
        assert stats.total_snipes == stats.successful_snipes == 1
        assert stats.active_positions == 1

    @pytest.mark.asyncio
    async def test_disable_before_delivery_drops_token(self, engine, feed, wallet, swap, scorer, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        feed.publish(make_record())
        await engine.disable(USER)
        await feed.drain()

        assert swap.swaps == []
        assert scorer.analyze.await_count == 0

    @pytest.mark.asyncio
    async def test_low_liquidity_never_reaches_scorer(self, engine, wallet, scorer, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        decision = await engine.evaluate(USER, make_record(liquidity=50.0))

        assert decision.rejection == Rejection.LOW_LIQUIDITY
        assert scorer.analyze.await_count == 0

    @pytest.mark.asyncio
    async def test_rejected_token_is_not_bought(self, engine, wallet, swap, scorer, make_record, make_scoring):
        scorer.analyze.return_value = make_scoring(risk_level=RiskLevel.HIGH)
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())

        decision = await engine.evaluate(USER, make_record())

        assert decision.rejection == Rejection.RISK_TOO_HIGH
        assert swap.swaps == []
        assert engine.stats(USER).total_snipes == 0

    @pytest.mark.asyncio
    async def test_cached_score_used_when_scoring_not_required(self, engine, wallet, swap, scorer, make_record, make_scoring):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy(scoring_required=False))

        await engine.evaluate(USER, make_record(scoring=make_scoring(score=95)))

        assert scorer.analyze.await_count == 0
        assert len(swap.swaps) == 1

    @pytest.mark.asyncio
    async def test_failed_buy_counted_and_notified(self, engine, wallet, swap, notifier, make_record):
        wallet.fund(USER, 1.0)
        await engine.enable(USER, _policy())
        swap.quote_error = QuoteUnavailableError("no route")

        decision = await engine.evaluate(USER, make_record())

        assert decision.buy
        assert notifier.kinds() == ["buy_failed"]
        stats = engine.stats(USER)
        assert stats.failed_snipes == 1
        assert stats.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_shutdown_disables_everyone(self, engine, feed, wallet):
        for user_id in (1, 2, 3):
            wallet.fund(user_id, 1.0)
            await engine.enable(user_id, _policy())

        await engine.shutdown()

        assert feed.subscriber_count == 0
        assert not any(engine.is_enabled(u) for u in (1, 2, 3))
