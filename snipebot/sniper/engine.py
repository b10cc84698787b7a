"""Sniper engine: per-user subscriptions to the new-token feed.

enable() checks the wallet, stores the policy and registers one feed
subscription per user; re-enabling only swaps the policy. disable() drops
the policy and the subscription: deliveries that have not started yet are
discarded, evaluations already running finish. Stats outlive disable.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from snipebot.discovery.feed import TokenFeed
from snipebot.errors import InsufficientBalanceError, SniperNotEnabledError
from snipebot.models.token import ScoringResult, TokenRecord
from snipebot.models.trade import SniperPolicy, SniperStats, TradeResult
from snipebot.scoring.service import ScoringService
from snipebot.sniper.decision import Decision, DecisionLimits, check_liquidity, decide_scored
from snipebot.sniper.state import Subscription, UserStateRegistry
from snipebot.trading.executor import ExecutionEngine
from snipebot.trading.wallet import WalletProvider


class SniperEngine:
    def __init__(
        self,
        *,
        feed: TokenFeed,
        scoring: ScoringService,
        executor: ExecutionEngine,
        wallet: WalletProvider,
        states: UserStateRegistry | None = None,
        limits: DecisionLimits | None = None,
        fee_reserve_sol: float = 0.01,
    ) -> None:
        self._feed = feed
        self._scoring = scoring
        self._executor = executor
        self._wallet = wallet
        self._states = states or UserStateRegistry()
        self._limits = limits or DecisionLimits()
        self._fee_reserve = fee_reserve_sol

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def enable(self, user_id: int, policy: SniperPolicy) -> None:
        """Raises NoWalletError / InsufficientBalanceError; nothing is registered then."""
        async with self._states.lock(user_id):
            await self._wallet.resolve_signer(user_id)
            balance = await self._wallet.get_balance(user_id)
            required = policy.buy_amount + self._fee_reserve
            if balance < required:
                raise InsufficientBalanceError(
                    f"need {required:.4f} SOL to snipe, wallet has {balance:.4f} SOL"
                )

            state = self._states.ensure(user_id, policy)
            state.policy = policy
            if state.subscription is None:
                subscription = Subscription()
                state.subscription = subscription
                self._feed.subscribe(user_id, self._subscriber(user_id, subscription))
                logger.info(f"[SNIPER] Enabled for user {user_id}: {policy.buy_amount} SOL, min score {policy.min_score}")
            else:
                logger.info(f"[SNIPER] Policy updated for user {user_id}")

    async def disable(self, user_id: int) -> None:
        async with self._states.lock(user_id):
            self._disable_locked(user_id)

    def _disable_locked(self, user_id: int) -> None:
        self._states.remove(user_id)
        if self._feed.unsubscribe(user_id):
            logger.info(f"[SNIPER] Disabled for user {user_id}")

    async def update_policy(self, user_id: int, **changes) -> SniperPolicy:
        """Apply `changes` to the active policy. `enabled=False` disables the sniper."""
        async with self._states.lock(user_id):
            state = self._states.get(user_id)
            if state is None:
                raise SniperNotEnabledError(user_id)
            policy = SniperPolicy.model_validate({**state.policy.model_dump(), **changes})
            if not policy.enabled:
                self._disable_locked(user_id)
                return policy
            state.policy = policy
            logger.info(f"[SNIPER] Policy updated for user {user_id}: {sorted(changes)}")
            return policy

    def is_enabled(self, user_id: int) -> bool:
        state = self._states.get(user_id)
        return state is not None and state.enabled

    def policy(self, user_id: int) -> SniperPolicy | None:
        state = self._states.get(user_id)
        return state.policy if state is not None else None

    def stats(self, user_id: int) -> SniperStats:
        base = self._states.stats(user_id)
        book = self._executor.book
        closed = book.closed_tally(user_id)
        return SniperStats(
            total_snipes=base.total_snipes,
            successful_snipes=base.successful_snipes,
            failed_snipes=base.failed_snipes,
            active_positions=len(book.active(user_id)),
            closed_positions=closed.count,
            realized_pnl_sol=closed.realized_pnl_sol,
            best_multiple=closed.best_multiple,
        )

    # ─── Evaluation ──────────────────────────────────────────────────

    def _subscriber(self, user_id: int, subscription: Subscription):
        async def on_token(token: TokenRecord) -> None:
            state = self._states.get(user_id)
            if state is None or state.subscription is not subscription or not state.policy.enabled:
                logger.debug(f"[SNIPER] Dropped {token.address[:12]} for user {user_id}: subscription gone")
                return
            await self.evaluate(user_id, token)

        return on_token

    async def _scoring_for(self, token: TokenRecord, policy: SniperPolicy) -> ScoringResult:
        if policy.scoring_required:
            return await self._scoring.score(token)
        return self._scoring.cached(token.address) or token.scoring or ScoringResult.neutral()

    async def evaluate(self, user_id: int, token: TokenRecord) -> Decision:
        """Run the decision chain for one token and buy if it passes. Never raises."""
        state = self._states.get(user_id)
        if state is None:
            return Decision(buy=False, detail="no sniper state")
        policy = state.policy

        try:
            decision = check_liquidity(token, self._limits)
            if decision is None:
                scoring = await self._scoring_for(token, policy)
                decision = decide_scored(token, scoring, policy, self._limits)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SNIPER] Evaluation of {token.address[:12]} for user {user_id} failed: {e}")
            return Decision(buy=False, detail=f"evaluation error: {e}")

        if not decision.buy:
            logger.debug(f"[SNIPER] Skip {token.symbol} ({token.address[:12]}) for user {user_id}: {decision.detail}")
            return decision

        logger.info(
            f"[SNIPER] Sniping {token.symbol} ({token.address[:12]}) for user {user_id}: "
            f"{decision.amount:.4f} SOL, {decision.slippage_bps}bps, score {decision.scoring.score}"
        )
        result = await self._executor.buy(
            user_id,
            token.address,
            decision.amount,
            decision.slippage_bps,
            policy=policy,
            symbol=token.symbol,
            scoring=decision.scoring,
            original_amount=policy.buy_amount,
        )
        self._record(self._states.stats(user_id), result)
        return decision

    @staticmethod
    def _record(stats: SniperStats, result: TradeResult) -> None:
        if result.error_type == "DuplicateBuy":
            return
        stats.total_snipes += 1
        if result.success:
            stats.successful_snipes += 1
        else:
            stats.failed_snipes += 1

    async def shutdown(self) -> None:
        for user_id in self._states.enabled_users():
            await self.disable(user_id)
