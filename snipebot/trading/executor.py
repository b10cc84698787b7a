"""Execution engine: turns a buy/sell decision into a swap and a Position.

Flow (buy):
1. Resolve the user's signer (NoWalletError)
2. Balance check against amount + fee reserve (InsufficientBalanceError)
3. Quote SOL → token (QuoteUnavailableError)
4. Swap (SwapExecutionError)
5. On success: OPEN Position in the book, monitor started, BuySucceeded

Every call returns exactly one TradeResult and emits exactly one
success/failure notification. Failures never propagate to the caller.
"""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from snipebot.errors import InsufficientBalanceError, SnipeBotError, SwapExecutionError
from snipebot.models.events import BuyFailed, BuySucceeded, NotificationEvent, SellFailed, SellSucceeded
from snipebot.models.token import ScoringResult
from snipebot.models.trade import CloseReason, Position, SniperPolicy, TradeResult
from snipebot.notifications import Notifier
from snipebot.trading.jupiter_swap import WSOL_MINT, SwapAggregator
from snipebot.trading.positions import PositionBook
from snipebot.trading.wallet import WalletProvider

PositionHook = Callable[[Position], object]


class ExecutionEngine:
    def __init__(
        self,
        *,
        wallet: WalletProvider,
        swap: SwapAggregator,
        book: PositionBook,
        notifier: Notifier,
        fee_reserve_sol: float = 0.01,
        default_target_multiple: float = 10.0,
        on_position_opened: PositionHook | None = None,
        on_position_closed: PositionHook | None = None,
    ) -> None:
        self._wallet = wallet
        self._swap = swap
        self._book = book
        self._notifier = notifier
        self._fee_reserve = fee_reserve_sol
        self._default_target_multiple = default_target_multiple
        # set by the app once the supervisor exists
        self.on_position_opened = on_position_opened
        self.on_position_closed = on_position_closed
        self._inflight_buys: set[tuple[int, str]] = set()

    @property
    def book(self) -> PositionBook:
        return self._book

    async def _notify(self, user_id: int, event: NotificationEvent) -> None:
        try:
            await self._notifier.notify(user_id, event)
        except Exception as e:
            logger.warning(f"[EXEC] Notification {event.kind} for user {user_id} failed: {e}")

    # ─── Buy ─────────────────────────────────────────────────────────

    async def buy(
        self,
        user_id: int,
        token_address: str,
        amount: float,
        slippage_bps: int,
        *,
        policy: SniperPolicy | None = None,
        symbol: str = "UNK",
        scoring: ScoringResult | None = None,
        original_amount: float | None = None,
    ) -> TradeResult:
        key = (user_id, token_address)
        if key in self._inflight_buys:
            logger.info(f"[EXEC] Buy of {token_address[:12]} already in flight for user {user_id}")
            return TradeResult(
                success=False,
                side="buy",
                token_address=token_address,
                error="buy already in flight for this token",
                error_type="DuplicateBuy",
            )

        self._inflight_buys.add(key)
        try:
            return await self._buy(
                user_id, token_address, amount, slippage_bps,
                policy=policy, symbol=symbol, scoring=scoring, original_amount=original_amount,
            )
        except Exception as e:
            if isinstance(e, SnipeBotError):
                logger.warning(f"[EXEC] Buy {token_address[:12]} for user {user_id} failed: {type(e).__name__}: {e}")
            else:
                logger.error(f"[EXEC] Unexpected buy error for {token_address[:12]}: {e}")
            await self._notify(user_id, BuyFailed(
                token_address=token_address,
                error=str(e),
                error_type=type(e).__name__,
                scoring=scoring,
            ))
            return TradeResult.failure("buy", token_address, e)
        finally:
            self._inflight_buys.discard(key)

    async def _buy(
        self,
        user_id: int,
        token_address: str,
        amount: float,
        slippage_bps: int,
        *,
        policy: SniperPolicy | None,
        symbol: str,
        scoring: ScoringResult | None,
        original_amount: float | None,
    ) -> TradeResult:
        signer = await self._wallet.resolve_signer(user_id)
        balance = await self._wallet.get_balance(user_id)
        required = amount + self._fee_reserve
        if balance < required:
            raise InsufficientBalanceError(f"balance {balance:.4f} SOL < required {required:.4f} SOL")

        logger.info(f"[EXEC] Buying {token_address[:12]} for user {user_id}: {amount:.4f} SOL ({slippage_bps}bps)")
        quote = await self._swap.quote(WSOL_MINT, token_address, amount, slippage_bps)
        receipt = await self._swap.swap(signer, quote)
        received = receipt.received_amount
        if received <= 0:
            raise SwapExecutionError(f"swap {receipt.signature} returned no tokens")

        entry_price = amount / received
        target_multiple = policy.target_multiple if policy else self._default_target_multiple
        stop_loss = None
        if policy is not None and policy.stop_loss_pct is not None:
            stop_loss = entry_price * (1 + policy.stop_loss_pct / 100)

        position = Position(
            user_id=user_id,
            token_address=token_address,
            amount_held=received,
            invested=amount,
            entry_price=entry_price,
            target_price=entry_price * target_multiple,
            stop_loss=stop_loss,
            symbol=symbol,
            signature=receipt.signature,
        )
        await self._book.add(position)
        if self.on_position_opened is not None:
            self.on_position_opened(position)

        logger.info(
            f"[EXEC] Opened {symbol} ({token_address[:12]}) for user {user_id}: "
            f"{received:,.2f} tokens @ {entry_price:.10g} SOL tx={receipt.signature}"
        )
        await self._notify(user_id, BuySucceeded(
            token_address=token_address,
            sol_spent=amount,
            amount_received=received,
            price=entry_price,
            signature=receipt.signature,
            position_id=position.id,
            original_amount=original_amount,
            slippage_bps=slippage_bps,
            scoring=scoring,
        ))
        return TradeResult(
            success=True,
            side="buy",
            token_address=token_address,
            signature=receipt.signature,
            amount_in=amount,
            amount_out=received,
            price=entry_price,
            slippage_bps=slippage_bps,
            position_id=position.id,
        )

    # ─── Sell ────────────────────────────────────────────────────────

    async def sell(
        self,
        user_id: int,
        token_address: str,
        percentage: float = 100.0,
        slippage_bps: int = 1000,
        *,
        reason: CloseReason = CloseReason.MANUAL,
        position_id: str | None = None,
        notify_failure: bool = True,
    ) -> TradeResult:
        """Sell `percentage` of a position, or of the wallet holding when no position is open.

        The amount is bound to `position_id` (or the user's active position in
        the token) and never exceeds what that position holds. 100% closes the
        position with `reason`. Exit retries pass `notify_failure=False` and
        report the final outcome themselves.
        """
        try:
            if not 0 < percentage <= 100:
                raise ValueError(f"percentage must be in (0, 100], got {percentage}")
            return await self._sell(user_id, token_address, percentage, slippage_bps, reason, position_id)
        except Exception as e:
            if isinstance(e, SnipeBotError):
                logger.warning(f"[EXEC] Sell {token_address[:12]} for user {user_id} failed: {type(e).__name__}: {e}")
            else:
                logger.error(f"[EXEC] Unexpected sell error for {token_address[:12]}: {e}")
            if notify_failure:
                await self._notify(user_id, SellFailed(
                    token_address=token_address,
                    error=str(e),
                    error_type=type(e).__name__,
                ))
            result = TradeResult.failure("sell", token_address, e)
            result.slippage_bps = slippage_bps
            result.position_id = position_id
            return result

    async def _sell(
        self,
        user_id: int,
        token_address: str,
        percentage: float,
        slippage_bps: int,
        reason: CloseReason,
        position_id: str | None,
    ) -> TradeResult:
        signer = await self._wallet.resolve_signer(user_id)
        position = self._book.get(position_id) if position_id else self._book.find_active(user_id, token_address)
        held = await self._wallet.get_token_balance(user_id, token_address)
        if held <= 0:
            raise InsufficientBalanceError(f"no {token_address[:12]} balance to sell")

        fraction = min(percentage, 100.0) / 100
        if position is not None:
            amount = min(held, position.amount_held * fraction)
        else:
            amount = held * fraction
        if amount <= 0:
            raise InsufficientBalanceError(f"position holds no {token_address[:12]} to sell")

        logger.info(
            f"[EXEC] Selling {percentage:g}% of {token_address[:12]} for user {user_id} "
            f"({amount:,.2f} tokens, {slippage_bps}bps)"
        )
        quote = await self._swap.quote(token_address, WSOL_MINT, amount, slippage_bps)
        receipt = await self._swap.swap(signer, quote)
        sol_received = receipt.received_amount
        price = sol_received / amount

        if position is not None:
            if percentage >= 100:
                closed = await self._book.close(position.id, reason, price=price, sol_received=sol_received)
                if closed is not None and self.on_position_closed is not None:
                    self.on_position_closed(closed)
            else:
                await self._book.reduce(position.id, fraction)

        await self._notify(user_id, SellSucceeded(
            token_address=token_address,
            percentage=percentage,
            amount_sold=amount,
            sol_received=sol_received,
            price=price,
            signature=receipt.signature,
        ))
        return TradeResult(
            success=True,
            side="sell",
            token_address=token_address,
            signature=receipt.signature,
            amount_in=amount,
            amount_out=sol_received,
            price=price,
            slippage_bps=slippage_bps,
            position_id=position.id if position is not None else None,
        )
