"""Position monitors: one cancellable task per open position.

Each monitor waits an initial delay, then polls the price feed. On an exit
condition it sells 100% with escalating slippage; if every attempt fails
the position goes back to OPEN, an ExitFailed event is sent and polling
continues. Price or RPC errors back off exponentially up to a ceiling and
never close the position.

PositionSupervisor owns the tasks: at most one per position id, cancelled
after the terminal transition, all cancelled on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from snipebot.discovery.registry import TokenRegistry
from snipebot.models.events import ExitFailed, PositionClosed
from snipebot.models.trade import CloseReason, Position
from snipebot.notifications import Notifier
from snipebot.trading.close_conditions import check_close_conditions
from snipebot.trading.executor import ExecutionEngine
from snipebot.trading.positions import PositionBook
from snipebot.trading.price_feed import PriceFeed


@dataclass(frozen=True)
class MonitorConfig:
    take_profit_pct: float = 1000.0
    initial_delay_sec: float = 10.0
    poll_interval_sec: float = 15.0
    backoff_ceiling_sec: float = 300.0
    exit_min_confidence: int = 70
    max_sell_attempts: int = 3
    exit_slippage_bps: tuple[int, ...] = field(default=(1000, 1500, 2500))


def backoff_delay(interval: float, failures: int, ceiling: float) -> float:
    if failures <= 0:
        return interval
    return min(ceiling, interval * 2**failures)


class PositionMonitor:
    def __init__(
        self,
        position_id: str,
        *,
        book: PositionBook,
        price_feed: PriceFeed,
        executor: ExecutionEngine,
        notifier: Notifier,
        registry: TokenRegistry | None = None,
        config: MonitorConfig | None = None,
    ) -> None:
        self.position_id = position_id
        self._book = book
        self._price_feed = price_feed
        self._executor = executor
        self._notifier = notifier
        self._registry = registry
        self._config = config or MonitorConfig()
        self.polls = 0
        self.consecutive_errors = 0

    async def run(self) -> None:
        cfg = self._config
        await asyncio.sleep(cfg.initial_delay_sec)
        while True:
            position = self._book.get(self.position_id)
            if position is None or not position.is_active:
                return
            try:
                if await self.check_once(position):
                    return
                self.consecutive_errors = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.consecutive_errors += 1
                logger.warning(
                    f"[MONITOR] {position.symbol} ({position.token_address[:12]}) poll failed "
                    f"({self.consecutive_errors} in a row): {e}"
                )
            await asyncio.sleep(backoff_delay(cfg.poll_interval_sec, self.consecutive_errors, cfg.backoff_ceiling_sec))

    async def check_once(self, position: Position) -> bool:
        """One poll. Returns True once the position is closed."""
        self.polls += 1
        price = await self._price_feed.get_price(position.token_address)
        await self._book.mark_price(position.id, price)

        scoring = None
        if self._registry is not None:
            record = self._registry.get(position.token_address)
            scoring = record.scoring if record is not None else None

        reason = check_close_conditions(
            position,
            price,
            take_profit_pct=self._config.take_profit_pct,
            scoring=scoring,
            exit_min_confidence=self._config.exit_min_confidence,
        )
        if reason is None:
            logger.debug(f"[MONITOR] {position.symbol}: price={price:.10g} pnl={position.pnl_pct:+.1f}%")
            return False

        logger.info(f"[MONITOR] {position.symbol} ({position.token_address[:12]}) exit: {reason.value} pnl={position.pnl_pct:+.1f}%")
        return await self._exit(position, reason)

    async def _exit(self, position: Position, reason: CloseReason) -> bool:
        if not await self._book.begin_close(position.id):
            current = self._book.get(position.id)
            return current is None or not current.is_active

        cfg = self._config
        last_error = ""
        for attempt in range(cfg.max_sell_attempts):
            slippage = cfg.exit_slippage_bps[min(attempt, len(cfg.exit_slippage_bps) - 1)]
            if attempt:
                logger.info(f"[MONITOR] Sell retry #{attempt + 1} for {position.symbol} with slippage {slippage}bps")
            result = await self._executor.sell(
                position.user_id,
                position.token_address,
                100.0,
                slippage,
                reason=reason,
                position_id=position.id,
                notify_failure=False,
            )
            if result.success:
                await self._notify_closed(position, reason, result.amount_out or 0.0, result.signature)
                return True
            if result.error_type == "InsufficientBalanceError":
                # Tokens are gone from the wallet; nothing left to sell
                await self._book.close(position.id, CloseReason.ERROR_ABANDONED)
                await self._notify_closed(position, CloseReason.ERROR_ABANDONED, 0.0, None)
                return True
            last_error = result.error or "unknown"

        await self._book.reopen(position.id)
        logger.warning(
            f"[MONITOR] Exit of {position.symbol} failed after {cfg.max_sell_attempts} attempts, "
            f"position stays open: {last_error}"
        )
        try:
            await self._notifier.notify(position.user_id, ExitFailed(
                position_id=position.id,
                token_address=position.token_address,
                reason=reason.value,
                attempts=cfg.max_sell_attempts,
                error=last_error,
            ))
        except Exception as e:
            logger.warning(f"[MONITOR] ExitFailed notification failed: {e}")
        return False

    async def _notify_closed(
        self, position: Position, reason: CloseReason, sol_received: float, signature: str | None,
    ) -> None:
        try:
            await self._notifier.notify(position.user_id, PositionClosed(
                position_id=position.id,
                token_address=position.token_address,
                symbol=position.symbol,
                reason=reason.value,
                pnl_pct=position.pnl_pct,
                sol_received=sol_received,
                signature=signature,
            ))
        except Exception as e:
            logger.warning(f"[MONITOR] PositionClosed notification failed: {e}")


MonitorFactory = Callable[[Position], PositionMonitor]


class PositionSupervisor:
    def __init__(self, monitor_factory: MonitorFactory) -> None:
        self._factory = monitor_factory
        self._tasks: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def is_running(self, position_id: str) -> bool:
        task = self._tasks.get(position_id)
        return task is not None and not task.done()

    def start(self, position: Position) -> asyncio.Task:
        """Start the monitor for `position`, or return the one already running."""
        existing = self._tasks.get(position.id)
        if existing is not None and not existing.done():
            return existing

        monitor = self._factory(position)
        task = asyncio.create_task(monitor.run(), name=f"monitor:{position.id}")
        self._tasks[position.id] = task
        task.add_done_callback(lambda t, pid=position.id: self._on_done(pid, t))
        logger.info(f"[MONITOR] Started monitor for {position.symbol} ({position.token_address[:12]})")
        return task

    def _on_done(self, position_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(position_id) is task:
            del self._tasks[position_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[MONITOR] Monitor {position_id} crashed: {task.exception()}")

    def stop(self, position_id: str) -> bool:
        """Cancel the monitor of a closed position. The calling monitor is left to return on its own."""
        task = self._tasks.get(position_id)
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def on_position_closed(self, position: Position) -> None:
        self.stop(position.id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info(f"[MONITOR] Stopped {len(tasks)} position monitors")
