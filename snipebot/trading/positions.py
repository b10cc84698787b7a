"""PositionBook: the shared set of positions, behind one asyncio.Lock.

Status transitions go through the book so that two callers can never both
close the same position: OPEN → CLOSING is a compare-and-set, and CLOSED is
terminal. A closed position leaves the active set for a bounded history;
per-user totals keep counting after it falls out of that history.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass

from loguru import logger

from snipebot.models.trade import CloseReason, Position, PositionStatus


@dataclass
class ClosedTally:
    count: int = 0
    realized_pnl_sol: float = 0.0
    best_multiple: float = 0.0

    def add(self, position: Position) -> None:
        self.count += 1
        self.realized_pnl_sol += position.invested * position.pnl_pct / 100
        self.best_multiple = max(self.best_multiple, 1 + position.pnl_pct / 100)


class PositionBook:
    def __init__(self, history_size: int = 500) -> None:
        self._positions: dict[str, Position] = {}
        self._history: OrderedDict[str, Position] = OrderedDict()
        self._history_size = history_size
        self._tallies: dict[int, ClosedTally] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._positions) + len(self._history)

    async def add(self, position: Position) -> None:
        async with self._lock:
            self._positions[position.id] = position

    def get(self, position_id: str) -> Position | None:
        return self._positions.get(position_id) or self._history.get(position_id)

    def active(self, user_id: int | None = None) -> list[Position]:
        return [
            p for p in self._positions.values()
            if user_id is None or p.user_id == user_id
        ]

    def closed(self, user_id: int | None = None) -> list[Position]:
        """Recently closed positions still held in history, oldest first."""
        return [
            p for p in self._history.values()
            if user_id is None or p.user_id == user_id
        ]

    def closed_tally(self, user_id: int) -> ClosedTally:
        tally = self._tallies.get(user_id, ClosedTally())
        return ClosedTally(tally.count, tally.realized_pnl_sol, tally.best_multiple)

    def find_active(self, user_id: int, token_address: str) -> Position | None:
        for position in self._positions.values():
            if position.user_id == user_id and position.token_address == token_address:
                return position
        return None

    async def mark_price(self, position_id: str, price: float) -> Position | None:
        async with self._lock:
            position = self._positions.get(position_id)
            if position is None or not position.is_active:
                return None
            position.last_price = price
            position.pnl_pct = position.compute_pnl_pct(price)
            return position

    async def begin_close(self, position_id: str) -> bool:
        """OPEN → CLOSING. False if the position is already closing or closed."""
        async with self._lock:
            position = self._positions.get(position_id)
            if position is None or position.status != PositionStatus.OPEN:
                return False
            position.status = PositionStatus.CLOSING
            return True

    async def reopen(self, position_id: str) -> None:
        """CLOSING → OPEN after an exit that did not go through."""
        async with self._lock:
            position = self._positions.get(position_id)
            if position is not None and position.status == PositionStatus.CLOSING:
                position.status = PositionStatus.OPEN

    async def close(
        self,
        position_id: str,
        reason: CloseReason,
        *,
        price: float | None = None,
        sol_received: float | None = None,
    ) -> Position | None:
        """Terminal transition. Returns None if the position was already closed."""
        async with self._lock:
            position = self._positions.get(position_id)
            if position is None or position.status == PositionStatus.CLOSED:
                return None
            position.status = PositionStatus.CLOSED
            position.close_reason = reason
            position.closed_at = time.time()
            if price is not None:
                position.last_price = price
            if sol_received is not None and position.invested > 0:
                position.pnl_pct = (sol_received - position.invested) / position.invested * 100
            elif reason == CloseReason.ERROR_ABANDONED:
                position.pnl_pct = -100.0

            del self._positions[position_id]
            self._history[position_id] = position
            while len(self._history) > self._history_size:
                self._history.popitem(last=False)
            self._tallies.setdefault(position.user_id, ClosedTally()).add(position)
        logger.info(
            f"[POSITIONS] Closed {position.symbol} ({position.token_address[:12]}) "
            f"reason={reason.value} pnl={position.pnl_pct:+.1f}%"
        )
        return position

    async def reduce(self, position_id: str, fraction: float) -> Position | None:
        """Partial sell: scale amount held and invested basis by (1 - fraction)."""
        async with self._lock:
            position = self._positions.get(position_id)
            if position is None or not position.is_active:
                return None
            keep = max(0.0, 1.0 - fraction)
            position.amount_held *= keep
            position.invested *= keep
            return position
