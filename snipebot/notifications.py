"""Notification delivery for trade events.

The pipeline only ever calls `notify(user_id, event)`. LogNotifier always
logs; TelegramNotifier additionally sends an HTML message to the user's
chat (user ids are Telegram chat ids). Delivery failures are logged and
never raised back into trading code.
"""

from __future__ import annotations

import asyncio
import html as html_mod
from typing import Protocol, runtime_checkable

import httpx
from loguru import logger

from snipebot.models.events import (
    BuyFailed,
    BuySucceeded,
    ExitFailed,
    NotificationEvent,
    PositionClosed,
    SellFailed,
    SellSucceeded,
)


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, user_id: int, event: NotificationEvent) -> None: ...


def format_event(event: NotificationEvent) -> str:
    """Telegram HTML text for one event."""
    address = f"<code>{event.token_address}</code>"

    if isinstance(event, BuySucceeded):
        lines = [
            "🎯 <b>SNIPE SUCCESSFUL</b>\n",
            f"Spent: {event.sol_spent:.4f} SOL",
            f"Received: {event.amount_received:,.2f} tokens",
            f"Price: {event.price:.10g} SOL",
        ]
        if event.original_amount is not None and abs(event.original_amount - event.sol_spent) > 1e-9:
            lines.append(f"Sized from: {event.original_amount:.4f} SOL")
        if event.scoring is not None:
            lines.append(
                f"Score: {event.scoring.score}/100 · {event.scoring.predicted_multiple:g}x · "
                f"risk {event.scoring.risk_level.name}"
            )
        lines += [f"TX: <code>{event.signature}</code>", "", address]
        return "\n".join(lines)

    if isinstance(event, BuyFailed):
        return (
            "❌ <b>SNIPE FAILED</b>\n\n"
            f"Error: {html_mod.escape(event.error)}\n"
            f"Type: {event.error_type}\n\n{address}"
        )

    if isinstance(event, SellSucceeded):
        return (
            "💰 <b>SELL SUCCESSFUL</b>\n\n"
            f"Sold: {event.percentage:g}% ({event.amount_sold:,.2f} tokens)\n"
            f"Received: {event.sol_received:.4f} SOL\n"
            f"TX: <code>{event.signature}</code>\n\n{address}"
        )

    if isinstance(event, SellFailed):
        return (
            "❌ <b>SELL FAILED</b>\n\n"
            f"Error: {html_mod.escape(event.error)}\n"
            f"Type: {event.error_type}\n\n{address}"
        )

    if isinstance(event, PositionClosed):
        emoji = "✅" if event.pnl_pct > 0 else "🔴"
        return (
            f"{emoji} <b>POSITION CLOSED</b>: <b>{html_mod.escape(event.symbol)}</b>\n\n"
            f"Reason: {event.reason}\n"
            f"P&L: <b>{event.pnl_pct:+.1f}%</b>\n"
            f"Received: {event.sol_received:.4f} SOL\n\n{address}"
        )

    if isinstance(event, ExitFailed):
        return (
            "⚠️ <b>EXIT FAILED</b>\n\n"
            f"Reason: {event.reason}\n"
            f"Attempts: {event.attempts}\n"
            f"Error: {html_mod.escape(event.error)}\n"
            f"Position stays open, monitoring continues\n\n{address}"
        )

    return f"{event.kind}\n\n{address}"


class LogNotifier:
    """Logs every event. Also the base for notifiers that deliver elsewhere."""

    def __init__(self) -> None:
        self.sent = 0

    async def notify(self, user_id: int, event: NotificationEvent) -> None:
        self.sent += 1
        logger.info(f"[NOTIFY] user={user_id} {event.kind} {event.token_address[:12]}")


class TelegramNotifier(LogNotifier):
    """Sends events to the user's Telegram chat via the Bot API."""

    def __init__(self, bot_token: str) -> None:
        super().__init__()
        self._token = bot_token
        self._http = httpx.AsyncClient(timeout=10)
        # Telegram flood limit: stay well under 30 msg/sec
        self._semaphore = asyncio.Semaphore(25)

    async def notify(self, user_id: int, event: NotificationEvent) -> None:
        await super().notify(user_id, event)
        await self._send(user_id, format_event(event))

    async def _send(self, chat_id: int, text: str) -> None:
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        last_err: Exception | None = None
        async with self._semaphore:
            for attempt in range(2):
                try:
                    resp = await self._http.post(
                        url,
                        json={
                            "chat_id": chat_id,
                            "text": text,
                            "parse_mode": "HTML",
                            "disable_web_page_preview": True,
                        },
                    )
                    if resp.status_code == 200:
                        return
                    last_err = Exception(f"HTTP {resp.status_code}: {resp.text[:200]}")
                except httpx.HTTPError as e:
                    last_err = e
                if attempt == 0:
                    await asyncio.sleep(2)

        logger.warning(f"[NOTIFY] Telegram send to {chat_id} failed after 2 attempts: {last_err}")

    async def close(self) -> None:
        await self._http.aclose()
