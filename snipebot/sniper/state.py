"""Process-wide per-user sniper state behind per-user locks.

A user's state (policy and subscription) exists only while the sniper is
enabled. Stats are kept apart and survive disable.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from snipebot.models.trade import SniperPolicy, SniperStats


class Subscription:
    """Identity token of one enabled period; replaced on disable."""

    __slots__ = ()


@dataclass
class UserSniperState:
    user_id: int
    policy: SniperPolicy
    subscription: Subscription | None = None

    @property
    def enabled(self) -> bool:
        return self.subscription is not None and self.policy.enabled


class UserStateRegistry:
    def __init__(self) -> None:
        self._states: dict[int, UserSniperState] = {}
        self._stats: dict[int, SniperStats] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    def lock(self, user_id: int) -> asyncio.Lock:
        """The lock serializing enable/disable/policy changes for one user."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def get(self, user_id: int) -> UserSniperState | None:
        return self._states.get(user_id)

    def ensure(self, user_id: int, policy: SniperPolicy) -> UserSniperState:
        state = self._states.get(user_id)
        if state is None:
            state = self._states[user_id] = UserSniperState(user_id=user_id, policy=policy)
        return state

    def remove(self, user_id: int) -> UserSniperState | None:
        return self._states.pop(user_id, None)

    def stats(self, user_id: int) -> SniperStats:
        stats = self._stats.get(user_id)
        if stats is None:
            stats = self._stats[user_id] = SniperStats()
        return stats

    def enabled_users(self) -> list[int]:
        return [uid for uid, s in self._states.items() if s.enabled]

    def __len__(self) -> int:
        return len(self._states)
