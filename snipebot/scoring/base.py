"""Scoring collaborator interface."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from snipebot.models.token import ScoringResult


@runtime_checkable
class Scorer(Protocol):
    async def analyze(self, token_address: str, metadata: dict) -> ScoringResult:
        """Score one token. Raise ScoringUnavailableError when no answer can be produced."""
        ...


class NeutralScorer:
    """Scorer used when no LLM credentials are configured."""

    async def analyze(self, token_address: str, metadata: dict) -> ScoringResult:
        return ScoringResult.neutral()
