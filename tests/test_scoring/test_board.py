"""Tests for the recommendation board."""

import pytest

from snipebot.models.token import Recommendation, RiskLevel
from snipebot.scoring.board import RecommendationBoard, Urgency, suggested_amount, urgency_for

NOW = 1_700_000_000.0


class TestUrgency:
    @pytest.mark.parametrize(
        ("score", "heat", "expected"),
        [
            (95, 85, Urgency.CRITICAL),
            (95, 70, Urgency.HIGH),
            (80, 60, Urgency.HIGH),
            (78, 45, Urgency.MEDIUM),
            (78, 30, Urgency.LOW),
            (60, 99, Urgency.LOW),
        ],
    )
    def test_urgency_for(self, score, heat, expected):
        assert urgency_for(score, heat) == expected


class TestSuggestedAmount:
    def test_confident_low_risk_sizes_up(self, make_scoring):
        result = make_scoring(confidence=95, predicted_multiple=60, risk_level=RiskLevel.LOW)
        assert suggested_amount(result) == pytest.approx(0.1 * 1.5 * 1.3 * 1.2)

    def test_unsure_extreme_risk_sizes_down(self, make_scoring):
        result = make_scoring(confidence=50, predicted_multiple=2, risk_level=RiskLevel.EXTREME)
        assert suggested_amount(result) == pytest.approx(0.1 * 0.7 * 0.5)

    def test_clamped(self, make_scoring):
        result = make_scoring(confidence=95, predicted_multiple=60, risk_level=RiskLevel.LOW)
        assert suggested_amount(result, base=10.0) == 1.0
        assert suggested_amount(result, base=0.001) == 0.01


class TestBoard:
    def test_only_buy_calls_above_threshold_are_promoted(self, make_record, make_scoring):
        board = RecommendationBoard(min_score=75)

        assert board.consider(make_record("a"), make_scoring(score=74), now=NOW) is None
        assert board.consider(make_record("b"), make_scoring(recommendation=Recommendation.HOLD), now=NOW) is None
        assert board.consider(make_record("c"), make_scoring(score=75), now=NOW) is not None
        assert [e.token.address for e in board.entries(now=NOW)] == ["c"]

    def test_most_recent_first_and_capped(self, make_record, make_scoring):
        board = RecommendationBoard(max_items=3)
        for i, address in enumerate("abcde"):
            board.consider(make_record(address), make_scoring(), now=NOW + i)

        assert [e.token.address for e in board.entries(now=NOW + 10)] == ["e", "d", "c"]

    def test_repromotion_moves_token_to_front(self, make_record, make_scoring):
        board = RecommendationBoard()
        board.consider(make_record("a"), make_scoring(), now=NOW)
        board.consider(make_record("b"), make_scoring(), now=NOW + 1)
        board.consider(make_record("a"), make_scoring(score=90), now=NOW + 2)

        entries = board.entries(now=NOW + 3)
        assert [e.token.address for e in entries] == ["a", "b"]
        assert entries[0].scoring.score == 90

    def test_entries_expire(self, make_record, make_scoring):
        board = RecommendationBoard(max_age_sec=1800)
        board.consider(make_record("old"), make_scoring(), now=NOW)
        board.consider(make_record("new"), make_scoring(), now=NOW + 1000)

        assert [e.token.address for e in board.entries(now=NOW + 1800)] == ["new"]

    def test_entry_details(self, make_record, make_scoring):
        board = RecommendationBoard()
        entry = board.consider(
            make_record(heat_score=85, market_cap=20_000.0),
            make_scoring(score=92, reasons=("Strong community",)),
            now=NOW,
        )

        assert entry.urgency == Urgency.CRITICAL
        assert entry.time_window == "Next 5-15 minutes"
        assert "Score: 92/100 (85% confidence)" in entry.reasons
        assert "Market cap: $20,000" in entry.reasons
        assert entry.reasons[-1] == "Strong community"

    def test_listeners_get_snapshot_and_failures_are_isolated(self, make_record, make_scoring):
        board = RecommendationBoard()
        seen = []

        def broken(entries):
            raise RuntimeError("boom")

        board.add_listener(broken)
        board.add_listener(lambda entries: seen.append([e.token.address for e in entries]))
        board.consider(make_record("a"), make_scoring(), now=NOW)
        board.remove_listener(broken)
        board.consider(make_record("b"), make_scoring(), now=NOW)

        assert seen == [["a"], ["b", "a"]]
