"""Tests for TokenFilter composition and apply_filter."""

from snipebot.discovery.filters import TokenFilter, apply_filter, matches
from snipebot.models.token import Freshness, Recommendation, RiskLevel


def _tokens(make_record, make_scoring):
    return [
        make_record("a", liquidity=500.0, market_cap=5_000.0, heat_score=40, exchange="pumpfun"),
        make_record("b", liquidity=8_000.0, market_cap=40_000.0, heat_score=70, exchange="raydium",
                    scoring=make_scoring(score=85, risk_level=RiskLevel.LOW), verified=True),
        make_record("c", liquidity=20_000.0, market_cap=150_000.0, heat_score=70, exchange="raydium",
                    scoring=make_scoring(score=60, risk_level=RiskLevel.HIGH, recommendation=Recommendation.HOLD)),
        make_record("d", liquidity=3_000.0, market_cap=9_000.0, heat_score=90, exchange="pumpfun",
                    freshness=Freshness.ULTRA_FRESH, age_seconds=20.0),
    ]


FILTERS = [
    TokenFilter(),
    TokenFilter(min_liquidity=1_000),
    TokenFilter(max_market_cap=50_000),
    TokenFilter(min_score=70),
    TokenFilter(risk_levels=frozenset({RiskLevel.LOW, RiskLevel.MEDIUM})),
    TokenFilter(exchanges=frozenset({"raydium"})),
    TokenFilter(max_age_minutes=1),
    TokenFilter(verified=True),
    TokenFilter(verified=False),
]


class TestMatches:
    def test_empty_filter_accepts_everything(self, make_record, make_scoring):
        tokens = _tokens(make_record, make_scoring)
        assert TokenFilter().is_empty()
        assert len(apply_filter(tokens, TokenFilter())) == len(tokens)

    def test_bounds_are_inclusive(self, make_record):
        token = make_record(liquidity=1_000.0)
        assert matches(token, TokenFilter(min_liquidity=1_000, max_liquidity=1_000))
        assert not matches(token, TokenFilter(min_liquidity=1_000.01))

    def test_unscored_token_fails_score_and_risk_predicates(self, make_record):
        token = make_record()
        assert not matches(token, TokenFilter(min_score=0))
        assert not matches(token, TokenFilter(risk_levels=frozenset(RiskLevel)))
        assert not matches(token, TokenFilter(recommendations=frozenset(Recommendation)))

    def test_unknown_holder_count_fails_holder_bounds(self, make_record):
        assert not matches(make_record(holder_count=None), TokenFilter(min_holders=1))
        assert matches(make_record(holder_count=150), TokenFilter(min_holders=100, max_holders=200))

    def test_result_sorted_by_heat_then_address(self, make_record, make_scoring):
        result = apply_filter(_tokens(make_record, make_scoring), TokenFilter())
        assert [t.address for t in result] == ["d", "b", "c", "a"]


class TestCombine:
    def test_sequential_application_equals_combination(self, make_record, make_scoring):
        tokens = _tokens(make_record, make_scoring)
        for a in FILTERS:
            for b in FILTERS:
                sequential = apply_filter(apply_filter(tokens, a), b)
                combined = apply_filter(tokens, a.combine(b))
                assert [t.address for t in sequential] == [t.address for t in combined], (a, b)

    def test_filter_is_idempotent(self, make_record, make_scoring):
        tokens = _tokens(make_record, make_scoring)
        for criteria in FILTERS:
            once = apply_filter(tokens, criteria)
            assert apply_filter(once, criteria) == once

    def test_tighter_bound_wins(self):
        combined = TokenFilter(min_liquidity=1_000, max_market_cap=100_000).combine(
            TokenFilter(min_liquidity=5_000, max_market_cap=50_000)
        )
        assert combined.min_liquidity == 5_000
        assert combined.max_market_cap == 50_000

    def test_sets_intersect(self):
        combined = TokenFilter(exchanges=frozenset({"raydium", "pumpfun"})).combine(
            TokenFilter(exchanges=frozenset({"raydium", "orca"}))
        )
        assert combined.exchanges == frozenset({"raydium"})

    def test_conflicting_flags_match_nothing(self, make_record, make_scoring):
        combined = TokenFilter(verified=True).combine(TokenFilter(verified=False))
        assert combined.unsatisfiable
        assert apply_filter(_tokens(make_record, make_scoring), combined) == []
