"""Tests for freshness buckets and the heat score."""

import pytest

from snipebot.discovery.heat import age_bonus, freshness_bucket, heat_score
from snipebot.models.token import Freshness


class TestFreshnessBucket:
    @pytest.mark.parametrize(
        ("age_seconds", "expected"),
        [
            (0, Freshness.ULTRA_FRESH),
            (59.9, Freshness.ULTRA_FRESH),
            (60, Freshness.FRESH),
            (299, Freshness.FRESH),
            (300, Freshness.RECENT),
            (1799, Freshness.RECENT),
            (1800, Freshness.OLD),
            (86_400, Freshness.OLD),
        ],
    )
    def test_boundaries(self, age_seconds, expected):
        assert freshness_bucket(age_seconds) == expected


class TestHeatScore:
    def test_maximum_is_clamped_to_100(self):
        score = heat_score(volume_24h=500_000, price_change_24h=300, liquidity=100_000, age_seconds=10)
        assert score == 100

    def test_dead_old_token_scores_zero(self):
        assert heat_score(volume_24h=0, price_change_24h=0, liquidity=0, age_seconds=7200) == 0

    def test_negative_price_change_counts_by_magnitude(self):
        up = heat_score(volume_24h=0, price_change_24h=60, liquidity=0, age_seconds=7200)
        down = heat_score(volume_24h=0, price_change_24h=-60, liquidity=0, age_seconds=7200)
        assert up == down == 15

    def test_tiers_add_up(self):
        # volume >50k (20) + change >20 (10) + liquidity >1k (5) + age <15 min (20)
        assert heat_score(volume_24h=60_000, price_change_24h=25, liquidity=2_000, age_seconds=10 * 60) == 55

    def test_more_volume_never_lowers_heat(self):
        volumes = [0, 5_000, 10_001, 50_001, 100_001, 1_000_000]
        scores = [heat_score(volume_24h=v, price_change_24h=0, liquidity=0, age_seconds=3600) for v in volumes]
        assert scores == sorted(scores)

    def test_older_never_hotter(self):
        ages = [0, 59, 61, 299, 301, 899, 901, 3599, 3601, 86_400]
        scores = [heat_score(volume_24h=0, price_change_24h=0, liquidity=0, age_seconds=a) for a in ages]
        assert scores == sorted(scores, reverse=True)

    def test_age_bonus_buckets(self):
        assert age_bonus(0.5) == 30
        assert age_bonus(3) == 25
        assert age_bonus(10) == 20
        assert age_bonus(45) == 10
        assert age_bonus(61) == 0
