"""Discount ledger tests: score bucketing, the shared clamp, session totals"""
import math
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.models.game_completion import GameCompletion
from app.services.discount_service import (
    MAX_DISCOUNT_PERCENT, calculate_retail_costs, clamp_discount, discounted_unit_price,
    get_session_totals, record_completion, score_to_discount, to_minor_units
)

from conftest import TEST_SESSION_TOKEN


@pytest.mark.critical
class TestScoreToDiscount:

    @pytest.mark.parametrize("score,expected", [
        (65, 15), (60, 15), (59, 12), (50, 12), (45, 9), (30, 6), (25, 3), (20, 3), (19.9, 0), (0, 0),
    ])
    def test_thresholds(self, score, expected):
        assert score_to_discount(score) == expected

    def test_discounts_are_bucketed_and_monotonic(self):
        previous = 0
        for score in range(0, 200):
            discount = score_to_discount(score)
            assert discount in {0, 3, 6, 9, 12, 15}
            assert discount >= previous
            previous = discount


@pytest.mark.critical
class TestClampDiscount:

    def test_over_max_clamps_to_max(self):
        assert clamp_discount(40) == MAX_DISCOUNT_PERCENT

    def test_negative_clamps_to_zero(self):
        assert clamp_discount(-5) == 0

    def test_in_range_is_identity(self):
        assert clamp_discount(7.5) == 7.5
        assert clamp_discount(15) == 15

    @pytest.mark.parametrize("value", [None, "abc", float("nan"), [], {}])
    def test_non_numeric_clamps_to_zero(self, value):
        assert clamp_discount(value) == 0

    def test_result_always_in_bounds(self):
        for value in (-1e9, -0.01, 0, 3, 14.99, 15.01, 1e9, float("inf"), float("-inf")):
            result = clamp_discount(value)
            assert 0 <= result <= MAX_DISCOUNT_PERCENT
            assert not math.isnan(result)


class TestPricing:

    def test_discounted_unit_price_uses_clamp(self):
        assert discounted_unit_price(20.0, 10) == pytest.approx(18.0)
        assert discounted_unit_price(20.0, 40) == pytest.approx(17.0)

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units(18.0) == 1800
        assert to_minor_units(0.125) == 13
        assert to_minor_units(25.5) == 2550

    def test_calculate_retail_costs(self):
        costs = calculate_retail_costs(40.0, 10, shipping=4.99)
        assert costs == {
            "currency": "USD",
            "subtotal": "40.00",
            "discount": "4.00",
            "shipping": "4.99",
            "tax": "0.00",
            "total": "40.99",
        }

    def test_calculate_retail_costs_caps_discount(self):
        costs = calculate_retail_costs(100.0, 40)
        assert costs["discount"] == "15.00"
        assert costs["total"] == "85.00"


@pytest.mark.critical
class TestRecordCompletion:

    def test_records_completion_with_earned_discount(self, db_session):
        completion = record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "culling", 65)

        assert completion.id is not None
        assert completion.discount_earned == 15
        assert db_session.query(GameCompletion).count() == 1

    def test_zero_discount_completion_is_still_recorded(self, db_session):
        completion = record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "snake", 5)

        assert completion.discount_earned == 0
        assert db_session.query(GameCompletion).count() == 1

    def test_unknown_game_type_rejected(self, db_session):
        with pytest.raises(ValidationError):
            record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "tetris", 50)
        assert db_session.query(GameCompletion).count() == 0

    @pytest.mark.parametrize("score", [-1, "fifty", None, float("nan"), float("inf"), True])
    def test_invalid_score_rejected(self, db_session, score):
        with pytest.raises(ValidationError):
            record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "harvest", score)

    def test_non_uuid_session_token_rejected(self, db_session):
        with pytest.raises(ValidationError):
            record_completion(db_session, "abc", "cr-punk-tee", "harvest", 65)
        assert db_session.query(GameCompletion).count() == 0

    def test_missing_fields_rejected(self, db_session):
        with pytest.raises(ValidationError):
            record_completion(db_session, "", "cr-punk-tee", "harvest", 30)


class TestSessionTotals:

    def test_total_discount_is_capped(self, db_session):
        record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "culling", 65)  # 15
        record_completion(db_session, TEST_SESSION_TOKEN, "cr-punk-tee", "harvest", 45)  # 9

        totals = get_session_totals(db_session, TEST_SESSION_TOKEN)

        assert totals["totalGamesPlayed"] == 2
        assert totals["totalDiscountEarned"] == 15
        assert totals["effectiveDiscountPercent"] == 15
        assert totals["averageScore"] == 55.0

    def test_by_game_type_and_newest_first(self, db_session):
        now = datetime.now(timezone.utc)
        db_session.add_all([
            GameCompletion(session_token=TEST_SESSION_TOKEN, game_type="snake", product_id="p1",
                           score=25, discount_earned=3, completed_at=now - timedelta(minutes=2)),
            GameCompletion(session_token=TEST_SESSION_TOKEN, game_type="snake", product_id="p1",
                           score=32, discount_earned=6, completed_at=now - timedelta(minutes=1)),
            GameCompletion(session_token=TEST_SESSION_TOKEN, game_type="garden", product_id="p2",
                           score=10, discount_earned=0, completed_at=now),
            GameCompletion(session_token="other-session", game_type="garden", product_id="p2",
                           score=70, discount_earned=15, completed_at=now),
        ])
        db_session.commit()

        totals = get_session_totals(db_session, TEST_SESSION_TOKEN)

        assert totals["totalGamesPlayed"] == 3
        assert totals["totalDiscountEarned"] == 9
        assert [c["gameType"] for c in totals["completions"]] == ["garden", "snake", "snake"]
        assert totals["byGameType"]["snake"] == {"count": 2, "totalDiscount": 9, "avgScore": 28.5}
        assert totals["byGameType"]["garden"] == {"count": 1, "totalDiscount": 0, "avgScore": 10.0}

    def test_empty_session(self, db_session):
        totals = get_session_totals(db_session, TEST_SESSION_TOKEN)

        assert totals["totalGamesPlayed"] == 0
        assert totals["totalDiscountEarned"] == 0
        assert totals["averageScore"] == 0
        assert totals["completions"] == []
        assert totals["byGameType"] == {}
