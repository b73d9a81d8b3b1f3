"""Tests for the match-scoring engine."""

from datetime import date
from decimal import Decimal

import pytest
from conftest import make_receipt, make_transaction

from receipt_matcher.config import MatchingConfig
from receipt_matcher.matching import MatchingEngine, clamp_confidence, parse_receipt_date
from receipt_matcher.matching.engine import (
    merchant_keywords,
    round_half_up,
    score_amount,
    score_date,
    score_merchant,
)


class TestScoreAmount:
    """Tests for the amount signal."""

    @pytest.mark.parametrize(
        "tx_amount, points",
        [
            ("-100.00", 60),
            ("-101.00", 40),
            ("-95.00", 20),
            ("-110.00", 10),
            ("-110.01", 0),
        ],
    )
    def test_breakpoints(self, tx_amount, points):
        """Points step down at differences of 0, 1, 5 and 10."""
        assert score_amount(Decimal("100.00"), Decimal(tx_amount))[0] == points

    def test_signed_transaction_amount(self):
        """A -100.00 charge matches a 100.00 receipt exactly."""
        points, reason, diff = score_amount(Decimal("100.00"), Decimal("-100.00"))
        assert diff == Decimal("0")
        assert points == 60
        assert reason == "Exact amount match"

    def test_no_reason_outside_tiers(self):
        assert score_amount(Decimal("100"), Decimal("-200"))[1] is None


class TestScoreDate:
    """Tests for the date signal."""

    @pytest.mark.parametrize("days, points", [(0, 25), (1, 15), (3, 5), (4, 0)])
    def test_tiers(self, days, points):
        assert score_date(date(2025, 7, 22), date(2025, 7, 22 - days))[0] == points

    def test_missing_date_skipped(self):
        assert score_date(None, date(2025, 7, 22)) == (0, None)


class TestScoreMerchant:
    """Tests for the merchant signal."""

    def test_stoplist_and_short_words_excluded(self):
        """'Co', 'Inc' and two-letter words count in neither numerator nor denominator."""
        assert merchant_keywords("AB Co Inc Starbucks") == ["starbucks"]
        points, reason = score_merchant("AB Co Inc Starbucks", "STARBUCKS #123 SEATTLE")
        assert points == 20
        assert reason == "Merchant keywords match (1 words, 1 significant)"

    def test_partial_keyword_match(self):
        """Two of three words match, one of them significant."""
        points, _ = score_merchant("Joe's Gas Station", "SHELL GAS STATION 42")
        assert points == pytest.approx(15.0)

    def test_capped_at_twenty(self):
        points, _ = score_merchant("Amazon Marketplace", "AMAZON MARKETPLACE")
        assert points == 20

    def test_no_merchant(self):
        assert score_merchant(None, "ANYTHING") == (0.0, None)


class TestHelpers:
    """Tests for rounding, clamping and date parsing helpers."""

    def test_round_half_up(self):
        assert round_half_up(13.75) == 14
        assert round_half_up(12.5) == 13
        assert round_half_up(12.49) == 12

    def test_clamp(self):
        assert clamp_confidence(105) == 100
        assert clamp_confidence(-3) == 0

    def test_parse_receipt_date(self):
        assert parse_receipt_date("07/22/2025") == date(2025, 7, 22)
        assert parse_receipt_date("07-22-2025") == date(2025, 7, 22)
        assert parse_receipt_date("22/07/2025") is None
        assert parse_receipt_date(None) is None


class TestMatchingEngine:
    """Tests for candidate ranking."""

    @pytest.fixture
    def engine(self) -> MatchingEngine:
        return MatchingEngine()

    def test_null_amount_returns_empty(self, engine):
        receipt = make_receipt(amount=None)
        assert engine.find_candidates(receipt, [make_transaction()]) == []

    def test_empty_pool_returns_empty(self, engine):
        assert engine.find_candidates(make_receipt(), []) == []

    def test_full_score_raw_and_clamped(self, engine):
        """Amount, date and merchant caps add up to 105; confidence is clamped to 100."""
        candidates = engine.find_candidates(make_receipt(), [make_transaction()])
        assert len(candidates) == 1
        assert candidates[0].raw_confidence == 105
        assert candidates[0].confidence == 100
        assert candidates[0].reasons == [
            "Exact amount match",
            "Same date",
            "Merchant keywords match (1 words, 1 significant)",
        ]

    def test_unclamped_when_configured(self):
        engine = MatchingEngine(MatchingConfig(clamp_confidence=False))
        candidates = engine.find_candidates(make_receipt(), [make_transaction()])
        assert candidates[0].confidence == 105

    def test_raw_score_orders_clamped_ties(self, engine):
        """A raw 105 ranks above a raw 100 even though both show 100."""
        receipt = make_receipt(merchant="Blue Cafe Roasters")
        partial = make_transaction(1, description="SQ *CAFE ROASTERS")
        unrelated = make_transaction(2, description="UNRELATED")
        exact = make_transaction(3, description="BLUE CAFE ROASTERS")

        candidates = engine.find_candidates(receipt, [partial, unrelated, exact])

        assert [c.transaction.id for c in candidates] == [3, 1, 2]
        assert [c.raw_confidence for c in candidates] == [105, 100, 85]
        assert [c.confidence for c in candidates] == [100, 100, 85]

    def test_below_minimum_excluded(self, engine):
        receipt = make_receipt(receipt_date=None, merchant=None)
        far = make_transaction(amount="-500.00")
        assert engine.find_candidates(receipt, [far]) == []

    def test_date_alone_qualifies(self, engine):
        receipt = make_receipt(merchant=None)
        far = make_transaction(amount="-500.00")
        candidates = engine.find_candidates(receipt, [far])
        assert candidates[0].confidence == 25
        assert candidates[0].reasons == ["Same date"]

    def test_fractional_total_is_rounded(self, engine):
        """10 (amount) + 3.75 (merchant) rounds to 14."""
        receipt = make_receipt(receipt_date=None, merchant="Abcd Efgh Ijkl Mnop")
        tx = make_transaction(amount="-110.00", description="ABCD PAYMENT")
        candidates = engine.find_candidates(receipt, [tx])
        assert candidates[0].confidence == 14

    def test_ties_keep_pool_order(self, engine):
        receipt = make_receipt(receipt_date=None, merchant=None, amount="50.00")
        first = make_transaction(1, amount="-50.00")
        second = make_transaction(2, amount="50.00")

        forward = engine.find_candidates(receipt, [first, second])
        backward = engine.find_candidates(receipt, [second, first])

        assert [c.transaction.id for c in forward] == [1, 2]
        assert [c.transaction.id for c in backward] == [2, 1]

    def test_sorted_descending(self, engine):
        receipt = make_receipt(receipt_date=None, merchant=None)
        pool = [
            make_transaction(1, amount="-109.00"),
            make_transaction(2, amount="-100.00"),
            make_transaction(3, amount="-100.50"),
        ]
        candidates = engine.find_candidates(receipt, pool)
        assert [c.transaction.id for c in candidates] == [2, 3, 1]
        assert [c.confidence for c in candidates] == [60, 40, 10]

    def test_score_candidate(self, engine):
        candidate = engine.score_candidate(make_receipt(), make_transaction())
        assert candidate.amount_diff == Decimal("0")
        assert engine.score_candidate(make_receipt(amount=None), make_transaction()) is None

    def test_to_dict(self, engine):
        data = engine.find_candidates(make_receipt(), [make_transaction()])[0].to_dict()
        assert data["transaction_id"] == 1
        assert data["confidence"] == 100
        assert data["raw_confidence"] == 105
        assert data["amount"] == "-100.00"
