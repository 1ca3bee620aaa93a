"""
Unit tests for benefit calculation.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_offers.app.rules.benefits import BenefitCalculator, format_amount
from service_offers.app.rules.models import EvaluationContext
from service_offers.tests.factories import FIXED_NOW, TestDataFactory, benefit, create_offer


@pytest.fixture
def calculator():
    """Create BenefitCalculator instance."""
    return BenefitCalculator()


def make_context(*items):
    return EvaluationContext(
        cart=list(items),
        patient=TestDataFactory.create_patient(),
        now=FIXED_NOW
    )


def item(service_id, price, quantity=1):
    return TestDataFactory.create_cart_item(service_id, price, quantity)


class TestBenefitCalculator:
    """Test cases for BenefitCalculator."""

    def test_no_benefit_returns_none(self, calculator):
        offer = create_offer(benefits=[])

        assert calculator.calculate(offer, make_context(item("a", 100))) is None

    def test_percent_off(self, calculator):
        offer = create_offer(name="Spring", benefits=[benefit("percent_off", percent=12.5)])

        applied = calculator.calculate(offer, make_context(item("a", 400, 2)))

        assert applied.discount_amount == pytest.approx(100)
        assert applied.final_price == pytest.approx(700)
        assert applied.description == "Spring (12.5% Off)"

    def test_fixed_amount_off_is_not_capped(self, calculator):
        offer = create_offer(name="Voucher", benefits=[benefit("fixed_amount_off", fixed_amount=300)])

        applied = calculator.calculate(offer, make_context(item("a", 100)))

        assert applied.discount_amount == 300
        assert applied.final_price == -200
        assert applied.description == "Voucher (EGP 300 Off)"

    def test_fixed_price_never_negative(self, calculator):
        offer = create_offer(benefits=[benefit("fixed_price", fixed_price=1500)])

        applied = calculator.calculate(offer, make_context(item("a", 1000)))

        assert applied.discount_amount == 0
        assert applied.final_price == 1000

    def test_fixed_price_without_price_has_no_discount(self, calculator):
        offer = create_offer(name="Bundle", benefits=[benefit("fixed_price")])

        applied = calculator.calculate(offer, make_context(item("a", 1000)))

        assert applied.discount_amount == 0
        assert applied.description == "Bundle"

    def test_grant_package_has_zero_discount(self, calculator):
        offer = create_offer(name="Laser x6", benefits=[
            benefit("grant_package", package_service_id="svc-laser", package_sessions=6, fixed_price=2500)
        ])

        applied = calculator.calculate(offer, make_context(item("svc-laser", 500)))

        assert applied.discount_amount == 0
        assert applied.final_price == 500
        assert applied.description == "Laser x6"
        assert applied.benefit_type == "grant_package"

    def test_free_session_uses_cheapest_qualifying_price(self, calculator):
        offer = create_offer(name="B2G1", benefits=[benefit("free_session", buy_quantity=2, free_quantity=1)])

        applied = calculator.calculate(offer, make_context(item("a", 500, 2), item("b", 300, 1)))

        assert applied.discount_amount == 300
        assert applied.description == "B2G1 (Buy 2 Get 1 Free)"

    def test_free_session_defaults_to_buy_two_get_one(self, calculator):
        offer = create_offer(benefits=[benefit("free_session")])

        applied = calculator.calculate(offer, make_context(item("a", 200, 6)))

        assert applied.discount_amount == 400

    def test_free_session_filters_target_service(self, calculator):
        offer = create_offer(benefits=[benefit("free_session", buy_quantity=1, free_quantity=1,
                                               target_service_id="svc-laser")])

        applied = calculator.calculate(offer, make_context(item("svc-laser", 500, 2), item("svc-peel", 100, 4)))

        assert applied.discount_amount == 500

    @pytest.mark.parametrize("quantity", [1, 2])
    def test_free_session_below_full_cycle(self, calculator, quantity):
        offer = create_offer(name="B2G1", benefits=[benefit("free_session", buy_quantity=2, free_quantity=1)])

        applied = calculator.calculate(offer, make_context(item("a", 500, quantity)))

        assert applied.discount_amount == 0
        assert applied.description == "B2G1"

    def test_free_session_target_missing_from_cart(self, calculator):
        offer = create_offer(benefits=[benefit("free_session", target_service_id="svc-botox")])

        applied = calculator.calculate(offer, make_context(item("a", 500, 9)))

        assert applied.discount_amount == 0

    def test_unknown_benefit_type_gives_no_discount(self, calculator):
        offer = create_offer(name="Mystery", benefits=[benefit("cashback", percent=5)])

        applied = calculator.calculate(offer, make_context(item("a", 1000)))

        assert applied.discount_amount == 0
        assert applied.final_price == 1000
        assert applied.description == "Mystery"


class TestFormatAmount:
    """Test cases for amount rendering."""

    def test_whole_numbers_drop_decimal(self):
        assert format_amount(1200.0) == "1200"
        assert format_amount(20) == "20"

    def test_fractions_are_kept(self):
        assert format_amount(12.5) == "12.5"
