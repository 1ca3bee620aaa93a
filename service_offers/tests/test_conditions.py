"""
Unit tests for condition-tree evaluation.
"""

import pytest
from datetime import datetime, timedelta, timezone

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_offers.app.rules.conditions import ConditionEvaluator, loose_equals, compare
from service_offers.app.rules.models import EvaluationContext
from service_offers.tests.factories import FIXED_NOW, TestDataFactory, condition


@pytest.fixture
def evaluator():
    """Create ConditionEvaluator instance."""
    return ConditionEvaluator()


@pytest.fixture
def services():
    return TestDataFactory.create_services()


def make_context(cart=None, patient=None, now=FIXED_NOW, services=None):
    return EvaluationContext(
        cart=cart or [],
        patient=patient or TestDataFactory.create_patient(now=now),
        now=now,
        services=services or []
    )


def item(service_id, price=100, quantity=1):
    return TestDataFactory.create_cart_item(service_id, price, quantity)


class TestGroupConditions:
    """Test cases for group nodes."""

    def test_empty_group_is_true(self, evaluator):
        assert evaluator.evaluate(condition("group"), make_context()) is True

    def test_and_group_requires_every_child(self, evaluator):
        group = condition("group", logic="AND", children=[
            condition("min_spend", min_amount=50),
            condition("min_spend", min_amount=500),
        ])

        assert evaluator.evaluate(group, make_context([item("a", 100)])) is False

    def test_group_defaults_to_and(self, evaluator):
        group = condition("group", children=[
            condition("min_spend", min_amount=50),
            condition("min_spend", min_amount=500),
        ])

        assert evaluator.evaluate(group, make_context([item("a", 100)])) is False

    def test_or_group_needs_one_child(self, evaluator):
        group = condition("group", logic="OR", children=[
            condition("min_spend", min_amount=50),
            condition("min_spend", min_amount=500),
        ])

        assert evaluator.evaluate(group, make_context([item("a", 100)])) is True

    def test_nested_groups(self, evaluator):
        """(new patient OR spend >= 1000) AND includes laser."""
        tree = condition("group", logic="AND", children=[
            condition("group", logic="OR", children=[
                condition("new_patient"),
                condition("min_spend", min_amount=1000),
            ]),
            condition("service_includes", service_ids=["svc-laser"]),
        ])

        big_cart = [item("svc-laser", 1200)]
        small_cart = [item("svc-laser", 200)]

        assert evaluator.evaluate(tree, make_context(big_cart)) is True
        assert evaluator.evaluate(tree, make_context(small_cart)) is False

        newcomer = TestDataFactory.create_patient(created_days_ago=3)
        assert evaluator.evaluate(tree, make_context(small_cart, newcomer)) is True

    def test_evaluate_all_with_no_conditions(self, evaluator):
        assert evaluator.evaluate_all([], make_context()) is True
        assert evaluator.evaluate_all(None, make_context()) is True


class TestServiceIncludes:
    """Test cases for service_includes."""

    def test_empty_target_set_is_true(self, evaluator):
        assert evaluator.evaluate(condition("service_includes"), make_context()) is True

    def test_all_is_default(self, evaluator):
        cond = condition("service_includes", service_ids=["A", "B"])

        assert evaluator.evaluate(cond, make_context([item("A"), item("B"), item("C")])) is True
        assert evaluator.evaluate(cond, make_context([item("A")])) is False

    def test_any(self, evaluator):
        cond = condition("service_includes", service_ids=["A", "B"], match_type="any")

        assert evaluator.evaluate(cond, make_context([item("B")])) is True
        assert evaluator.evaluate(cond, make_context([item("C")])) is False

    def test_none(self, evaluator):
        cond = condition("service_includes", service_ids=["A", "B"], match_type="none")

        assert evaluator.evaluate(cond, make_context([item("C")])) is True
        assert evaluator.evaluate(cond, make_context([item("A")])) is False

    def test_none_ignores_min_quantity(self, evaluator):
        cond = condition("service_includes", service_ids=["A", "B"], match_type="none", min_quantity=5)

        assert evaluator.evaluate(cond, make_context([item("C")])) is True
        assert evaluator.evaluate(cond, make_context([item("A", quantity=10)])) is False

    def test_exact(self, evaluator):
        cond = condition("service_includes", service_ids=["A", "B"], match_type="exact")

        assert evaluator.evaluate(cond, make_context([item("A"), item("B")])) is True
        assert evaluator.evaluate(cond, make_context([item("A"), item("B"), item("C")])) is False
        assert evaluator.evaluate(cond, make_context([item("A")])) is False

    def test_min_quantity_counts_target_units(self, evaluator):
        cond = condition("service_includes", service_ids=["A"], match_type="any", min_quantity=3)

        assert evaluator.evaluate(cond, make_context([item("A", quantity=2), item("C", quantity=5)])) is False
        assert evaluator.evaluate(cond, make_context([item("A", quantity=3)])) is True

    def test_category_targets(self, evaluator, services):
        cond = condition("service_includes", category_ids=["cat-facial"], match_type="any")

        assert evaluator.evaluate(cond, make_context([item("svc-peel")], services=services)) is True
        assert evaluator.evaluate(cond, make_context([item("svc-laser")], services=services)) is False

    def test_category_without_catalog_is_vacuous(self, evaluator):
        cond = condition("service_includes", category_ids=["cat-facial"], match_type="any")

        assert evaluator.evaluate(cond, make_context([item("svc-laser")])) is True


class TestPatientConditions:
    """Test cases for patient-based conditions."""

    @pytest.mark.parametrize("days_ago, expected", [(29, True), (31, False)])
    def test_new_patient_window(self, evaluator, days_ago, expected):
        patient = TestDataFactory.create_patient(created_days_ago=days_ago)

        assert evaluator.evaluate(condition("new_patient"), make_context(patient=patient)) is expected

    def test_new_patient_window_is_configurable(self):
        evaluator = ConditionEvaluator(new_patient_window_days=7)
        patient = TestDataFactory.create_patient(created_days_ago=10)

        assert evaluator.evaluate(condition("new_patient"), make_context(patient=patient)) is False

    def test_new_patient_with_aware_created_at(self, evaluator):
        patient = TestDataFactory.create_patient()
        patient.created_at = datetime(2026, 3, 10, tzinfo=timezone.utc)

        assert evaluator.evaluate(condition("new_patient"), make_context(patient=patient)) is True

    def test_patient_tag_matches_case_insensitively(self, evaluator):
        patient = TestDataFactory.create_patient(allergies=["Latex"], chronic_conditions=["Diabetes"])

        cond = condition("patient_tag", tags=["diabetes"])
        assert evaluator.evaluate(cond, make_context(patient=patient)) is True

        cond = condition("patient_tag", tags=["asthma"])
        assert evaluator.evaluate(cond, make_context(patient=patient)) is False

    def test_patient_tag_includes_skin_type(self, evaluator):
        patient = TestDataFactory.create_patient(skin_type=4)

        assert evaluator.evaluate(condition("patient_tag", tags=["4"]), make_context(patient=patient)) is True

    @pytest.mark.parametrize("operator", ["not_contains", "not_in"])
    def test_patient_tag_negated(self, evaluator, operator):
        patient = TestDataFactory.create_patient(allergies=["Latex"])

        excluded = condition("patient_tag", operator=operator, tags=["latex"])
        allowed = condition("patient_tag", operator=operator, tags=["penicillin"])

        assert evaluator.evaluate(excluded, make_context(patient=patient)) is False
        assert evaluator.evaluate(allowed, make_context(patient=patient)) is True

    def test_patient_tag_without_tags_is_true(self, evaluator):
        assert evaluator.evaluate(condition("patient_tag"), make_context()) is True

    def test_specific_patient(self, evaluator):
        patient = TestDataFactory.create_patient("p2")

        assert evaluator.evaluate(condition("specific_patient"), make_context(patient=patient)) is True
        assert evaluator.evaluate(condition("specific_patient", patient_ids=["p1", "p2"]),
                                  make_context(patient=patient)) is True
        assert evaluator.evaluate(condition("specific_patient", patient_ids=["p1"]),
                                  make_context(patient=patient)) is False

    def test_visit_count_is_always_true(self, evaluator):
        cond = condition("visit_count", operator="greater_than", threshold=100)

        assert evaluator.evaluate(cond, make_context()) is True


class TestCustomerAttribute:
    """Test cases for customer_attribute."""

    def _attr(self, name, value, operator=None):
        return condition("customer_attribute", operator=operator, attribute_name=name, attribute_value=value)

    def test_missing_attribute_name_is_true(self, evaluator):
        assert evaluator.evaluate(condition("customer_attribute"), make_context()) is True

    def test_equals_is_default(self, evaluator):
        assert evaluator.evaluate(self._attr("gender", "female"), make_context()) is True
        assert evaluator.evaluate(self._attr("gender", "male"), make_context()) is False

    def test_equals_is_loose_for_numbers(self, evaluator):
        assert evaluator.evaluate(self._attr("skinType", "3", "equals"), make_context()) is True

    def test_snake_case_names_are_accepted(self, evaluator):
        assert evaluator.evaluate(self._attr("skin_type", 3), make_context()) is True

    def test_not_equals(self, evaluator):
        assert evaluator.evaluate(self._attr("gender", "male", "not_equals"), make_context()) is True

    def test_greater_and_less_than(self, evaluator):
        assert evaluator.evaluate(self._attr("skinType", 2, "greater_than"), make_context()) is True
        assert evaluator.evaluate(self._attr("skinType", 3, "greater_than"), make_context()) is False
        assert evaluator.evaluate(self._attr("skinType", 5, "less_than"), make_context()) is True

    def test_contains(self, evaluator):
        patient = TestDataFactory.create_patient(email="sarah@clinic.example")

        assert evaluator.evaluate(self._attr("email", "@clinic", "contains"),
                                  make_context(patient=patient)) is True
        assert evaluator.evaluate(self._attr("email", "@clinic", "not_contains"),
                                  make_context(patient=patient)) is False

    def test_contains_on_list_attribute(self, evaluator):
        assert evaluator.evaluate(self._attr("allergies", "Penicillin", "contains"), make_context()) is True

    def test_extra_attributes(self, evaluator):
        patient = TestDataFactory.create_patient(attributes={"loyaltyTier": "gold"})

        assert evaluator.evaluate(self._attr("loyaltyTier", "gold"), make_context(patient=patient)) is True

    def test_unknown_attribute_is_rejected(self, evaluator):
        assert evaluator.evaluate(self._attr("__class__", "Patient"), make_context()) is False


class TestTimeConditions:
    """Test cases for clock-based conditions."""

    def test_date_range(self, evaluator):
        inside = condition("date_range", start_date=FIXED_NOW - timedelta(days=1),
                           end_date=FIXED_NOW + timedelta(days=1))
        future = condition("date_range", start_date=FIXED_NOW + timedelta(days=1))
        past = condition("date_range", end_date=FIXED_NOW - timedelta(days=1))

        assert evaluator.evaluate(inside, make_context()) is True
        assert evaluator.evaluate(future, make_context()) is False
        assert evaluator.evaluate(past, make_context()) is False
        assert evaluator.evaluate(condition("date_range"), make_context()) is True

    def test_time_range_inclusive(self, evaluator):
        # FIXED_NOW is 14:30
        assert evaluator.evaluate(condition("time_range", start_time="14:30", end_time="18:00"),
                                  make_context()) is True
        assert evaluator.evaluate(condition("time_range", start_time="09:00", end_time="14:30"),
                                  make_context()) is True
        assert evaluator.evaluate(condition("time_range", start_time="09:00", end_time="12:00"),
                                  make_context()) is False
        assert evaluator.evaluate(condition("time_range", start_time="09:00:00", end_time="12:00:00"),
                                  make_context()) is False
        assert evaluator.evaluate(condition("time_range", start_time="14:00:00", end_time="14:30:59"),
                                  make_context()) is True

    def test_time_range_missing_or_malformed_bounds(self, evaluator):
        assert evaluator.evaluate(condition("time_range", start_time="09:00"), make_context()) is True
        assert evaluator.evaluate(condition("time_range", start_time="nine", end_time="12:00"),
                                  make_context()) is True

    def test_day_of_week_is_sunday_based(self, evaluator):
        # FIXED_NOW is a Wednesday
        assert evaluator.evaluate(condition("day_of_week", days_of_week=[3]), make_context()) is True
        assert evaluator.evaluate(condition("day_of_week", days_of_week=[0, 6]), make_context()) is False

        sunday = FIXED_NOW + timedelta(days=4)
        assert evaluator.evaluate(condition("day_of_week", days_of_week=[0]), make_context(now=sunday)) is True

    def test_day_of_week_empty_is_true(self, evaluator):
        assert evaluator.evaluate(condition("day_of_week"), make_context()) is True


class TestCartConditions:
    """Test cases for spend and cart-property conditions."""

    def test_min_spend_uses_whole_cart(self, evaluator):
        cart = [item("a", 300, quantity=2), item("b", 400)]
        cond = condition("min_spend", min_amount=1000)

        assert evaluator.evaluate(cond, make_context(cart)) is True
        assert evaluator.evaluate(condition("min_spend", min_amount=1001), make_context(cart)) is False

    def test_cart_property_defaults_to_at_least(self, evaluator):
        cart = [item("a", quantity=2), item("b", quantity=3)]

        assert evaluator.evaluate(condition("cart_property", attribute_name="totalQuantity", threshold=5),
                                  make_context(cart)) is True
        assert evaluator.evaluate(condition("cart_property", attribute_name="totalItems", threshold=3),
                                  make_context(cart)) is False

    @pytest.mark.parametrize("operator, threshold, expected", [
        ("equals", 2, True),
        ("not_equals", 2, False),
        ("greater_than", 1, True),
        ("less_than", 2, False),
    ])
    def test_cart_property_operators(self, evaluator, operator, threshold, expected):
        cart = [item("a", quantity=4), item("b")]
        cond = condition("cart_property", operator=operator, attribute_name="totalItems", threshold=threshold)

        assert evaluator.evaluate(cond, make_context(cart)) is expected

    def test_unknown_cart_property_reads_zero(self, evaluator):
        cond = condition("cart_property", attribute_name="distinctCategories", threshold=1)

        assert evaluator.evaluate(cond, make_context([item("a")])) is False


class TestFailOpen:
    """Unknown condition kinds never block an offer."""

    def test_unknown_condition_type_is_true(self, evaluator):
        assert evaluator.evaluate(condition("loyalty_points", threshold=10), make_context()) is True


class TestComparisonHelpers:
    """Test cases for loose comparison helpers."""

    def test_loose_equals(self):
        assert loose_equals(3, "3") is True
        assert loose_equals("3", 3.0) is True
        assert loose_equals("a", "A") is False
        assert loose_equals(None, "x") is False

    def test_compare(self):
        assert compare(5, "3") == 1
        assert compare("apple", "banana") == -1
        assert compare(None, 3) is None
        assert compare(datetime(2026, 1, 2), datetime(2026, 1, 1)) == 1
