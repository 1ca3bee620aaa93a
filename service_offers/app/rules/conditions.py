"""
Condition-tree evaluation for offers.

Every leaf reads only the evaluation context (cart, patient, service
catalog and the pinned ``now``). Missing parameters mean "no constraint",
and condition types this module does not know evaluate as satisfied so
offers authored for newer condition kinds keep working.
"""

from datetime import datetime, timedelta
from operator import attrgetter
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from .models import (
    OfferCondition, ConditionType, ConditionOperator, ConditionLogic,
    MatchType, CartProperty, EvaluationContext, Patient
)
from .timeutil import align, within, minutes_since_midnight, sunday_based_weekday


_PATIENT_FIELDS = {
    "id": "id",
    "firstName": "first_name",
    "lastName": "last_name",
    "phone": "phone",
    "email": "email",
    "dateOfBirth": "date_of_birth",
    "gender": "gender",
    "skinType": "skin_type",
    "allergies": "allergies",
    "chronicConditions": "chronic_conditions",
    "contraindications": "contraindications",
    "notes": "notes",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

# Attribute names a customer_attribute condition may read, under both the
# wire (camelCase) and the Python spelling.
PATIENT_ATTRIBUTES: Dict[str, Callable[[Patient], Any]] = {
    name: attrgetter(attr) for name, attr in _PATIENT_FIELDS.items()
}
PATIENT_ATTRIBUTES.update({attr: attrgetter(attr) for attr in _PATIENT_FIELDS.values()})

_MISSING = object()


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def loose_equals(value: Any, target: Any) -> bool:
    """Equality that lets a number match its string spelling (3 == "3")."""
    if value == target:
        return True
    if isinstance(value, str) != isinstance(target, str):
        left, right = _as_number(value), _as_number(target)
        return left is not None and right is not None and left == right
    return False


def compare(value: Any, target: Any) -> Optional[int]:
    """Three-way comparison; None when the values are not comparable."""
    if isinstance(value, datetime) and isinstance(target, datetime):
        target = align(target, value)
        return (value > target) - (value < target)
    if isinstance(value, str) and isinstance(target, str):
        return (value > target) - (value < target)
    left, right = _as_number(value), _as_number(target)
    if left is None or right is None:
        return None
    return (left > right) - (left < right)


def _contains(value: Any, target: Any) -> bool:
    if isinstance(value, (list, tuple, set)):
        return str(target) in {str(v) for v in value}
    return str(target) in ("" if value is None else str(value))


class ConditionEvaluator:
    """Recursive evaluator for offer condition trees."""

    def __init__(self, new_patient_window_days: int = 30):
        self.logger = get_logger("offers.conditions")
        self.new_patient_window = timedelta(days=new_patient_window_days)

    def evaluate_all(self, conditions, context: EvaluationContext) -> bool:
        """Top-level conditions are an implicit AND; no conditions matches everyone."""
        return all(self.evaluate(condition, context) for condition in conditions or [])

    def evaluate(self, condition: OfferCondition, context: EvaluationContext) -> bool:
        """Evaluate a single condition node."""
        kind = condition.type

        if kind == ConditionType.GROUP:
            return self._evaluate_group(condition, context)

        elif kind == ConditionType.SERVICE_INCLUDES:
            return self._evaluate_service_includes(condition, context)

        elif kind == ConditionType.MIN_SPEND:
            return context.cart_total >= (condition.parameters.min_amount or 0)

        elif kind == ConditionType.NEW_PATIENT:
            created_at = align(context.patient.created_at, context.now)
            return context.now - created_at < self.new_patient_window

        elif kind == ConditionType.PATIENT_TAG:
            return self._evaluate_patient_tag(condition, context.patient)

        elif kind == ConditionType.DATE_RANGE:
            params = condition.parameters
            return within(context.now, params.start_date, params.end_date)

        elif kind == ConditionType.SPECIFIC_PATIENT:
            patient_ids = condition.parameters.patient_ids
            if not patient_ids:
                return True
            return context.patient.id in patient_ids

        elif kind == ConditionType.TIME_RANGE:
            return self._evaluate_time_range(condition, context.now)

        elif kind == ConditionType.DAY_OF_WEEK:
            days = condition.parameters.days_of_week
            if not days:
                return True
            return sunday_based_weekday(context.now) in days

        elif kind == ConditionType.CUSTOMER_ATTRIBUTE:
            return self._evaluate_attribute(condition, context.patient)

        elif kind == ConditionType.VISIT_COUNT:
            # Needs appointment history, which evaluation does not receive.
            return True

        elif kind == ConditionType.CART_PROPERTY:
            return self._evaluate_cart_property(condition, context)

        self.logger.warning("Unknown condition type, treating as satisfied",
                            condition_id=condition.id, condition_type=kind)
        return True

    def _evaluate_group(self, condition: OfferCondition, context: EvaluationContext) -> bool:
        if not condition.children:
            return True

        if (condition.logic or "").upper() == ConditionLogic.OR.value:
            return any(self.evaluate(child, context) for child in condition.children)

        return all(self.evaluate(child, context) for child in condition.children)

    def _evaluate_service_includes(self, condition: OfferCondition, context: EvaluationContext) -> bool:
        params = condition.parameters
        cart_ids = {item.service_id for item in context.cart}

        # Resolve target IDs from explicit services and categories
        target_ids = set(params.service_ids or [])
        if params.category_ids:
            categories = set(params.category_ids)
            target_ids.update(
                service.id for service in context.services
                if service.category_id in categories
            )

        if not target_ids:
            return True

        match_type = params.match_type or MatchType.ALL.value

        if match_type == MatchType.ANY:
            is_match = bool(target_ids & cart_ids)
        elif match_type == MatchType.NONE:
            # minQuantity is not applied to exclusions
            return not (target_ids & cart_ids)
        elif match_type == MatchType.EXACT:
            is_match = cart_ids == target_ids
        else:
            is_match = target_ids <= cart_ids

        if not is_match:
            return False

        if params.min_quantity and params.min_quantity > 0:
            units = sum(item.quantity for item in context.cart if item.service_id in target_ids)
            if units < params.min_quantity:
                return False

        return True

    def _evaluate_patient_tag(self, condition: OfferCondition, patient: Patient) -> bool:
        wanted = [str(tag).lower() for tag in condition.parameters.tags or []]
        if not wanted:
            return True

        candidates = [patient.skin_type, *patient.allergies, *patient.chronic_conditions]
        patient_tags = {str(tag).lower() for tag in candidates if tag}

        has_any = any(tag in patient_tags for tag in wanted)
        if condition.operator in (ConditionOperator.NOT_CONTAINS, ConditionOperator.NOT_IN):
            return not has_any
        return has_any

    def _evaluate_time_range(self, condition: OfferCondition, now: datetime) -> bool:
        params = condition.parameters
        if not params.start_time or not params.end_time:
            return True

        start = minutes_since_midnight(params.start_time)
        end = minutes_since_midnight(params.end_time)
        if start is None or end is None:
            self.logger.warning("Malformed time range, ignoring",
                                condition_id=condition.id,
                                start_time=params.start_time, end_time=params.end_time)
            return True

        current = now.hour * 60 + now.minute
        return start <= current <= end

    def _evaluate_attribute(self, condition: OfferCondition, patient: Patient) -> bool:
        """Known fields go through PATIENT_ATTRIBUTES; extra patient payload keys are readable too."""
        params = condition.parameters
        name = params.attribute_name
        if not name:
            return True

        getter = PATIENT_ATTRIBUTES.get(name)
        if getter is not None:
            value = getter(patient)
        else:
            value = patient.attributes.get(name, _MISSING)
            if value is _MISSING:
                self.logger.warning("Unknown patient attribute", condition_id=condition.id, attribute=name)
                return False

        target = params.attribute_value
        operator = condition.operator

        if operator == ConditionOperator.NOT_EQUALS:
            return not loose_equals(value, target)
        elif operator == ConditionOperator.GREATER_THAN:
            return compare(value, target) == 1
        elif operator == ConditionOperator.LESS_THAN:
            return compare(value, target) == -1
        elif operator == ConditionOperator.CONTAINS:
            return _contains(value, target)
        elif operator == ConditionOperator.NOT_CONTAINS:
            return not _contains(value, target)

        return loose_equals(value, target)

    def _evaluate_cart_property(self, condition: OfferCondition, context: EvaluationContext) -> bool:
        params = condition.parameters

        value = 0
        if params.attribute_name == CartProperty.TOTAL_QUANTITY:
            value = sum(item.quantity for item in context.cart)
        elif params.attribute_name == CartProperty.TOTAL_ITEMS:
            value = len(context.cart)

        threshold = params.threshold or 0
        operator = condition.operator

        if operator == ConditionOperator.EQUALS:
            return value == threshold
        elif operator == ConditionOperator.NOT_EQUALS:
            return value != threshold
        elif operator == ConditionOperator.GREATER_THAN:
            return value > threshold
        elif operator == ConditionOperator.LESS_THAN:
            return value < threshold

        return value >= threshold
