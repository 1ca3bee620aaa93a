"""
Offer data models for the Offers Service.

Condition and benefit ``type`` fields are kept as plain strings on the
dataclasses so offers carrying kinds this engine does not know yet still
load; the enums below name the kinds the engine evaluates.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class OfferType(str, Enum):
    """Descriptive offer tags used by the catalog UI."""
    PERCENTAGE = "percentage"
    BUNDLE = "bundle"
    BUY_X_GET_Y = "buyXgetY"
    PACKAGE = "package"
    FIXED_AMOUNT = "fixed_amount"
    CONDITIONAL = "conditional"


class ConditionType(str, Enum):
    """Condition node types."""
    GROUP = "group"
    SERVICE_INCLUDES = "service_includes"
    MIN_SPEND = "min_spend"
    NEW_PATIENT = "new_patient"
    PATIENT_TAG = "patient_tag"
    DATE_RANGE = "date_range"
    SPECIFIC_PATIENT = "specific_patient"
    TIME_RANGE = "time_range"
    DAY_OF_WEEK = "day_of_week"
    CUSTOMER_ATTRIBUTE = "customer_attribute"
    VISIT_COUNT = "visit_count"
    CART_PROPERTY = "cart_property"


class ConditionOperator(str, Enum):
    """Comparison operators for attribute, tag and cart-property checks."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    NOT_IN = "not_in"


class ConditionLogic(str, Enum):
    """Combinators for group nodes."""
    AND = "AND"
    OR = "OR"


class MatchType(str, Enum):
    """How a service_includes target set is matched against the cart."""
    ALL = "all"
    ANY = "any"
    NONE = "none"
    EXACT = "exact"


class CartProperty(str, Enum):
    """Cart aggregates readable by cart_property conditions."""
    TOTAL_QUANTITY = "totalQuantity"
    TOTAL_ITEMS = "totalItems"


class BenefitType(str, Enum):
    """Benefit types."""
    PERCENT_OFF = "percent_off"
    FIXED_PRICE = "fixed_price"
    FIXED_AMOUNT_OFF = "fixed_amount_off"
    GRANT_PACKAGE = "grant_package"
    FREE_SESSION = "free_session"


class OfferStatus(str, Enum):
    """Catalog status of an offer."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class CreditUnit(str, Enum):
    """Unit in which a service credit is consumed."""
    SESSION = "session"
    PULSE = "pulse"
    UNIT = "unit"


@dataclass
class ConditionParameters:
    """Type-dependent parameter bag of a condition."""
    service_ids: List[str] = field(default_factory=list)
    category_ids: List[str] = field(default_factory=list)
    match_type: Optional[str] = None
    min_quantity: Optional[int] = None
    min_amount: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    patient_ids: List[str] = field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    days_of_week: List[int] = field(default_factory=list)
    attribute_name: Optional[str] = None
    attribute_value: Any = None
    threshold: Optional[float] = None


@dataclass
class OfferCondition:
    """Node in an offer's condition tree.

    Only ``group`` nodes use ``logic`` and ``children``.
    """
    id: str
    type: str
    parameters: ConditionParameters = field(default_factory=ConditionParameters)
    operator: Optional[str] = None
    logic: Optional[str] = None
    children: List["OfferCondition"] = field(default_factory=list)


@dataclass
class PackageCreditItem:
    """One service credit line of a multi-service package."""
    service_id: str
    quantity: int
    service_name: Optional[str] = None
    unit_type: CreditUnit = CreditUnit.SESSION


@dataclass
class BenefitParameters:
    """Type-dependent parameter bag of a benefit."""
    percent: Optional[float] = None
    fixed_price: Optional[float] = None
    fixed_amount: Optional[float] = None
    package_service_id: Optional[str] = None
    package_sessions: Optional[int] = None
    package_validity_days: Optional[int] = None
    package_credits: List[PackageCreditItem] = field(default_factory=list)
    buy_quantity: Optional[int] = None
    free_quantity: Optional[int] = None
    target_service_id: Optional[str] = None


@dataclass
class OfferBenefit:
    """Effect applied when an offer's conditions hold."""
    id: str
    type: str
    parameters: BenefitParameters = field(default_factory=BenefitParameters)


@dataclass
class Offer:
    """Promotional rule definition.

    Only ``benefits[0]`` is evaluated; later benefits are carried for
    display and are never stacked onto the discount.
    """
    id: str
    name: str
    description: Optional[str] = None
    type: str = OfferType.CONDITIONAL.value
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit_per_patient: Optional[int] = None
    total_usage_limit: Optional[int] = None
    conditions: List[OfferCondition] = field(default_factory=list)
    benefits: List[OfferBenefit] = field(default_factory=list)
    priority: int = 0
    is_exclusive: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def primary_benefit(self) -> Optional[OfferBenefit]:
        """The benefit that drives evaluation, if any."""
        return self.benefits[0] if self.benefits else None


@dataclass
class CartItem:
    """Priced service line in the cart."""
    service_id: str
    service_name: str
    price: float
    quantity: int = 1

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass
class Patient:
    """Patient record as consumed by the engine."""
    id: str
    created_at: datetime
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    skin_type: Optional[int] = None
    allergies: List[str] = field(default_factory=list)
    chronic_conditions: List[str] = field(default_factory=list)
    contraindications: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Service:
    """Service catalog entry used to resolve category targets."""
    id: str
    category_id: Optional[str] = None
    name: Optional[str] = None
    price: float = 0.0


@dataclass
class EvaluationContext:
    """Inputs of a single evaluation, pinned to one ``now``."""
    cart: List[CartItem]
    patient: Patient
    now: datetime
    services: List[Service] = field(default_factory=list)

    @property
    def cart_total(self) -> float:
        return sum(item.line_total for item in self.cart)


@dataclass(frozen=True)
class AppliedOffer:
    """An offer that matched, with its computed discount."""
    offer: Offer
    discount_amount: float
    final_price: float
    description: str

    @property
    def benefit_type(self) -> Optional[str]:
        benefit = self.offer.primary_benefit
        return benefit.type if benefit else None


@dataclass
class ServiceCredit:
    """Future-usable service credit issued by a package grant."""
    service_id: str
    service_name: str
    remaining: int
    total: int
    unit_type: CreditUnit = CreditUnit.SESSION
    expires_at: Optional[datetime] = None
    package_id: Optional[str] = None


@dataclass
class PackageGrant:
    """Credits a matched grant_package offer entitles the patient to."""
    offer_id: str
    offer_name: str
    price: float
    credits: List[ServiceCredit] = field(default_factory=list)
