"""
Request and response models for the Offers Service.

Offers are stored by the clinic backend with camelCase keys; every model
here accepts either spelling and serializes camelCase.
"""

import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .rules.models import (
    Offer, OfferCondition, ConditionParameters, OfferBenefit, BenefitParameters,
    PackageCreditItem, CartItem, Patient, Service, AppliedOffer, PackageGrant,
    BenefitType, CreditUnit, OfferType, OfferStatus
)
from .rules.engine import offer_status
from .rules.timeutil import local_now


def _short_id() -> str:
    return uuid.uuid4().hex[:9]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConditionParametersSchema(CamelModel):
    service_ids: List[str] = Field(default_factory=list)
    category_ids: List[str] = Field(default_factory=list)
    match_type: Optional[str] = None
    min_quantity: Optional[int] = None
    min_amount: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    patient_ids: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    days_of_week: List[int] = Field(default_factory=list)
    attribute_name: Optional[str] = None
    attribute_value: Any = None
    threshold: Optional[float] = None

    def to_domain(self) -> ConditionParameters:
        return ConditionParameters(**self.model_dump())


class ConditionSchema(CamelModel):
    id: str = Field(default_factory=_short_id, description="Condition ID")
    type: str = Field(..., description="Condition type")
    parameters: ConditionParametersSchema = Field(default_factory=ConditionParametersSchema)
    operator: Optional[str] = Field(None, description="Comparison operator")
    logic: Optional[str] = Field(None, description="AND/OR for group conditions")
    children: List["ConditionSchema"] = Field(default_factory=list)

    def to_domain(self) -> OfferCondition:
        return OfferCondition(
            id=self.id,
            type=self.type,
            parameters=self.parameters.to_domain(),
            operator=self.operator,
            logic=self.logic,
            children=[child.to_domain() for child in self.children]
        )


ConditionSchema.model_rebuild()


class PackageCreditItemSchema(CamelModel):
    service_id: str
    quantity: int = Field(..., ge=1)
    service_name: Optional[str] = None
    unit_type: CreditUnit = CreditUnit.SESSION

    def to_domain(self) -> PackageCreditItem:
        return PackageCreditItem(**self.model_dump())


class BenefitParametersSchema(CamelModel):
    percent: Optional[float] = None
    fixed_price: Optional[float] = None
    fixed_amount: Optional[float] = None
    package_service_id: Optional[str] = None
    package_sessions: Optional[int] = None
    package_validity_days: Optional[int] = None
    package_credits: List[PackageCreditItemSchema] = Field(default_factory=list)
    buy_quantity: Optional[int] = None
    free_quantity: Optional[int] = None
    target_service_id: Optional[str] = None

    def to_domain(self) -> BenefitParameters:
        values = self.model_dump(exclude={"package_credits"})
        return BenefitParameters(
            package_credits=[item.to_domain() for item in self.package_credits],
            **values
        )


class BenefitSchema(CamelModel):
    id: str = Field(default_factory=_short_id, description="Benefit ID")
    type: str = Field(..., description="Benefit type")
    parameters: BenefitParametersSchema = Field(default_factory=BenefitParametersSchema)

    def to_domain(self) -> OfferBenefit:
        return OfferBenefit(id=self.id, type=self.type, parameters=self.parameters.to_domain())


def default_benefits() -> List[BenefitSchema]:
    """Benefit given to offers saved without one: 10% off."""
    return [BenefitSchema(type=BenefitType.PERCENT_OFF.value,
                          parameters=BenefitParametersSchema(percent=10))]


class OfferBase(CamelModel):
    name: str = Field(..., description="Offer name")
    description: Optional[str] = Field(None, description="Offer description")
    type: str = Field(OfferType.CONDITIONAL.value, description="Descriptive offer type")
    is_active: bool = Field(True, description="Whether the offer can match")
    valid_from: Optional[datetime] = Field(None, description="Start of validity window")
    valid_until: Optional[datetime] = Field(None, description="End of validity window")
    usage_limit_per_patient: Optional[int] = Field(None, ge=0)
    total_usage_limit: Optional[int] = Field(None, ge=0)
    conditions: List[ConditionSchema] = Field(default_factory=list)
    benefits: List[BenefitSchema] = Field(default_factory=list)
    priority: int = Field(0, description="Higher evaluates first")
    is_exclusive: bool = Field(False, description="Suppresses non-exclusive offers when matched")

    @field_validator("priority", mode="before")
    @classmethod
    def priority_default(cls, value):
        return 0 if value is None else value

    def to_domain(self, offer_id: str, created_at: Optional[datetime] = None) -> Offer:
        return Offer(
            id=offer_id,
            name=self.name,
            description=self.description,
            type=self.type,
            is_active=self.is_active,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
            usage_limit_per_patient=self.usage_limit_per_patient,
            total_usage_limit=self.total_usage_limit,
            conditions=[c.to_domain() for c in self.conditions],
            benefits=[b.to_domain() for b in self.benefits],
            priority=self.priority,
            is_exclusive=self.is_exclusive,
            created_at=created_at or datetime.now()
        )


class OfferCreateRequest(OfferBase):
    """Request model for creating or replacing an offer."""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Offer name is required")
        return value

    @field_validator("benefits")
    @classmethod
    def benefits_default(cls, value: List[BenefitSchema]) -> List[BenefitSchema]:
        return value or default_benefits()


class OfferSchema(OfferBase):
    """A full offer record, as stored in the catalog."""
    id: str = Field(..., description="Offer ID")
    created_at: datetime = Field(default_factory=datetime.now)
    status: Optional[OfferStatus] = Field(None, description="Active, inactive or expired; set on responses")

    def to_domain(self, offer_id: Optional[str] = None, created_at: Optional[datetime] = None) -> Offer:
        return super().to_domain(offer_id or self.id, created_at or self.created_at)

    @classmethod
    def from_domain(cls, offer: Offer, now: Optional[datetime] = None) -> "OfferSchema":
        data = asdict(offer)
        data["status"] = offer_status(offer, now or local_now())
        return cls.model_validate(data)


class OfferListResponse(CamelModel):
    offers: List[OfferSchema]
    total: int
    page: int
    limit: int


class CartItemSchema(CamelModel):
    service_id: str
    service_name: str = ""
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=0)

    def to_domain(self) -> CartItem:
        return CartItem(**self.model_dump())


class PatientSchema(CamelModel):
    """Patient fields used by offer conditions; unknown keys become attributes."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    created_at: datetime
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    skin_type: Optional[int] = None
    allergies: List[str] = Field(default_factory=list)
    chronic_conditions: List[str] = Field(default_factory=list)
    contraindications: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_domain(self) -> Patient:
        attributes: Dict[str, Any] = dict(self.model_extra or {})
        return Patient(attributes=attributes, **self.model_dump(exclude=set(attributes)))


class ServiceSchema(CamelModel):
    id: str
    category_id: Optional[str] = None
    name: Optional[str] = None
    price: float = 0.0

    def to_domain(self) -> Service:
        return Service(**self.model_dump())


class EvaluationRequest(CamelModel):
    """Request model for offer evaluation."""
    cart: List[CartItemSchema] = Field(default_factory=list)
    patient: PatientSchema
    offers: Optional[List[OfferSchema]] = Field(None, description="Offers to evaluate; the catalog when omitted")
    services: List[ServiceSchema] = Field(default_factory=list)
    now: Optional[datetime] = Field(None, description="Evaluation time; server time when omitted")


class AppliedOfferResponse(CamelModel):
    offer: OfferSchema
    discount_amount: float
    final_price: float
    description: str

    @classmethod
    def from_domain(cls, applied: AppliedOffer, now: Optional[datetime] = None) -> "AppliedOfferResponse":
        return cls(
            offer=OfferSchema.from_domain(applied.offer, now),
            discount_amount=applied.discount_amount,
            final_price=applied.final_price,
            description=applied.description
        )


class EvaluationResponse(CamelModel):
    """Response model for offer evaluation."""
    applied_offers: List[AppliedOfferResponse]
    selected: Optional[AppliedOfferResponse] = None
    cart_total: float
    evaluated_at: datetime


class PackageGrantRequest(CamelModel):
    services: List[ServiceSchema] = Field(default_factory=list)
    now: Optional[datetime] = None


class ServiceCreditResponse(CamelModel):
    service_id: str
    service_name: str
    remaining: int
    total: int
    unit_type: CreditUnit
    expires_at: Optional[datetime] = None
    package_id: Optional[str] = None


class PackageGrantResponse(CamelModel):
    offer_id: str
    offer_name: str
    price: float
    credits: List[ServiceCreditResponse]

    @classmethod
    def from_domain(cls, grant: PackageGrant) -> "PackageGrantResponse":
        return cls.model_validate(asdict(grant))
