"""
Offer evaluation engine for the Offers Service.
"""

import time
from collections import Counter
from datetime import datetime
from typing import Dict, Any, Optional, List, Iterable

from shared.logging import get_logger
from .models import (
    Offer, CartItem, Patient, Service, AppliedOffer, BenefitType, EvaluationContext, OfferStatus
)
from .conditions import ConditionEvaluator
from .benefits import BenefitCalculator
from .timeutil import within, local_now


class OfferEngine:
    """Offer catalog and evaluation engine."""

    def __init__(self, currency: str = "EGP", new_patient_window_days: int = 30):
        self.logger = get_logger("offers.engine")
        self.offers: Dict[str, Offer] = {}
        self._sorted_cache: Optional[List[Offer]] = None
        self.conditions = ConditionEvaluator(new_patient_window_days=new_patient_window_days)
        self.benefits = BenefitCalculator(currency=currency)

    def add_offer(self, offer: Offer) -> bool:
        """Add an offer to the catalog, replacing any offer with the same id."""
        self.offers[offer.id] = offer
        self._invalidate_cache()
        self.logger.info("Offer added", offer_id=offer.id, name=offer.name)
        return True

    def remove_offer(self, offer_id: str) -> bool:
        """Remove an offer from the catalog."""
        if offer_id in self.offers:
            offer = self.offers.pop(offer_id)
            self._invalidate_cache()
            self.logger.info("Offer removed", offer_id=offer_id, name=offer.name)
            return True
        return False

    def update_offer(self, offer: Offer) -> bool:
        """Replace an existing offer."""
        if offer.id in self.offers:
            self.offers[offer.id] = offer
            self._invalidate_cache()
            self.logger.info("Offer updated", offer_id=offer.id, name=offer.name)
            return True
        return False

    def toggle_offer(self, offer_id: str) -> Optional[Offer]:
        """Flip an offer between active and inactive."""
        offer = self.offers.get(offer_id)
        if offer is None:
            return None
        offer.is_active = not offer.is_active
        self._invalidate_cache()
        self.logger.info("Offer toggled", offer_id=offer_id, is_active=offer.is_active)
        return offer

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        """Get an offer by ID."""
        return self.offers.get(offer_id)

    def list_offers(self) -> List[Offer]:
        """All catalog offers, highest priority first."""
        if self._sorted_cache is None:
            self._sorted_cache = sort_by_priority(self.offers.values())
        return list(self._sorted_cache)

    def evaluate(
        self,
        cart: List[CartItem],
        patient: Patient,
        offers: Optional[List[Offer]] = None,
        services: Optional[List[Service]] = None,
        now: Optional[datetime] = None,
    ) -> List[AppliedOffer]:
        """Evaluate offers against a cart and patient.

        ``offers`` defaults to the catalog. ``now`` is read once and used for
        every time-dependent check, so a fixed ``now`` gives a fixed result.
        """
        start_time = time.time()
        context = EvaluationContext(
            cart=list(cart),
            patient=patient,
            now=now or local_now(),
            services=list(services or []),
        )
        catalog = self.list_offers() if offers is None else list(offers)

        candidates = sort_by_priority(
            offer for offer in catalog if is_offer_valid(offer, context.now)
        )

        applicable: List[AppliedOffer] = []
        for offer in candidates:
            if not self.conditions.evaluate_all(offer.conditions, context):
                continue
            applied = self.benefits.calculate(offer, context)
            if applied is None:
                continue
            if applied.discount_amount > 0 or applied.benefit_type == BenefitType.GRANT_PACKAGE:
                applicable.append(applied)

        result = resolve_exclusivity(applicable)

        self.logger.debug(
            "Offers evaluated",
            patient_id=patient.id,
            candidates=len(candidates),
            matched=len(applicable),
            returned=[a.offer.id for a in result],
            evaluation_time_ms=(time.time() - start_time) * 1000
        )
        return result

    def _invalidate_cache(self):
        """Invalidate the priority-sorted view of the catalog."""
        self._sorted_cache = None

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        benefit_types = Counter(
            offer.primary_benefit.type if offer.primary_benefit else "none"
            for offer in self.offers.values()
        )
        return {
            "total_offers": len(self.offers),
            "active_offers": len([o for o in self.offers.values() if o.is_active]),
            "exclusive_offers": len([o for o in self.offers.values() if o.is_exclusive]),
            "benefit_types": dict(benefit_types),
        }

    def clear_all_offers(self):
        """Clear all offers from the catalog."""
        self.offers.clear()
        self._invalidate_cache()
        self.logger.info("All offers cleared")


def is_offer_valid(offer: Offer, now: datetime) -> bool:
    """Active and inside its (inclusive) validity window."""
    return offer.is_active and within(now, offer.valid_from, offer.valid_until)


def offer_status(offer: Offer, now: datetime) -> OfferStatus:
    """Inactive, expired (past valid_until) or active, in that order."""
    if not offer.is_active:
        return OfferStatus.INACTIVE
    if not within(now, None, offer.valid_until):
        return OfferStatus.EXPIRED
    return OfferStatus.ACTIVE


def filter_by_status(offers: Iterable[Offer], status: Optional[str], now: datetime) -> List[Offer]:
    """Catalog views: "active", "expired" (anything not active) or all."""
    if status == OfferStatus.ACTIVE:
        return [o for o in offers if offer_status(o, now) == OfferStatus.ACTIVE]
    if status == OfferStatus.EXPIRED:
        return [o for o in offers if offer_status(o, now) != OfferStatus.ACTIVE]
    return list(offers)


def sort_by_priority(offers: Iterable[Offer]) -> List[Offer]:
    """Stable sort, higher priority first."""
    return sorted(offers, key=lambda o: o.priority or 0, reverse=True)


def resolve_exclusivity(applied: List[AppliedOffer]) -> List[AppliedOffer]:
    """Apply exclusivity to priority-ordered matches.

    Any exclusive match wins outright: the exclusive offer with the largest
    discount is returned alone, the first one found on a tie. Otherwise every
    non-exclusive match stacks.
    """
    best = None
    for candidate in applied:
        if candidate.offer.is_exclusive:
            if best is None or candidate.discount_amount > best.discount_amount:
                best = candidate

    if best is not None:
        return [best]
    return [a for a in applied if not a.offer.is_exclusive]


def evaluate_offers(
    cart: List[CartItem],
    patient: Patient,
    all_offers: List[Offer],
    services: Optional[List[Service]] = None,
    now: Optional[datetime] = None,
) -> List[AppliedOffer]:
    """Evaluate ``all_offers`` for one cart and patient with default settings."""
    return OfferEngine().evaluate(cart, patient, offers=all_offers, services=services, now=now)
