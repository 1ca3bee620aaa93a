"""
Offers service for the clinic management backend.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.errors import OfferNotFoundError, ValidationError
from shared.logging import set_patient_context

from .rules.engine import OfferEngine, filter_by_status
from .rules.grants import resolve_package_grant
from .rules.models import AppliedOffer
from .rules.timeutil import local_now
from .schemas import (
    OfferCreateRequest, OfferSchema, OfferListResponse,
    EvaluationRequest, EvaluationResponse, AppliedOfferResponse,
    PackageGrantRequest, PackageGrantResponse
)


class OffersService(BaseService):
    """Offers service implementation."""

    def __init__(self):
        super().__init__("offers", 8013)

        self.engine = OfferEngine(
            currency=self.config.currency,
            new_patient_window_days=self.config.new_patient_window_days
        )

        self._setup_offers_routes()

    def _setup_offers_routes(self):
        """Set up offers-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "offers",
                "message": "Clinic Management - Offers Service",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "offer_catalog", "package_grants"]
            }

        @self.app.post("/offers/evaluate", response_model=EvaluationResponse)
        async def evaluate_offers(request: EvaluationRequest):
            """Evaluate offers for a cart and patient."""
            set_patient_context(request.patient.id)
            now = request.now or local_now()
            cart = [item.to_domain() for item in request.cart]
            patient = request.patient.to_domain()
            offers = None
            if request.offers is not None:
                offers = [offer.to_domain() for offer in request.offers]

            with self.metrics.time_operation("offer_evaluation_duration_seconds"):
                applied = self.engine.evaluate(
                    cart,
                    patient,
                    offers=offers,
                    services=[s.to_domain() for s in request.services],
                    now=now
                )

            self._record_evaluation(applied)

            responses = [AppliedOfferResponse.from_domain(a, now) for a in applied]
            return EvaluationResponse(
                applied_offers=responses,
                selected=responses[0] if responses else None,
                cart_total=sum(item.line_total for item in cart),
                evaluated_at=now
            )

        @self.app.get("/offers", response_model=OfferListResponse)
        async def list_offers(
            status: Optional[str] = Query(
                None,
                pattern="^(all|active|expired)$",
                description="all, active (live and not past validUntil) or expired (inactive or past validUntil)"
            ),
            page: int = Query(1, ge=1, description="Page number"),
            limit: int = Query(50, ge=1, le=100, description="Items per page")
        ):
            """List catalog offers, highest priority first."""
            now = local_now()
            offers = filter_by_status(self.engine.list_offers(), status, now)

            total = len(offers)
            start_idx = (page - 1) * limit
            page_offers = offers[start_idx:start_idx + limit]

            return OfferListResponse(
                offers=[OfferSchema.from_domain(o, now) for o in page_offers],
                total=total,
                page=page,
                limit=limit
            )

        @self.app.get("/offers/stats")
        async def get_stats():
            """Get offers service statistics."""
            return {
                "engine": self.engine.get_engine_stats(),
                "timestamp": datetime.now().isoformat()
            }

        @self.app.post("/offers", response_model=OfferSchema, status_code=201)
        async def create_offer(request: OfferCreateRequest):
            """Add an offer to the catalog."""
            offer = request.to_domain(str(uuid.uuid4()))
            self.engine.add_offer(offer)
            self.metrics.record_business_event("offer_created")
            return OfferSchema.from_domain(offer)

        @self.app.get("/offers/{offer_id}", response_model=OfferSchema)
        async def get_offer(offer_id: str):
            """Get a catalog offer."""
            return OfferSchema.from_domain(self._require_offer(offer_id))

        @self.app.put("/offers/{offer_id}", response_model=OfferSchema)
        async def update_offer(offer_id: str, request: OfferCreateRequest):
            """Replace a catalog offer."""
            existing = self._require_offer(offer_id)
            offer = request.to_domain(offer_id, created_at=existing.created_at)
            self.engine.update_offer(offer)
            self.metrics.record_business_event("offer_updated")
            return OfferSchema.from_domain(offer)

        @self.app.delete("/offers/{offer_id}")
        async def delete_offer(offer_id: str):
            """Remove a catalog offer."""
            if not self.engine.remove_offer(offer_id):
                raise OfferNotFoundError(offer_id)
            self.metrics.record_business_event("offer_deleted")
            return {"success": True, "message": "Offer deleted successfully"}

        @self.app.post("/offers/{offer_id}/toggle", response_model=OfferSchema)
        async def toggle_offer(offer_id: str):
            """Activate or deactivate a catalog offer."""
            offer = self.engine.toggle_offer(offer_id)
            if offer is None:
                raise OfferNotFoundError(offer_id)
            return OfferSchema.from_domain(offer)

        @self.app.post("/offers/{offer_id}/grant", response_model=PackageGrantResponse)
        async def grant_package(offer_id: str, request: Optional[PackageGrantRequest] = None):
            """Resolve the credits a package offer grants."""
            request = request or PackageGrantRequest()
            offer = self._require_offer(offer_id)
            now = request.now or local_now()

            applied = AppliedOffer(offer=offer, discount_amount=0.0, final_price=0.0, description=offer.name)
            grant = resolve_package_grant(
                applied,
                now,
                services=[s.to_domain() for s in request.services],
                default_sessions=self.config.default_package_sessions,
                default_validity_days=self.config.default_package_validity_days
            )
            if grant is None:
                raise ValidationError(
                    "Offer does not grant a package",
                    {"offer_id": offer_id, "benefit_type": applied.benefit_type}
                )

            self.metrics.record_business_event("package_granted")
            self.logger.info("Package grant resolved", offer_id=offer_id, credits=len(grant.credits))
            return PackageGrantResponse.from_domain(grant)

    def _require_offer(self, offer_id: str):
        offer = self.engine.get_offer(offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        return offer

    def _record_evaluation(self, applied):
        outcome = "matched" if applied else "no_match"
        self.metrics.increment_counter("offer_evaluations_total", outcome=outcome)
        for item in applied:
            self.metrics.increment_counter("offers_applied_total", benefit_type=item.benefit_type or "none")


def create_app():
    """Create offers service application."""
    service = OffersService()
    return service.app


if __name__ == "__main__":
    service = OffersService()
    service.run()
