"""
Package grant resolution.

Turns a matched ``grant_package`` offer into the service credits the
patient's wallet should receive. Nothing here writes to a wallet.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import AppliedOffer, BenefitType, PackageGrant, Service, ServiceCredit


UNKNOWN_SERVICE = "Unknown"


def resolve_package_grant(
    applied: AppliedOffer,
    now: datetime,
    services: Optional[List[Service]] = None,
    default_sessions: int = 1,
    default_validity_days: int = 365,
) -> Optional[PackageGrant]:
    """Describe the credits granted by ``applied``, or None if it grants none."""
    offer = applied.offer
    benefit = offer.primary_benefit
    if benefit is None or benefit.type != BenefitType.GRANT_PACKAGE:
        return None

    params = benefit.parameters
    names: Dict[str, str] = {s.id: s.name for s in services or [] if s.name}
    validity_days = params.package_validity_days or default_validity_days
    expires_at = now + timedelta(days=validity_days)

    credits = []
    if params.package_credits:
        for item in params.package_credits:
            credits.append(ServiceCredit(
                service_id=item.service_id,
                service_name=item.service_name or names.get(item.service_id, UNKNOWN_SERVICE),
                remaining=item.quantity,
                total=item.quantity,
                unit_type=item.unit_type,
                expires_at=expires_at,
                package_id=offer.id,
            ))
    elif params.package_service_id:
        sessions = params.package_sessions or default_sessions
        credits.append(ServiceCredit(
            service_id=params.package_service_id,
            service_name=names.get(params.package_service_id, UNKNOWN_SERVICE),
            remaining=sessions,
            total=sessions,
            expires_at=expires_at,
            package_id=offer.id,
        ))
    else:
        return None

    return PackageGrant(
        offer_id=offer.id,
        offer_name=offer.name,
        price=params.fixed_price or 0.0,
        credits=credits,
    )
