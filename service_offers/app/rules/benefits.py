"""
Benefit calculation for matched offers.
"""

import math
from typing import Optional

from shared.logging import get_logger
from .models import Offer, AppliedOffer, BenefitType, EvaluationContext


DEFAULT_BUY_QUANTITY = 2
DEFAULT_FREE_QUANTITY = 1


def format_amount(value: float) -> str:
    """Render whole amounts without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class BenefitCalculator:
    """Computes the discount an offer's first benefit yields on a cart.

    Only ``offer.benefits[0]`` is considered. Offers whose benefit list holds
    more than one entry are priced on the first one alone.
    """

    def __init__(self, currency: str = "EGP"):
        self.logger = get_logger("offers.benefits")
        self.currency = currency

    def calculate(self, offer: Offer, context: EvaluationContext) -> Optional[AppliedOffer]:
        """Price ``offer`` against the cart, or None when it has no benefit."""
        benefit = offer.primary_benefit
        if benefit is None:
            return None

        params = benefit.parameters
        cart_total = context.cart_total
        discount = 0.0
        description = offer.name

        if benefit.type == BenefitType.PERCENT_OFF:
            discount = cart_total * ((params.percent or 0) / 100)
            description += f" ({format_amount(params.percent or 0)}% Off)"

        elif benefit.type == BenefitType.FIXED_AMOUNT_OFF:
            # Not capped at the cart total; callers clamp if they need to.
            discount = params.fixed_amount or 0
            description += f" ({self.currency} {format_amount(discount)} Off)"

        elif benefit.type == BenefitType.FIXED_PRICE:
            if params.fixed_price:
                discount = max(0.0, cart_total - params.fixed_price)
                description += f" (Bundle Price: {self.currency} {format_amount(params.fixed_price)})"

        elif benefit.type == BenefitType.GRANT_PACKAGE:
            # Entitlement only; the current cart is not discounted.
            discount = 0.0

        elif benefit.type == BenefitType.FREE_SESSION:
            discount, label = self._buy_x_get_y(offer, context)
            if label:
                description += f" ({label})"

        else:
            self.logger.warning("Unknown benefit type, no discount applied",
                                offer_id=offer.id, benefit_type=benefit.type)

        return AppliedOffer(
            offer=offer,
            discount_amount=discount,
            final_price=cart_total - discount,
            description=description
        )

    def _buy_x_get_y(self, offer: Offer, context: EvaluationContext):
        params = offer.primary_benefit.parameters
        buy_qty = params.buy_quantity or DEFAULT_BUY_QUANTITY
        free_qty = params.free_quantity or DEFAULT_FREE_QUANTITY
        target_id = params.target_service_id

        qualifying = [
            item for item in context.cart
            if not target_id or item.service_id == target_id
        ]
        total_qty = sum(item.quantity for item in qualifying)

        if not qualifying or total_qty < buy_qty:
            return 0.0, None

        free_items = math.floor(total_qty / (buy_qty + free_qty)) * free_qty
        if free_items <= 0:
            return 0.0, None

        # Free units are priced at the cheapest qualifying line
        cheapest = min(item.price for item in qualifying)
        return free_items * cheapest, f"Buy {buy_qty} Get {free_qty} Free"
