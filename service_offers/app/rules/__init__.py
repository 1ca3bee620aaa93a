"""
Offer rules package.

Defines the offer model and the evaluation engine used by the Offers
Service. Offers combine a tree of AND/OR conditions over the cart, the
patient and the clock with a benefit that prices the cart, and are ranked
by priority with exclusive offers suppressing stackable ones.

Modules of interest:
- models: Data classes for Offer, conditions, benefits, cart and results.
- conditions: Recursive condition-tree evaluation.
- benefits: Discount calculation from an offer's first benefit.
- engine: Catalog, validity filtering, ranking and exclusivity.
- grants: Credits issued by package offers.
"""
