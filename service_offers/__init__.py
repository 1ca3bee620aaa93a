"""
Offers Service package for the clinic management backend.

This package decides which promotional offers apply to a patient's cart
at billing time. It provides:

- app.main: API surface for offer evaluation, the offer catalog and health.
- app.rules: Offer model, condition evaluator, benefit calculator and engine.
- app.schemas: camelCase request/response models shared with the front-end.

Guidelines:
- Evaluation is a pure function of cart, patient, offers and ``now``.
- Keep rule evaluation deterministic and observable (metrics + logs).
"""
