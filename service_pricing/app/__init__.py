"""
Pricing Service package for the Spoil Me commerce layer.

This package decides what a shopper actually pays and what they are
entitled to. It provides:

- app.main: API surface for quotes, cart guard, vault, loyalty and health.
- app.rules: Promotion window, tiered price resolution and stock guard.
- app.ledger: Vault ladder and loyalty ledgers over an atomic store.
- app.membership: Billing event transitions for membership state.
- app.checkout: Cart pricing and payment hand-off amounts.

Guidelines:
- Price resolution is pure; quotes are safe to discard or recompute.
- Ledger writes go through compare-and-set, never read-then-write.
- Keep decisions deterministic and observable (metrics + logs).
"""
