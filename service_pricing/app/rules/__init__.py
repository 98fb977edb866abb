"""
Pricing rules package.

Pure decision logic with no shared mutable state:

- models: Products, membership snapshots, pricing contexts and quotes.
- promotions: Promotion window evaluation.
- engine: Tier and promo precedence for the price a user pays.
- stock: Cart guard for scalar and size-keyed stock.
"""
