"""
Ledger package for the Pricing Service.

Holds the only mutable state the engine touches: the vault ladder
(per user, per month) and loyalty accounts (per user). Both write through
a versioned store with compare-and-set so concurrent checkouts cannot
overspend a cap or a balance.

Modules of interest:
- store: Versioned store interface and in-memory backend.
- redis_store: Redis WATCH/MULTI backend.
- vault: Vault ladder tracker.
- loyalty: Loyalty ledger.
"""
