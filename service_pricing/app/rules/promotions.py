"""
Promotion window evaluation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from shared.logging import get_logger
from .models import Product, ZERO

logger = get_logger("pricing.promotions")


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC so bounds and "now" compare cleanly
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_promo_bound(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a promo start/end bound.

    Returns None for a missing or unparseable bound, which callers treat
    as "no bound" rather than as an inactive promotion.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)

    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        logger.debug("Ignoring unparseable promo bound", value=value)
        return None


def is_promo_active(product: Product, now: datetime) -> bool:
    """Return whether the product's promotional price applies at ``now``.

    Active iff the promo price is positive, the start bound is missing or
    has passed, and the end bound is missing or still in the future. A
    malformed end date leaves the promotion open-ended.
    """
    promo_price = product.promo_price if product.promo_price is not None else ZERO
    if Decimal(promo_price) <= ZERO:
        return False

    now = _as_utc(now)
    starts_at = parse_promo_bound(product.promo_starts_at)
    expires_at = parse_promo_bound(product.promo_expires_at)

    if starts_at is not None and starts_at > now:
        return False
    if expires_at is not None and expires_at <= now:
        return False
    return True
