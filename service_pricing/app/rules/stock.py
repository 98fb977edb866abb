"""
Stock and cart guard.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.errors import InvalidInputError
from .models import Product


class StockStatus(str, Enum):
    """Why a unit may or may not be added."""
    AVAILABLE = "available"
    SELECT_SIZE = "select_size"
    OUT_OF_STOCK = "out_of_stock"
    SOLD_OUT = "sold_out"
    LIMIT_IN_CART = "limit_in_cart"


@dataclass(frozen=True)
class CartGuardDecision:
    allowed: bool
    reason: StockStatus
    available_stock: int


def evaluate_cart_guard(product: Product, variant_key: Optional[str], quantity_in_cart: int) -> CartGuardDecision:
    """Decide whether one more unit of the selected variant fits in the cart.

    Sized products (rings) resolve stock through the exact selected size;
    an unselected size, or one missing from a size table, is "select a
    size". A ring without a size table has no stock for any size.
    The admin sold-out flag wins over any numeric stock.
    """
    if quantity_in_cart < 0:
        raise InvalidInputError(
            "Quantity in cart cannot be negative",
            {"product_id": product.product_id, "quantity_in_cart": quantity_in_cart}
        )

    if product.is_sized:
        size_stock = product.size_stock
        if not variant_key or (size_stock is not None and variant_key not in size_stock):
            return CartGuardDecision(False, StockStatus.SELECT_SIZE, 0)
        stock = (size_stock or {}).get(variant_key, 0)
    else:
        stock = product.stock

    stock = max(0, int(stock or 0))

    if product.is_sold_out:
        return CartGuardDecision(False, StockStatus.SOLD_OUT, stock)
    if stock <= 0:
        return CartGuardDecision(False, StockStatus.OUT_OF_STOCK, 0)
    if quantity_in_cart >= stock:
        return CartGuardDecision(False, StockStatus.LIMIT_IN_CART, stock)
    return CartGuardDecision(True, StockStatus.AVAILABLE, stock)


def can_add_unit(product: Product, variant_key: Optional[str], quantity_in_cart: int) -> bool:
    """Boolean form of ``evaluate_cart_guard``."""
    return evaluate_cart_guard(product, variant_key, quantity_in_cart).allowed
