"""
Unit tests for the add-to-cart stock guard.
"""

import pytest
from decimal import Decimal

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_pricing.app.rules.models import Currency, Product
from service_pricing.app.rules.stock import StockStatus, can_add_unit, evaluate_cart_guard
from shared.errors import InvalidInputError


class TestCartGuard:
    """Test cases for the cart stock guard."""

    @pytest.fixture
    def necklace(self):
        """Product with flat stock."""
        return Product(product_id="necklace-1", base_price={Currency.ZAR: Decimal("500")}, stock=2)

    @pytest.fixture
    def ring(self):
        """Ring with per-size stock."""
        return Product(
            product_id="ring-1",
            base_price={Currency.ZAR: Decimal("900")},
            stock=10,
            size_stock={"6": 1, "7": 0, "8": 3}
        )

    def test_add_within_stock(self, necklace):
        """Test adding below available stock."""
        assert can_add_unit(necklace, None, 0) is True
        assert can_add_unit(necklace, None, 1) is True

    def test_cart_at_stock_limit(self, necklace):
        """Test the cart cannot exceed stock."""
        decision = evaluate_cart_guard(necklace, None, 2)

        assert decision.allowed is False
        assert decision.reason == StockStatus.LIMIT_IN_CART
        assert decision.available_stock == 2

    def test_out_of_stock(self, necklace):
        """Test zero stock is out of stock."""
        necklace.stock = 0
        decision = evaluate_cart_guard(necklace, None, 0)

        assert decision.allowed is False
        assert decision.reason == StockStatus.OUT_OF_STOCK

    def test_sold_out_flag_wins(self, necklace):
        """Test the sold-out flag overrides numeric stock."""
        necklace.is_sold_out = True
        decision = evaluate_cart_guard(necklace, None, 0)

        assert decision.allowed is False
        assert decision.reason == StockStatus.SOLD_OUT

    def test_size_stock_uses_selected_size(self, ring):
        """Test size products check the selected size only."""
        assert can_add_unit(ring, "8", 2) is True
        assert can_add_unit(ring, "8", 3) is False
        assert can_add_unit(ring, "6", 1) is False

    def test_empty_size_is_out_of_stock(self, ring):
        """Test a size with no stock."""
        assert evaluate_cart_guard(ring, "7", 0).reason == StockStatus.OUT_OF_STOCK

    def test_missing_size_selection(self, ring):
        """Test an unselected size asks for a selection."""
        decision = evaluate_cart_guard(ring, None, 0)

        assert decision.allowed is False
        assert decision.reason == StockStatus.SELECT_SIZE

    def test_unknown_size(self, ring):
        """Test an unknown size is not treated as out of stock."""
        assert evaluate_cart_guard(ring, "12", 0).reason == StockStatus.SELECT_SIZE

    def test_negative_quantity(self, necklace):
        """Test negative cart quantities are rejected."""
        with pytest.raises(InvalidInputError):
            evaluate_cart_guard(necklace, None, -1)

    def test_ring_without_size_table_needs_size(self):
        """Test a ring with no size table still asks for a size."""
        ring = Product(
            product_id="ring-2",
            base_price={Currency.ZAR: Decimal("900")},
            stock=10,
            product_type="Ring"
        )

        assert evaluate_cart_guard(ring, None, 0).reason == StockStatus.SELECT_SIZE

    def test_ring_without_size_table_is_out_of_stock(self):
        """Test a chosen size on a ring with no size table has no stock."""
        ring = Product(
            product_id="ring-3",
            base_price={Currency.ZAR: Decimal("900")},
            stock=10,
            product_type="Ring"
        )
        decision = evaluate_cart_guard(ring, "7", 0)

        assert decision.allowed is False
        assert decision.reason == StockStatus.OUT_OF_STOCK

    def test_non_ring_type_uses_scalar_stock(self, necklace):
        """Test other catalog types ignore sizes."""
        necklace.product_type = "Necklace"
        assert can_add_unit(necklace, None, 0) is True
