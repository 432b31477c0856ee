"""
Tests for ProductStockService: recipe lines, deletion protection and the
live cost calculation.
"""

from decimal import Decimal

import pytest

from products.models import Product
from stock.models import Brand, ProductStockItem
from stock.services import (
    ProductStockService, StockItemBrandService, StockItemService,
    ValidationError, NotFoundError, ConflictError, BusinessRuleError,
)


pytestmark = pytest.mark.django_db


class TestRecipeLines:

    def test_add_line_with_preferred_brand_round_trips(self, priced_flour, brand_a, cake):
        ProductStockService.add_line(
            cake.id, priced_flour.id, "2", preferred_brand_id=brand_a.id, notes="sifted"
        )

        recipe = ProductStockService.get_recipe(cake.id)

        assert recipe["product_name"] == "Cake"
        line = recipe["lines"][0]
        assert line["stock_item_id"] == priced_flour.id
        assert line["quantity"] == "2.000"
        assert line["preferred_brand_id"] == brand_a.id
        assert line["notes"] == "sifted"
        assert StockItemBrandService.entry_exists(priced_flour.id, line["preferred_brand_id"])

    def test_preferred_brand_must_price_the_item(self, flour, brand_a, cake):
        with pytest.raises(ValidationError) as exc:
            ProductStockService.add_line(cake.id, flour.id, "1", preferred_brand_id=brand_a.id)

        assert exc.value.field == "preferred_brand_id"
        assert not ProductStockItem.objects.exists()

    @pytest.mark.parametrize("brand_id", ["abc", ["1"]])
    def test_malformed_preferred_brand_id(self, priced_flour, cake, brand_id):
        with pytest.raises(ValidationError) as exc:
            ProductStockService.add_line(cake.id, priced_flour.id, "1", preferred_brand_id=brand_id)

        assert exc.value.field == "preferred_brand_id"
        assert not ProductStockItem.objects.exists()

    def test_update_line_malformed_preferred_brand_id(self, priced_flour, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "1")

        with pytest.raises(ValidationError):
            ProductStockService.update_line(cake.id, priced_flour.id, preferred_brand_id="abc")

    def test_duplicate_line_conflicts(self, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "1")

        with pytest.raises(ConflictError) as exc:
            ProductStockService.add_line(cake.id, flour.id, "3")
        assert "already linked" in exc.value.message

    def test_unknown_stock_item(self, cake):
        with pytest.raises(NotFoundError):
            ProductStockService.add_line(cake.id, 999, "1")

    def test_unknown_product(self, flour):
        with pytest.raises(NotFoundError):
            ProductStockService.add_line(999, flour.id, "1")

    @pytest.mark.parametrize("quantity", ["0", "-1", "", None])
    def test_quantity_must_be_positive(self, flour, cake, quantity):
        with pytest.raises(ValidationError):
            ProductStockService.add_line(cake.id, flour.id, quantity)

    def test_recipe_lines_in_creation_order(self, flour, sugar, cake):
        ProductStockService.add_line(cake.id, sugar.id, "0.5")
        ProductStockService.add_line(cake.id, flour.id, "2")

        recipe = ProductStockService.get_recipe(cake.id)

        assert [l["stock_item_id"] for l in recipe["lines"]] == [sugar.id, flour.id]

    def test_update_line(self, priced_flour, brand_b, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2")

        result = ProductStockService.update_line(
            cake.id, priced_flour.id, quantity="2.5", preferred_brand_id=brand_b.id
        )

        assert result["line"]["quantity"] == "2.500"
        assert result["line"]["preferred_brand"]["name"] == "B"

    def test_update_line_validates_preferred_brand(self, flour, brand_a, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        with pytest.raises(ValidationError):
            ProductStockService.update_line(cake.id, flour.id, preferred_brand_id=brand_a.id)

    def test_update_line_clears_preferred_brand(self, priced_flour, brand_a, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2", preferred_brand_id=brand_a.id)

        result = ProductStockService.update_line(cake.id, priced_flour.id, preferred_brand_id=None)

        assert result["line"]["preferred_brand_id"] is None

    def test_update_missing_line(self, flour, cake):
        with pytest.raises(NotFoundError):
            ProductStockService.update_line(cake.id, flour.id, quantity="1")

    def test_remove_line(self, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        ProductStockService.remove_line(cake.id, flour.id)

        assert ProductStockService.get_recipe(cake.id)["lines"] == []

    def test_product_delete_cascades_to_lines(self, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        cake.delete()

        assert ProductStockService.count_usage(flour.id) == 0


class TestDeletionProtection:

    def test_unused_item_can_be_deleted(self, flour):
        assert ProductStockService.check_deletion_protection(flour.id) == {
            "can_delete": True,
            "usage_count": 0,
        }

    def test_usage_counted_across_products(self, flour, cake):
        bread = Product.objects.create(name="Bread", price=Decimal("3.00"))
        ProductStockService.add_line(cake.id, flour.id, "2")
        ProductStockService.add_line(bread.id, flour.id, "0.5")

        assert ProductStockService.count_usage(flour.id) == 2
        assert ProductStockService.check_deletion_protection(flour.id)["can_delete"] is False


class TestCalculateCost:

    def test_lowest_price_brand_selected(self, priced_flour, brand_b, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2")

        cost = ProductStockService.calculate_cost(cake.id)

        line = cost["breakdown"][0]
        assert line["brand_id"] == brand_b.id
        assert line["brand_name"] == "B"
        assert line["unit_price"] == "1.50"
        assert line["line_cost"] == "3.00"
        assert line["unit_of_measure"] == "kg"
        assert cost["total_cost"] == "3.00"

    def test_recipe_preferred_brand_wins(self, priced_flour, brand_a, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2", preferred_brand_id=brand_a.id)

        cost = ProductStockService.calculate_cost(cake.id)

        assert cost["breakdown"][0]["brand_id"] == brand_a.id
        assert cost["breakdown"][0]["price_source"] == "preferred"
        assert cost["total_cost"] == "4.00"

    def test_catalog_preferred_flag_does_not_override_price(self, priced_flour, brand_a, brand_b, cake):
        StockItemBrandService.set_preferred(priced_flour.id, brand_a.id)
        ProductStockService.add_line(cake.id, priced_flour.id, "2")

        cost = ProductStockService.calculate_cost(cake.id)

        assert cost["breakdown"][0]["brand_id"] == brand_b.id

    def test_tie_goes_to_earliest_entry(self, flour, cake):
        first = Brand.objects.create(name="Zeta")
        second = Brand.objects.create(name="Alpha")
        StockItemBrandService.attach(flour.id, first.id, "1.00", "1.50")
        StockItemBrandService.attach(flour.id, second.id, "1.00", "1.50")
        ProductStockService.add_line(cake.id, flour.id, "1")

        cost = ProductStockService.calculate_cost(cake.id)

        assert cost["breakdown"][0]["brand_id"] == first.id

    def test_unpriced_item_costs_zero(self, flour, cake):
        ProductStockService.add_line(cake.id, flour.id, "2")

        cost = ProductStockService.calculate_cost(cake.id)

        line = cost["breakdown"][0]
        assert line["brand_id"] is None
        assert line["brand_name"] is None
        assert line["unit_price"] == "0.00"
        assert line["price_source"] == "none"
        assert cost["total_cost"] == "0.00"

    def test_total_sums_lines(self, priced_flour, sugar, brand_a, cake):
        StockItemBrandService.attach(sugar.id, brand_a.id, "0.50", "0.75")
        ProductStockService.add_line(cake.id, priced_flour.id, "2")
        ProductStockService.add_line(cake.id, sugar.id, "0.333")

        cost = ProductStockService.calculate_cost(cake.id)

        # 2 x 1.50 + 0.333 x 0.75 = 3.24975
        assert [l["line_cost"] for l in cost["breakdown"]] == ["3.00", "0.25"]
        assert cost["total_cost"] == "3.25"

    def test_cost_reflects_current_prices(self, priced_flour, brand_b, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2")
        assert ProductStockService.calculate_cost(cake.id)["total_cost"] == "3.00"

        StockItemBrandService.update(priced_flour.id, brand_b.id, price_after_tax="1.00")

        assert ProductStockService.calculate_cost(cake.id)["total_cost"] == "2.00"

    def test_empty_recipe(self, cake):
        cost = ProductStockService.calculate_cost(cake.id)

        assert cost["breakdown"] == []
        assert cost["total_cost"] == "0.00"

    def test_unknown_product(self):
        with pytest.raises(NotFoundError):
            ProductStockService.calculate_cost(999)

    def test_protected_item_stays_costed(self, priced_flour, cake):
        ProductStockService.add_line(cake.id, priced_flour.id, "2")

        with pytest.raises(BusinessRuleError):
            StockItemService.soft_delete(priced_flour.id)

        assert ProductStockService.calculate_cost(cake.id)["total_cost"] == "3.00"
