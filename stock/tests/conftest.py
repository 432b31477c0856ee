from decimal import Decimal

import pytest

from products.models import Product
from stock.models import Brand, StockItem
from stock.services import StockItemService, StockItemBrandService


ACTOR_ID = "7"


@pytest.fixture
def actor_id():
    return ACTOR_ID


@pytest.fixture
def flour(db):
    """Flour with 10 kg on hand and a reorder threshold of 3 kg."""
    result = StockItemService.create(
        name="Flour",
        unit_of_measure="kg",
        current_quantity="10",
        reorder_threshold="3",
    )
    return StockItem.objects.get(id=result["id"])


@pytest.fixture
def sugar(db):
    result = StockItemService.create(name="Sugar", unit_of_measure="kg", current_quantity="4")
    return StockItem.objects.get(id=result["id"])


@pytest.fixture
def brand_a(db):
    return Brand.objects.create(name="A")


@pytest.fixture
def brand_b(db):
    return Brand.objects.create(name="B")


@pytest.fixture
def cake(db):
    return Product.objects.create(name="Cake", price=Decimal("12.00"))


@pytest.fixture
def priced_flour(flour, brand_a, brand_b):
    """Flour sold by A at 2.00 and B at 1.50 (after tax)."""
    StockItemBrandService.attach(flour.id, brand_a.id, "1.80", "2.00")
    StockItemBrandService.attach(flour.id, brand_b.id, "1.30", "1.50")
    return flour
