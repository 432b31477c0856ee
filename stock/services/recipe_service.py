import logging
from typing import Dict, Any, List, Optional, Tuple
from decimal import Decimal

from django.db import transaction

from products.models import Product
from stock.models import StockItem, StockItemBrand, ProductStockItem
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, NotFoundError, ConflictError,
    wrap_storage_errors, parse_decimal, round_decimal, clean_text
)
from stock.services.brand_service import StockItemBrandService


logger = logging.getLogger(__name__)


class ProductStockService(BaseService):
    """
    Recipe lines linking a product to the stock items it consumes, plus the
    live cost calculation built on them.
    """

    model = ProductStockItem
    resource_name = "Recipe line"

    UPDATABLE_FIELDS = ("quantity", "preferred_brand_id", "notes")

    @classmethod
    def serialize(cls, line: ProductStockItem) -> Dict[str, Any]:
        return {
            "id": line.id,
            "uuid": str(line.uuid),
            "product_id": line.product_id,
            "stock_item_id": line.stock_item_id,
            "stock_item": {
                "id": line.stock_item.id,
                "name": line.stock_item.name,
                "unit_of_measure": line.stock_item.unit_of_measure,
                "current_quantity": str(line.stock_item.current_quantity),
                "status": line.stock_item.status,
            },
            "quantity": str(line.quantity),
            "preferred_brand_id": line.preferred_brand_id,
            "preferred_brand": {
                "id": line.preferred_brand.id,
                "name": line.preferred_brand.name,
            } if line.preferred_brand else None,
            "notes": line.notes,
            "created_at": line.created_at.isoformat(),
            "updated_at": line.updated_at.isoformat(),
        }

    @classmethod
    def _get_product(cls, product_id: Any) -> Product:
        try:
            return Product.objects.get(id=product_id)
        except (Product.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Product", product_id)

    @classmethod
    def _clean_quantity(cls, quantity: Any) -> Decimal:
        quantity = parse_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", "quantity")
        return quantity

    @classmethod
    def _validate_preferred_brand(cls, stock_item_id: int, brand_id: Any):
        try:
            priced = StockItemBrandService.entry_exists(stock_item_id, brand_id)
        except (ValueError, TypeError):
            raise ValidationError(
                f"preferred_brand_id must be an integer, got {brand_id!r}", "preferred_brand_id"
            )
        if not priced:
            raise ValidationError(
                f"Brand {brand_id} has no price for stock item {stock_item_id}",
                "preferred_brand_id"
            )

    @classmethod
    def _get_line(cls, product_id: Any, stock_item_id: Any, lock: bool = False) -> ProductStockItem:
        queryset = cls.model.objects.select_related("stock_item", "preferred_brand")
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        try:
            return queryset.get(product_id=product_id, stock_item_id=stock_item_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                cls.resource_name, f"product {product_id}, stock item {stock_item_id}"
            )

    # Recipe management

    @classmethod
    def get_recipe(cls, product_id: Any) -> Dict[str, Any]:
        product = cls._get_product(product_id)

        lines = cls.model.objects.filter(product=product).select_related(
            "stock_item", "preferred_brand"
        ).order_by("created_at", "id")

        return success_response({
            "product_id": product.id,
            "product_name": product.name,
            "lines": [cls.serialize(line) for line in lines],
        })

    @classmethod
    @wrap_storage_errors("add recipe line")
    @transaction.atomic
    def add_line(cls,
                 product_id: Any,
                 stock_item_id: Any,
                 quantity: Any,
                 preferred_brand_id: Any = None,
                 notes: str = None,
                 actor_id: Any = None) -> Dict[str, Any]:
        quantity = cls._clean_quantity(quantity)
        product = cls._get_product(product_id)

        # Serialises with StockItemService.force_delete on the same row
        try:
            stock_item = StockItem.objects.select_for_update().get(id=stock_item_id)
        except (StockItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock item", stock_item_id)

        if preferred_brand_id not in (None, ""):
            cls._validate_preferred_brand(stock_item.id, preferred_brand_id)
        else:
            preferred_brand_id = None

        if cls.model.objects.filter(product=product, stock_item=stock_item).exists():
            raise ConflictError(
                f"Stock item '{stock_item.name}' is already linked to product '{product.name}'",
                "stock_item_id"
            )

        line = cls.model.objects.create(
            product=product,
            stock_item=stock_item,
            quantity=quantity,
            preferred_brand_id=preferred_brand_id,
            notes=clean_text(notes),
        )

        logger.info(
            f"Recipe line added: product {product.id} uses {quantity} of item {stock_item.id}"
            f" (actor {actor_id})"
        )

        line = cls.model.objects.select_related("stock_item", "preferred_brand").get(id=line.id)
        return success_response({
            "id": line.id,
            "line": cls.serialize(line),
        }, f"'{stock_item.name}' added to '{product.name}' recipe")

    @classmethod
    @wrap_storage_errors("update recipe line")
    @transaction.atomic
    def update_line(cls, product_id: Any, stock_item_id: Any,
                    actor_id: Any = None, **kwargs) -> Dict[str, Any]:
        fields = {key: value for key, value in kwargs.items() if key in cls.UPDATABLE_FIELDS}
        if not fields:
            raise ValidationError(
                f"No valid fields to update. Allowed: {list(cls.UPDATABLE_FIELDS)}"
            )

        line = cls._get_line(product_id, stock_item_id, lock=True)

        if "quantity" in fields:
            line.quantity = cls._clean_quantity(fields["quantity"])

        if "preferred_brand_id" in fields:
            brand_id = fields["preferred_brand_id"]
            if brand_id in (None, ""):
                line.preferred_brand = None
            else:
                cls._validate_preferred_brand(line.stock_item_id, brand_id)
                line.preferred_brand_id = brand_id

        if "notes" in fields:
            line.notes = clean_text(fields["notes"])

        update_fields = [
            "preferred_brand" if field == "preferred_brand_id" else field
            for field in fields
        ]
        line.save(update_fields=update_fields + ["updated_at"])

        logger.info(
            f"Recipe line updated: product {product_id}, item {stock_item_id} "
            f"fields={sorted(fields)} (actor {actor_id})"
        )

        line = cls.model.objects.select_related("stock_item", "preferred_brand").get(id=line.id)
        return success_response({"line": cls.serialize(line)}, "Recipe line updated")

    @classmethod
    @wrap_storage_errors("remove recipe line")
    @transaction.atomic
    def remove_line(cls, product_id: Any, stock_item_id: Any, actor_id: Any = None) -> Dict[str, Any]:
        line = cls._get_line(product_id, stock_item_id, lock=True)
        line_id = line.id
        line.delete()

        logger.info(f"Recipe line removed: product {product_id}, item {stock_item_id} (actor {actor_id})")

        return success_response({"id": line_id}, "Recipe line removed")

    # Deletion protection

    @classmethod
    def count_usage(cls, stock_item_id: Any) -> int:
        return cls.model.objects.filter(stock_item_id=stock_item_id).count()

    @classmethod
    def check_deletion_protection(cls, stock_item_id: Any) -> Dict[str, Any]:
        usage_count = cls.count_usage(stock_item_id)
        return {
            "can_delete": usage_count == 0,
            "usage_count": usage_count,
        }

    # Costing

    @classmethod
    def select_price(cls, line: ProductStockItem,
                     entries: List[StockItemBrand]) -> Tuple[Optional[StockItemBrand], str]:
        """
        Pick the catalog entry that prices a recipe line.

        The line's preferred brand wins when it still has an entry. Otherwise
        the cheapest price after tax, with ties going to the earliest created
        entry and then the lowest id. Returns (entry or None, source).
        """
        if line.preferred_brand_id is not None:
            for entry in entries:
                if entry.brand_id == line.preferred_brand_id:
                    return entry, "preferred"

        if not entries:
            return None, "none"

        cheapest = min(
            entries,
            key=lambda e: (e.price_after_tax, e.created_at, e.id)
        )
        return cheapest, "lowest_price"

    @classmethod
    def calculate_cost(cls, product_id: Any) -> Dict[str, Any]:
        product = cls._get_product(product_id)

        lines = list(
            cls.model.objects.filter(product=product)
            .select_related("stock_item")
            .order_by("created_at", "id")
        )

        entries_by_item: Dict[int, List[StockItemBrand]] = {}
        for entry in StockItemBrand.objects.filter(
            stock_item_id__in=[line.stock_item_id for line in lines]
        ).select_related("brand").order_by("created_at", "id"):
            entries_by_item.setdefault(entry.stock_item_id, []).append(entry)

        total_cost = Decimal("0")
        breakdown = []
        for line in lines:
            entry, source = cls.select_price(line, entries_by_item.get(line.stock_item_id, []))
            unit_price = entry.price_after_tax if entry else Decimal("0")
            line_cost = line.quantity * unit_price
            total_cost += line_cost

            breakdown.append({
                "stock_item_id": line.stock_item_id,
                "stock_item_name": line.stock_item.name,
                "quantity": str(line.quantity),
                "unit_of_measure": line.stock_item.unit_of_measure,
                "brand_id": entry.brand_id if entry else None,
                "brand_name": entry.brand.name if entry else None,
                "unit_price": str(round_decimal(unit_price, 2)),
                "line_cost": str(round_decimal(line_cost, 2)),
                "price_source": source,
            })

        return success_response({
            "product_id": product.id,
            "product_name": product.name,
            "total_cost": str(round_decimal(total_cost, 2)),
            "breakdown": breakdown,
        })
