import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Q, Count, ProtectedError

from stock.models import Brand, StockItem, StockItemBrand, ProductStockItem
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, BusinessRuleError,
    wrap_storage_errors, parse_decimal, clean_text
)


logger = logging.getLogger(__name__)


def _parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    if value in (0, 1):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean", field)


class BrandService(BaseService):
    model = Brand
    resource_name = "Brand"

    UPDATABLE_FIELDS = ("name", "description", "is_active")

    @classmethod
    def serialize(cls, brand: Brand, price_count: int = None) -> Dict[str, Any]:
        data = {
            "id": brand.id,
            "uuid": str(brand.uuid),
            "name": brand.name,
            "description": brand.description,
            "is_active": brand.is_active,
            "is_deleted": brand.is_deleted,
            "created_at": brand.created_at.isoformat(),
            "updated_at": brand.updated_at.isoformat(),
        }
        if price_count is not None:
            data["stock_item_count"] = price_count
        return data

    @classmethod
    def clean_name(cls, name: Any) -> str:
        name = clean_text(name)
        if not name:
            raise ValidationError("Brand name is required", "name")
        if len(name) > 255:
            raise ValidationError("Brand name must be at most 255 characters", "name")
        return name

    @classmethod
    def list(cls,
             page: int = 1,
             limit: int = None,
             search: str = None,
             active_only: bool = False) -> Dict[str, Any]:
        queryset = cls.model.objects.annotate(price_count=Count("stock_item_prices"))

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(description__icontains=search)
            )

        if active_only:
            queryset = queryset.filter(is_active=True)

        queryset = queryset.order_by("name", "id")

        brands, pagination = paginate_queryset(queryset, page, limit)

        return success_response({
            "brands": [cls.serialize(b, price_count=b.price_count) for b in brands],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, brand_id: Any) -> Dict[str, Any]:
        brand = cls.get_or_404(brand_id)
        return success_response({
            "brand": cls.serialize(brand, price_count=brand.stock_item_prices.count())
        })

    @classmethod
    @wrap_storage_errors("create brand")
    @transaction.atomic
    def create(cls, name: str, description: str = None, is_active: Any = True) -> Dict[str, Any]:
        brand = cls.model.objects.create(
            name=cls.clean_name(name),
            description=clean_text(description),
            is_active=_parse_bool(is_active, "is_active"),
        )

        logger.info(f"Brand created: {brand.id} '{brand.name}'")

        return success_response({
            "id": brand.id,
            "brand": cls.serialize(brand),
        }, f"Brand '{brand.name}' created")

    @classmethod
    @wrap_storage_errors("update brand")
    @transaction.atomic
    def update(cls, brand_id: Any, **kwargs) -> Dict[str, Any]:
        fields = {key: value for key, value in kwargs.items() if key in cls.UPDATABLE_FIELDS}
        if not fields:
            raise ValidationError(
                f"No valid fields to update. Allowed: {list(cls.UPDATABLE_FIELDS)}"
            )

        brand = cls.get_or_404(brand_id)

        if "name" in fields:
            fields["name"] = cls.clean_name(fields["name"])
        if "description" in fields:
            fields["description"] = clean_text(fields["description"])
        if "is_active" in fields:
            fields["is_active"] = _parse_bool(fields["is_active"], "is_active")

        for field, value in fields.items():
            setattr(brand, field, value)
        brand.save(update_fields=list(fields) + ["updated_at"])

        logger.info(f"Brand updated: {brand.id} fields={sorted(fields)}")

        return success_response({"brand": cls.serialize(brand)}, "Brand updated")

    @classmethod
    @wrap_storage_errors("delete brand")
    @transaction.atomic
    def soft_delete(cls, brand_id: Any) -> Dict[str, Any]:
        brand = cls.get_or_404(brand_id)
        brand.delete()

        logger.info(f"Brand soft deleted: {brand.id}")

        return success_response({"id": brand.id}, "Brand deleted")

    @classmethod
    @wrap_storage_errors("restore brand")
    @transaction.atomic
    def restore(cls, brand_id: Any) -> Dict[str, Any]:
        try:
            brand = cls.model.all_objects.deleted().get(id=brand_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Deleted brand", brand_id)

        brand.restore()
        logger.info(f"Brand restored: {brand.id}")

        return success_response({"brand": cls.serialize(brand)}, "Brand restored")

    @classmethod
    @wrap_storage_errors("permanently delete brand")
    @transaction.atomic
    def force_delete(cls, brand_id: Any) -> Dict[str, Any]:
        try:
            brand = cls.model.all_objects.select_for_update().get(id=brand_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(cls.resource_name, brand_id)

        price_count = brand.stock_item_prices.count()
        if price_count:
            logger.warning(f"Refused to delete brand {brand.id}: priced for {price_count} stock item(s)")
            raise BusinessRuleError(
                f"Cannot delete brand '{brand.name}': it has prices for {price_count} stock item(s)",
                "brand_in_use",
                {"price_count": price_count}
            )

        try:
            brand.hard_delete()
        except ProtectedError as e:
            raise BusinessRuleError(
                f"Cannot delete brand '{brand.name}': it is still referenced",
                "brand_in_use"
            ) from e

        logger.info(f"Brand permanently deleted: {brand_id}")

        return success_response({"id": brand_id}, "Brand permanently deleted")


class StockItemBrandService(BaseService):
    model = StockItemBrand
    resource_name = "Stock item brand"

    @classmethod
    def serialize(cls, entry: StockItemBrand) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "uuid": str(entry.uuid),
            "stock_item_id": entry.stock_item_id,
            "brand_id": entry.brand_id,
            "brand": {
                "id": entry.brand.id,
                "name": entry.brand.name,
                "is_active": entry.brand.is_active,
            },
            "price_before_tax": str(entry.price_before_tax),
            "price_after_tax": str(entry.price_after_tax),
            "is_preferred": entry.is_preferred,
            "created_at": entry.created_at.isoformat(),
            "updated_at": entry.updated_at.isoformat(),
        }

    @classmethod
    def clean_price(cls, value: Any, field: str):
        price = parse_decimal(value, field, places=2, max_digits=10)
        if price <= 0:
            raise ValidationError(f"{field} must be greater than 0", field)
        return price

    @classmethod
    def _get_item(cls, stock_item_id: Any) -> StockItem:
        try:
            return StockItem.objects.get(id=stock_item_id)
        except (StockItem.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock item", stock_item_id)

    @classmethod
    def get_entry(cls, stock_item_id: Any, brand_id: Any, lock: bool = False) -> StockItemBrand:
        queryset = cls.model.objects.select_related("brand")
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(stock_item_id=stock_item_id, brand_id=brand_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                "Brand pricing", f"stock item {stock_item_id}, brand {brand_id}"
            )

    @classmethod
    def entry_exists(cls, stock_item_id: Any, brand_id: Any) -> bool:
        return cls.model.objects.filter(stock_item_id=stock_item_id, brand_id=brand_id).exists()

    @classmethod
    def _mark_preferred(cls, entry: StockItemBrand):
        """Make entry the only preferred one for its stock item; caller holds a transaction."""
        siblings = list(
            cls.model.objects.select_for_update()
            .filter(stock_item_id=entry.stock_item_id)
            .order_by("id")
        )

        # Clear first so the partial unique index never sees two flags at once
        cls.model.objects.filter(
            id__in=[s.id for s in siblings if s.is_preferred and s.id != entry.id]
        ).update(is_preferred=False)

        if not entry.is_preferred:
            entry.is_preferred = True
            entry.save(update_fields=["is_preferred", "updated_at"])

    @classmethod
    def list_for_item(cls, stock_item_id: Any) -> Dict[str, Any]:
        item = cls._get_item(stock_item_id)

        entries = cls.model.objects.filter(
            stock_item=item
        ).select_related("brand").order_by("-is_preferred", "created_at", "id")

        return success_response({
            "stock_item_id": item.id,
            "brands": [cls.serialize(entry) for entry in entries],
        })

    @classmethod
    @wrap_storage_errors("attach brand")
    @transaction.atomic
    def attach(cls,
               stock_item_id: Any,
               brand_id: Any,
               price_before_tax: Any,
               price_after_tax: Any,
               is_preferred: Any = False) -> Dict[str, Any]:
        price_before_tax = cls.clean_price(price_before_tax, "price_before_tax")
        price_after_tax = cls.clean_price(price_after_tax, "price_after_tax")
        is_preferred = _parse_bool(is_preferred, "is_preferred")

        item = cls._get_item(stock_item_id)
        brand = BrandService.get_or_404(brand_id)

        if cls.entry_exists(item.id, brand.id):
            raise ConflictError(
                f"Brand '{brand.name}' is already attached to '{item.name}'", "brand_id"
            )

        entry = cls.model.objects.create(
            stock_item=item,
            brand=brand,
            price_before_tax=price_before_tax,
            price_after_tax=price_after_tax,
        )
        if is_preferred:
            cls._mark_preferred(entry)

        logger.info(
            f"Brand {brand.id} attached to stock item {item.id} at {price_after_tax}"
            f"{' (preferred)' if is_preferred else ''}"
        )

        return success_response({
            "id": entry.id,
            "entry": cls.serialize(entry),
        }, f"Brand '{brand.name}' attached to '{item.name}'")

    @classmethod
    @wrap_storage_errors("update brand pricing")
    @transaction.atomic
    def update(cls, stock_item_id: Any, brand_id: Any, **kwargs) -> Dict[str, Any]:
        entry = cls.get_entry(stock_item_id, brand_id, lock=True)

        update_fields = []
        for field in ("price_before_tax", "price_after_tax"):
            if field in kwargs:
                setattr(entry, field, cls.clean_price(kwargs[field], field))
                update_fields.append(field)

        make_preferred = None
        if "is_preferred" in kwargs:
            make_preferred = _parse_bool(kwargs["is_preferred"], "is_preferred")

        if not update_fields and make_preferred is None:
            raise ValidationError(
                "No valid fields to update. Allowed: ['price_before_tax', 'price_after_tax', 'is_preferred']"
            )

        if make_preferred is False and entry.is_preferred:
            entry.is_preferred = False
            update_fields.append("is_preferred")

        if update_fields:
            entry.save(update_fields=update_fields + ["updated_at"])

        if make_preferred:
            cls._mark_preferred(entry)

        logger.info(f"Brand pricing updated: stock item {stock_item_id}, brand {brand_id}")

        return success_response({"entry": cls.serialize(entry)}, "Brand pricing updated")

    @classmethod
    @wrap_storage_errors("detach brand")
    @transaction.atomic
    def detach(cls, stock_item_id: Any, brand_id: Any) -> Dict[str, Any]:
        entry = cls.get_entry(stock_item_id, brand_id, lock=True)
        entry_id = entry.id
        entry.delete()
        # Recipe lines may only prefer a brand that prices the item
        ProductStockItem.objects.filter(
            stock_item_id=entry.stock_item_id, preferred_brand_id=entry.brand_id
        ).update(preferred_brand=None)

        logger.info(f"Brand {brand_id} detached from stock item {stock_item_id}")

        return success_response({"id": entry_id}, "Brand detached")

    @classmethod
    @wrap_storage_errors("detach brands")
    @transaction.atomic
    def detach_all(cls, stock_item_id: Any) -> Dict[str, Any]:
        deleted, _ = cls.model.objects.filter(stock_item_id=stock_item_id).delete()
        ProductStockItem.objects.filter(
            stock_item_id=stock_item_id, preferred_brand__isnull=False
        ).update(preferred_brand=None)

        if deleted:
            logger.info(f"Detached {deleted} brand(s) from stock item {stock_item_id}")

        return success_response({"deleted_count": deleted}, f"{deleted} brand(s) detached")

    @classmethod
    @wrap_storage_errors("set preferred brand")
    @transaction.atomic
    def set_preferred(cls, stock_item_id: Any, brand_id: Any) -> Dict[str, Any]:
        entry = cls.get_entry(stock_item_id, brand_id, lock=True)
        cls._mark_preferred(entry)

        logger.info(f"Preferred brand for stock item {stock_item_id} set to {brand_id}")

        return success_response({"entry": cls.serialize(entry)}, "Preferred brand set")
