import logging
from typing import Dict, Any, Optional
from decimal import Decimal

from django.db import transaction
from django.db.models import Q, Count, ProtectedError

from stock.models import StockItem, StockMovement
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, ConflictError, BusinessRuleError,
    InsufficientStockError, wrap_storage_errors, parse_decimal, ensure_fits, clean_text
)
from stock.services.movement_service import StockMovementService


logger = logging.getLogger(__name__)


class StockItemService(BaseService):
    model = StockItem
    resource_name = "Stock item"

    UPDATABLE_FIELDS = ("name", "description", "unit_of_measure", "reorder_threshold")
    SORT_FIELDS = ("name", "current_quantity", "status", "created_at", "updated_at")

    @classmethod
    def serialize(cls, item: StockItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "uuid": str(item.uuid),
            "name": item.name,
            "description": item.description,
            "unit_of_measure": item.unit_of_measure,
            "current_quantity": str(item.current_quantity),
            "reorder_threshold": (
                str(item.reorder_threshold) if item.reorder_threshold is not None else None
            ),
            "status": item.status,
            "status_display": item.get_status_display(),
            "is_deleted": item.is_deleted,
            "deleted_at": item.deleted_at.isoformat() if item.deleted_at else None,
            "created_at": item.created_at.isoformat(),
            "updated_at": item.updated_at.isoformat(),
        }

    # Validation helpers, shared with the bulk importer

    @classmethod
    def clean_name(cls, name: Any) -> str:
        name = clean_text(name)
        if not name:
            raise ValidationError("Name is required", "name")
        if len(name) > 255:
            raise ValidationError("Name must be at most 255 characters", "name")
        return name

    @classmethod
    def clean_unit(cls, unit_of_measure: Any) -> str:
        unit_of_measure = clean_text(unit_of_measure)
        if not unit_of_measure:
            raise ValidationError("Unit of measure is required", "unit_of_measure")
        if len(unit_of_measure) > 50:
            raise ValidationError("Unit of measure must be at most 50 characters", "unit_of_measure")
        return unit_of_measure

    @classmethod
    def clean_non_negative(cls, value: Any, field: str) -> Decimal:
        number = parse_decimal(value, field)
        if number < 0:
            raise ValidationError(f"{field} cannot be negative", field)
        return number

    @classmethod
    def ensure_name_available(cls, name: str, exclude_id: int = None):
        # all_objects: a soft-deleted item still holds its name
        queryset = cls.model.all_objects.filter(name=name)
        if exclude_id is not None:
            queryset = queryset.exclude(id=exclude_id)
        if queryset.exists():
            raise ConflictError("Stock item with this name already exists", "name")

    @classmethod
    def lock(cls, item_id: Any) -> StockItem:
        """Fetch a live item under a row lock; must run inside a transaction."""
        try:
            return cls.model.objects.select_for_update().get(id=item_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(cls.resource_name, item_id)

    # Queries

    @classmethod
    def get(cls, item_id: Any) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)
        return success_response({"item": cls.serialize(item)})

    @classmethod
    def list(cls,
             page: int = 1,
             limit: int = None,
             search: str = None,
             status: str = None,
             low_stock_only: bool = False,
             include_deleted: bool = False,
             sort_by: str = "created_at",
             sort_order: str = "desc") -> Dict[str, Any]:

        queryset = cls.model.all_objects.all() if include_deleted else cls.model.objects.all()

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(description__icontains=search)
            )

        if status:
            valid_statuses = [c[0] for c in StockItem.Status.choices]
            if status not in valid_statuses:
                raise ValidationError(f"Invalid status. Valid: {valid_statuses}", "status")
            queryset = queryset.filter(status=status)

        if low_stock_only:
            queryset = queryset.filter(
                status__in=[StockItem.Status.LOW_STOCK, StockItem.Status.OUT_OF_STOCK]
            )

        if sort_by not in cls.SORT_FIELDS:
            raise ValidationError(f"Invalid sort field. Valid: {list(cls.SORT_FIELDS)}", "sort_by")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("Sort order must be 'asc' or 'desc'", "sort_order")

        prefix = "-" if sort_order == "desc" else ""
        queryset = queryset.order_by(f"{prefix}{sort_by}", f"{prefix}id")

        items, pagination = paginate_queryset(queryset, page, limit)

        return success_response({
            "items": [cls.serialize(item) for item in items],
            "pagination": pagination,
        })

    @classmethod
    def stats(cls) -> Dict[str, Any]:
        counts = {
            row["status"]: row["count"]
            for row in cls.model.objects.values("status").annotate(count=Count("id"))
        }
        return success_response({
            "total": sum(counts.values()),
            "available": counts.get(StockItem.Status.AVAILABLE, 0),
            "low_stock": counts.get(StockItem.Status.LOW_STOCK, 0),
            "out_of_stock": counts.get(StockItem.Status.OUT_OF_STOCK, 0),
            "deleted": cls.model.all_objects.deleted().count(),
        })

    # Master data

    @classmethod
    @wrap_storage_errors("create stock item")
    @transaction.atomic
    def create(cls,
               name: str,
               unit_of_measure: str,
               description: str = None,
               current_quantity: Any = 0,
               reorder_threshold: Any = None) -> Dict[str, Any]:
        name = cls.clean_name(name)
        unit_of_measure = cls.clean_unit(unit_of_measure)
        quantity = cls.clean_non_negative(
            current_quantity if current_quantity not in (None, "") else 0,
            "current_quantity"
        )
        threshold = None
        if reorder_threshold not in (None, ""):
            threshold = cls.clean_non_negative(reorder_threshold, "reorder_threshold")

        cls.ensure_name_available(name)

        item = cls.model.objects.create(
            name=name,
            description=clean_text(description),
            unit_of_measure=unit_of_measure,
            current_quantity=quantity,
            reorder_threshold=threshold,
        )

        logger.info(f"Stock item created: {item.id} '{item.name}' ({item.current_quantity} {item.unit_of_measure})")

        return success_response({
            "id": item.id,
            "uuid": str(item.uuid),
            "item": cls.serialize(item),
        }, f"Stock item '{name}' created")

    @classmethod
    @wrap_storage_errors("update stock item")
    @transaction.atomic
    def update(cls, item_id: Any, **kwargs) -> Dict[str, Any]:
        if "current_quantity" in kwargs:
            raise ValidationError(
                "Quantity can only be changed through receive or adjust",
                "current_quantity"
            )

        fields = {key: value for key, value in kwargs.items() if key in cls.UPDATABLE_FIELDS}
        if not fields:
            raise ValidationError(
                f"No valid fields to update. Allowed: {list(cls.UPDATABLE_FIELDS)}"
            )

        item = cls.lock(item_id)

        if "name" in fields:
            fields["name"] = cls.clean_name(fields["name"])
            if fields["name"] != item.name:
                cls.ensure_name_available(fields["name"], exclude_id=item.id)

        if "unit_of_measure" in fields:
            fields["unit_of_measure"] = cls.clean_unit(fields["unit_of_measure"])

        if "description" in fields:
            fields["description"] = clean_text(fields["description"])

        if "reorder_threshold" in fields:
            value = fields["reorder_threshold"]
            fields["reorder_threshold"] = (
                None if value in (None, "")
                else cls.clean_non_negative(value, "reorder_threshold")
            )

        for field, value in fields.items():
            setattr(item, field, value)
        item.save(update_fields=list(fields) + ["updated_at"])

        logger.info(f"Stock item updated: {item.id} fields={sorted(fields)}")

        return success_response({"item": cls.serialize(item)}, "Stock item updated")

    # Lifecycle

    @classmethod
    def _ensure_deletable(cls, item: StockItem):
        from stock.services.recipe_service import ProductStockService

        protection = ProductStockService.check_deletion_protection(item.id)
        if not protection["can_delete"]:
            logger.warning(
                f"Refused to delete stock item {item.id}: used in {protection['usage_count']} recipe(s)"
            )
            raise BusinessRuleError(
                f"Cannot delete stock item '{item.name}': it is used in "
                f"{protection['usage_count']} product recipe(s)",
                "deletion_protection",
                {"usage_count": protection["usage_count"]}
            )

    @classmethod
    @wrap_storage_errors("delete stock item")
    @transaction.atomic
    def soft_delete(cls, item_id: Any) -> Dict[str, Any]:
        item = cls.lock(item_id)
        cls._ensure_deletable(item)

        item.delete()
        logger.info(f"Stock item soft deleted: {item.id}")

        return success_response({"id": item.id}, "Stock item deleted")

    @classmethod
    @wrap_storage_errors("restore stock item")
    @transaction.atomic
    def restore(cls, item_id: Any) -> Dict[str, Any]:
        try:
            item = cls.model.all_objects.deleted().select_for_update().get(id=item_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Deleted stock item", item_id)

        item.restore()
        logger.info(f"Stock item restored: {item.id}")

        return success_response({"item": cls.serialize(item)}, "Stock item restored")

    @classmethod
    @wrap_storage_errors("permanently delete stock item")
    @transaction.atomic
    def force_delete(cls, item_id: Any) -> Dict[str, Any]:
        from stock.services.brand_service import StockItemBrandService

        try:
            item = cls.model.all_objects.select_for_update().get(id=item_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(cls.resource_name, item_id)

        cls._ensure_deletable(item)

        StockItemBrandService.detach_all(item.id)
        try:
            item.hard_delete()
        except ProtectedError as e:
            raise BusinessRuleError(
                f"Cannot delete stock item '{item.name}': it is used in a product recipe",
                "deletion_protection"
            ) from e

        logger.info(f"Stock item permanently deleted: {item_id}")

        return success_response({"id": item_id}, "Stock item permanently deleted")

    # Quantity mutations

    @classmethod
    def _apply_delta(cls,
                     item: StockItem,
                     delta: Decimal,
                     movement_type: str,
                     actor_id: Any,
                     reason: Optional[str],
                     reference_type: Optional[str],
                     reference_id: Any) -> StockMovement:
        previous_quantity = item.current_quantity
        new_quantity = previous_quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError(item.name, delta, previous_quantity)
        ensure_fits(new_quantity, "quantity")

        item.current_quantity = new_quantity
        item.save(update_fields=["current_quantity", "updated_at"])

        return StockMovementService.append(
            stock_item=item,
            movement_type=movement_type,
            quantity=delta,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            actor_id=actor_id,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    @classmethod
    def _clean_actor(cls, actor_id: Any) -> str:
        actor_id = clean_text(actor_id)
        if not actor_id:
            raise ValidationError("Actor is required", "actor_id")
        return actor_id

    @classmethod
    @wrap_storage_errors("receive stock")
    @transaction.atomic
    def receive(cls,
                item_id: Any,
                quantity: Any,
                actor_id: Any,
                reason: str = None,
                reference_type: str = None,
                reference_id: Any = None) -> Dict[str, Any]:
        quantity = parse_decimal(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", "quantity")
        actor_id = cls._clean_actor(actor_id)

        item = cls.lock(item_id)
        movement = cls._apply_delta(
            item, quantity, StockMovement.MovementType.RECEIVED,
            actor_id, clean_text(reason), reference_type, reference_id
        )

        logger.info(
            f"Stock received: item={item.id} +{quantity} "
            f"({movement.previous_quantity} -> {movement.new_quantity}) by {actor_id}"
        )

        return success_response({
            "item": cls.serialize(item),
            "movement": StockMovementService.serialize(movement),
        }, f"Received {quantity} {item.unit_of_measure} of {item.name}")

    @classmethod
    @wrap_storage_errors("adjust stock")
    @transaction.atomic
    def adjust(cls,
               item_id: Any,
               quantity: Any,
               reason: str,
               actor_id: Any,
               reference_type: str = None,
               reference_id: Any = None) -> Dict[str, Any]:
        delta = parse_decimal(quantity, "quantity")
        if delta == 0:
            raise ValidationError("Adjustment quantity cannot be 0", "quantity")
        reason = clean_text(reason)
        if not reason:
            raise ValidationError("Reason is required for adjustments", "reason")
        actor_id = cls._clean_actor(actor_id)

        item = cls.lock(item_id)
        try:
            movement = cls._apply_delta(
                item, delta, StockMovement.MovementType.ADJUSTED,
                actor_id, reason, reference_type, reference_id
            )
        except InsufficientStockError:
            logger.warning(
                f"Rejected adjustment on item {item.id}: {delta} against {item.current_quantity}"
            )
            raise

        logger.info(
            f"Stock adjusted: item={item.id} {delta:+} "
            f"({movement.previous_quantity} -> {movement.new_quantity}) by {actor_id}: {reason}"
        )

        return success_response({
            "item": cls.serialize(item),
            "movement": StockMovementService.serialize(movement),
        }, f"Stock adjusted: {delta:+} {item.unit_of_measure}")
