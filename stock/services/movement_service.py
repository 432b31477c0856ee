import logging
from typing import Dict, Any, List, Iterable
from decimal import Decimal
from datetime import datetime, date, time

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from stock.models import StockItem, StockMovement
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, clean_text
)


logger = logging.getLogger(__name__)


class StockMovementService(BaseService):
    """
    Read side of the movement audit log plus the single internal write path.

    Entries are written only by StockItemService.receive/adjust, inside the
    same transaction as the quantity change they describe.
    """

    model = StockMovement
    resource_name = "Stock movement"

    @classmethod
    def serialize(cls, movement: StockMovement,
                  item_name: str = None,
                  actor_name: str = None) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "uuid": str(movement.uuid),
            "stock_item_id": movement.stock_item_id,
            "stock_item_name": item_name,
            "type": movement.type,
            "type_display": movement.get_type_display(),
            "quantity": str(movement.quantity),
            "previous_quantity": str(movement.previous_quantity),
            "new_quantity": str(movement.new_quantity),
            "reason": movement.reason,
            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "actor_id": movement.actor_id,
            "actor_name": actor_name,
            "created_at": movement.created_at.isoformat(),
        }

    @classmethod
    def append(cls,
               stock_item: StockItem,
               movement_type: str,
               quantity: Decimal,
               previous_quantity: Decimal,
               new_quantity: Decimal,
               actor_id: Any,
               reason: str = None,
               reference_type: str = None,
               reference_id: Any = None) -> StockMovement:
        if movement_type not in StockMovement.MovementType.values:
            raise ValidationError(
                f"Invalid movement type. Valid: {StockMovement.MovementType.values}",
                "movement_type"
            )
        if new_quantity - previous_quantity != quantity:
            raise ValidationError(
                f"Movement snapshot mismatch: {previous_quantity} + {quantity} != {new_quantity}",
                "quantity"
            )

        # Any failure here propagates and rolls back the quantity write
        movement = StockMovement.objects.create(
            stock_item=stock_item,
            type=movement_type,
            quantity=quantity,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            reason=reason,
            reference_type=clean_text(reference_type),
            reference_id=clean_text(reference_id),
            actor_id=str(actor_id),
        )
        logger.debug(f"Movement {movement.id} ({movement_type}) appended for item {stock_item.id}")
        return movement

    @classmethod
    def item_names(cls, item_ids: Iterable[int]) -> Dict[int, str]:
        # Movements outlive soft-deleted and force-deleted items
        return dict(
            StockItem.all_objects.filter(id__in=set(item_ids)).values_list("id", "name")
        )

    @classmethod
    def actor_names(cls, actor_ids: Iterable[str]) -> Dict[str, str]:
        numeric_ids = {actor_id for actor_id in actor_ids if str(actor_id).isdigit()}
        if not numeric_ids:
            return {}

        User = get_user_model()
        names = {}
        for user in User.objects.filter(pk__in=[int(pk) for pk in numeric_ids]):
            full_name = user.get_full_name() if hasattr(user, "get_full_name") else ""
            names[str(user.pk)] = full_name or user.get_username()
        return names

    @classmethod
    def serialize_many(cls, movements: List[StockMovement]) -> List[Dict[str, Any]]:
        item_names = cls.item_names(m.stock_item_id for m in movements)
        actor_names = cls.actor_names(m.actor_id for m in movements)
        return [
            cls.serialize(
                movement,
                item_name=item_names.get(movement.stock_item_id),
                actor_name=actor_names.get(movement.actor_id, movement.actor_id),
            )
            for movement in movements
        ]

    @classmethod
    def get(cls, movement_id: Any) -> Dict[str, Any]:
        movement = cls.get_by_id(movement_id)
        if not movement:
            raise NotFoundError(cls.resource_name, movement_id)

        return success_response({"movement": cls.serialize_many([movement])[0]})

    @classmethod
    def _parse_bound(cls, value: Any, field: str, end_of_day: bool = False) -> datetime:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime.combine(value, time.max if end_of_day else time.min)
        else:
            text = str(value).strip()
            # Dates first: fromisoformat also accepts a bare date as midnight
            try:
                day = parse_date(text)
                parsed = parse_datetime(text) if day is None else None
            except ValueError:
                raise ValidationError(f"Invalid {field}: {value}", field)
            if day is not None:
                parsed = datetime.combine(day, time.max if end_of_day else time.min)
            elif parsed is None:
                raise ValidationError(f"Invalid {field}: {value}", field)

        if timezone.is_naive(parsed):
            parsed = timezone.make_aware(parsed)
        return parsed

    @classmethod
    def list(cls,
             page: int = 1,
             limit: int = None,
             stock_item_id: Any = None,
             movement_type: str = None,
             actor_id: Any = None,
             date_from: Any = None,
             date_to: Any = None,
             search: str = None) -> Dict[str, Any]:

        queryset = StockMovement.objects.all()

        if stock_item_id:
            try:
                stock_item_id = int(stock_item_id)
            except (TypeError, ValueError):
                raise ValidationError("stock_item_id must be an integer", "stock_item_id")
            queryset = queryset.filter(stock_item_id=stock_item_id)

        if movement_type:
            if movement_type not in StockMovement.MovementType.values:
                raise ValidationError(
                    f"Invalid movement type. Valid: {StockMovement.MovementType.values}",
                    "movement_type"
                )
            queryset = queryset.filter(type=movement_type)

        if actor_id:
            queryset = queryset.filter(actor_id=str(actor_id))

        start = cls._parse_bound(date_from, "date_from") if date_from else None
        end = cls._parse_bound(date_to, "date_to", end_of_day=True) if date_to else None
        if start and end and start > end:
            raise ValidationError("date_from must not be after date_to", "date_from")
        if start:
            queryset = queryset.filter(created_at__gte=start)
        if end:
            queryset = queryset.filter(created_at__lte=end)

        if search:
            queryset = queryset.filter(
                Q(reason__icontains=search) |
                Q(reference_type__icontains=search) |
                Q(reference_id__icontains=search)
            )

        queryset = queryset.order_by("-created_at", "-id")

        movements, pagination = paginate_queryset(queryset, page, limit)

        return success_response({
            "movements": cls.serialize_many(movements),
            "pagination": pagination,
        })
