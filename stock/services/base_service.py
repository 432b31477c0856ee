import functools
import logging
from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.conf import settings
from django.db import DatabaseError, IntegrityError
from django.db.models import Model


logger = logging.getLogger(__name__)


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class ConflictError(ServiceError):
    def __init__(self, message: str, field: str = None):
        super().__init__(message, "CONFLICT", {"field": field} if field else {})
        self.field = field


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None, details: Dict = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule, **(details or {})})
        self.rule = rule


class InsufficientStockError(BusinessRuleError):
    def __init__(self, item_name: str, adjustment: Decimal, available: Decimal):
        super().__init__(
            f"Adjustment would result in negative stock for {item_name}: "
            f"adjustment {adjustment}, available {available}",
            "non_negative_stock",
            {"item": item_name, "adjustment": str(adjustment), "available": str(available)}
        )
        self.code = "INSUFFICIENT_STOCK"


class StorageError(ServiceError):
    """Persistence failure not attributable to caller input; the cause is chained."""

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message, "STORAGE_ERROR", {"cause": repr(cause)} if cause else {})
        self.cause = cause


class ImmutableRecordError(ServiceError):
    def __init__(self, entity: str, identifier: Any, reason: str):
        super().__init__(
            f"{entity} {identifier} is immutable: {reason}",
            "IMMUTABLE_RECORD",
            {"entity": entity, "identifier": str(identifier)}
        )


def wrap_storage_errors(action: str):
    """
    Turn unexpected database failures into StorageError.

    Unique-key IntegrityErrors that slipped past the explicit pre-checks become
    ConflictError. ServiceErrors pass through untouched.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ServiceError:
                raise
            except IntegrityError as e:
                if is_unique_violation(e):
                    logger.warning(f"Unique constraint hit while trying to {action}: {e}")
                    raise ConflictError(f"Failed to {action}: duplicate value") from e
                logger.error(f"Integrity error while trying to {action}: {e}")
                raise StorageError(f"Failed to {action}", e) from e
            except DatabaseError as e:
                logger.error(f"Database error while trying to {action}: {e}")
                raise StorageError(f"Failed to {action}", e) from e
        return wrapper
    return decorator


def is_unique_violation(error: Exception) -> bool:
    text = str(error).lower()
    return "unique" in text or "duplicate" in text


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def validate_pagination(page: Any, limit: Any) -> Tuple[int, int]:
    max_limit = getattr(settings, "STOCK_PAGE_SIZE_MAX", 100)
    try:
        page = int(page)
        limit = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("Page and limit must be integers", "page")

    if page < 1:
        raise ValidationError("Page must be at least 1", "page")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"Limit must be between 1 and {max_limit}", "limit")
    return page, limit


def paginate_queryset(queryset, page: int = 1, limit: int = None) -> Tuple[List, Dict]:
    if limit is None:
        limit = getattr(settings, "STOCK_PAGE_SIZE_DEFAULT", 10)
    page, limit = validate_pagination(page, limit)

    total = queryset.count()
    total_pages = (total + limit - 1) // limit

    offset = (page - 1) * limit
    items = list(queryset[offset:offset + limit])

    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def parse_decimal(value: Any, field: str, places: int = 3, max_digits: int = 12) -> Decimal:
    """
    Parse a caller-supplied number; bad input raises ValidationError instead of defaulting.

    The result is rounded to `places` and must fit a DecimalField(max_digits, places).
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", field)
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number", field)
    try:
        number = round_decimal(number, places)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range", field)
    ensure_fits(number, field, max_digits, places)
    return number


def ensure_fits(number: Decimal, field: str, max_digits: int = 12, places: int = 3):
    integer_digits = max_digits - places
    if abs(number) >= Decimal(10) ** integer_digits:
        raise ValidationError(
            f"{field} is out of range: at most {integer_digits} digits before the decimal point",
            field
        )


def round_decimal(value: Decimal, places: int = 3) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class BaseService:
    model = None
    resource_name = None

    @classmethod
    def get_by_id(cls, id: Any) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, id: Any) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.resource_name or cls.model.__name__, id)
        return obj
