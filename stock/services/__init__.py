"""
Stock Services - inventory ledger and recipe costing business logic

Usage:
    from stock.services import StockItemService, ProductStockService

    # Receive a delivery
    StockItemService.receive(item_id=1, quantity="25", actor_id="7", reason="delivery")

    # Live recipe cost
    ProductStockService.calculate_cost(product_id=3)
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    ConflictError,
    BusinessRuleError,
    InsufficientStockError,
    StorageError,
    ImmutableRecordError,
    success_response,
    parse_decimal,
    paginate_queryset,
    validate_pagination,
    clean_text,
    round_decimal,
    BaseService,
)

# Stock items and their audit trail
from .movement_service import StockMovementService
from .item_service import StockItemService

# Brands and pricing
from .brand_service import BrandService, StockItemBrandService

# Recipes and costing
from .recipe_service import ProductStockService

# Bulk import
from .import_service import StockImportService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "BusinessRuleError",
    "InsufficientStockError",
    "StorageError",
    "ImmutableRecordError",
    "success_response",
    "parse_decimal",
    "paginate_queryset",
    "validate_pagination",
    "clean_text",
    "round_decimal",
    "BaseService",

    # Services
    "StockMovementService",
    "StockItemService",
    "BrandService",
    "StockItemBrandService",
    "ProductStockService",
    "StockImportService",
]
