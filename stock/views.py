from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator
import json
import logging

from stock.services import (
    ServiceError, ValidationError,
    StockItemService, StockMovementService,
    BrandService, StockItemBrandService,
    ProductStockService, StockImportService,
)


logger = logging.getLogger(__name__)


STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "BUSINESS_RULE_VIOLATION": 422,
    "INSUFFICIENT_STOCK": 422,
    "IMMUTABLE_RECORD": 422,
    "STORAGE_ERROR": 500,
}


def error_response(message: str, code: str = "ERROR", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message}}
    if details:
        data["error"]["details"] = details
    return JsonResponse(data, status=status)


def handle_service_error(e: ServiceError):
    status = STATUS_BY_CODE.get(e.code, 500)
    if status >= 500:
        logger.error(f"Stock request failed: {e.message}", exc_info=e)
        # Storage causes stay in the logs
        return error_response(e.message, e.code, status)
    return error_response(e.message, e.code, status, e.details)


def query_bool(request, name: str, default: bool = False) -> bool:
    value = request.GET.get(name)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes")


class BaseStockView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Request body must be valid JSON")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    def get_actor_id(self, request):
        if request.user.is_authenticated:
            return str(request.user.pk)
        return request.headers.get("X-Actor-Id")

    def get_page_params(self, request):
        return {
            "page": request.GET.get("page", 1),
            "limit": request.GET.get("limit"),
        }

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


def pick(data: dict, *keys):
    return {key: data[key] for key in keys if key in data}


# ==================== STOCK ITEMS ====================

class StockItemListView(BaseStockView):
    """GET/POST /api/stock/items/"""

    def get(self, request):
        try:
            result = StockItemService.list(
                **self.get_page_params(request),
                search=request.GET.get("search"),
                status=request.GET.get("status"),
                low_stock_only=query_bool(request, "low_stock"),
                include_deleted=query_bool(request, "include_deleted"),
                sort_by=request.GET.get("sort_by", "created_at"),
                sort_order=request.GET.get("sort_order", "desc"),
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockItemService.create(
                name=data.get("name"),
                unit_of_measure=data.get("unit_of_measure"),
                **pick(data, "description", "current_quantity", "reorder_threshold"),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class StockItemDetailView(BaseStockView):
    """GET/PUT/DELETE /api/stock/items/<id>/"""

    def get(self, request, item_id):
        try:
            result = StockItemService.get(item_id)
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    def put(self, request, item_id):
        try:
            data = self.get_json_body(request)
            result = StockItemService.update(
                item_id, **pick(data, *StockItemService.UPDATABLE_FIELDS, "current_quantity")
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    patch = put

    def delete(self, request, item_id):
        try:
            result = StockItemService.soft_delete(item_id)
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


class StockItemRestoreView(BaseStockView):
    """POST /api/stock/items/<id>/restore/"""

    def post(self, request, item_id):
        try:
            result = StockItemService.restore(item_id)
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


class StockItemForceDeleteView(BaseStockView):
    """DELETE /api/stock/items/<id>/force/"""

    def delete(self, request, item_id):
        try:
            result = StockItemService.force_delete(item_id)
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


class StockItemDeletionCheckView(BaseStockView):
    """GET /api/stock/items/<id>/deletion-check/"""

    def get(self, request, item_id):
        try:
            StockItemService.get_or_404(item_id)
            return self.success(ProductStockService.check_deletion_protection(item_id))
        except ServiceError as e:
            return handle_service_error(e)


class StockItemStatsView(BaseStockView):
    """GET /api/stock/items/stats/"""

    def get(self, request):
        try:
            return self.success(StockItemService.stats())
        except ServiceError as e:
            return handle_service_error(e)


class StockReceiveView(BaseStockView):
    """POST /api/stock/items/<id>/receive/"""

    def post(self, request, item_id):
        try:
            data = self.get_json_body(request)
            result = StockItemService.receive(
                item_id=item_id,
                quantity=data.get("quantity"),
                actor_id=self.get_actor_id(request),
                **pick(data, "reason", "reference_type", "reference_id"),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class StockAdjustView(BaseStockView):
    """POST /api/stock/items/<id>/adjust/"""

    def post(self, request, item_id):
        try:
            data = self.get_json_body(request)
            result = StockItemService.adjust(
                item_id=item_id,
                quantity=data.get("quantity"),
                reason=data.get("reason"),
                actor_id=self.get_actor_id(request),
                **pick(data, "reference_type", "reference_id"),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class StockImportView(BaseStockView):
    """
    POST /api/stock/items/import/

    Accepts a multipart "file" upload, a raw text/csv body, or a JSON body
    of the form {"rows": [...]}.
    """

    def post(self, request):
        try:
            upload = request.FILES.get("file")
            if upload is not None:
                rows = StockImportService.parse_csv(upload.read())
            elif request.content_type == "text/csv":
                rows = StockImportService.parse_csv(request.body)
            else:
                data = self.get_json_body(request)
                rows = data.get("rows")
                if not isinstance(rows, list) or not rows:
                    raise ValidationError("A CSV file or a non-empty rows list is required", "rows")

            result = StockImportService.import_rows(rows)
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


# ==================== MOVEMENTS ====================

class MovementListView(BaseStockView):
    """GET /api/stock/movements/"""

    def get(self, request):
        try:
            result = StockMovementService.list(
                **self.get_page_params(request),
                stock_item_id=request.GET.get("stock_item_id"),
                movement_type=request.GET.get("type"),
                actor_id=request.GET.get("actor_id"),
                date_from=request.GET.get("date_from"),
                date_to=request.GET.get("date_to"),
                search=request.GET.get("search"),
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


class MovementDetailView(BaseStockView):
    """GET /api/stock/movements/<id>/"""

    def get(self, request, movement_id):
        try:
            return self.success(StockMovementService.get(movement_id))
        except ServiceError as e:
            return handle_service_error(e)


# ==================== BRANDS ====================

class BrandListView(BaseStockView):
    """GET/POST /api/stock/brands/"""

    def get(self, request):
        try:
            result = BrandService.list(
                **self.get_page_params(request),
                search=request.GET.get("search"),
                active_only=query_bool(request, "active_only"),
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BrandService.create(
                name=data.get("name"),
                **pick(data, "description", "is_active"),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class BrandDetailView(BaseStockView):
    """GET/PUT/DELETE /api/stock/brands/<id>/"""

    def get(self, request, brand_id):
        try:
            return self.success(BrandService.get(brand_id))
        except ServiceError as e:
            return handle_service_error(e)

    def put(self, request, brand_id):
        try:
            data = self.get_json_body(request)
            return self.success(
                BrandService.update(brand_id, **pick(data, *BrandService.UPDATABLE_FIELDS))
            )
        except ServiceError as e:
            return handle_service_error(e)

    patch = put

    def delete(self, request, brand_id):
        try:
            return self.success(BrandService.soft_delete(brand_id))
        except ServiceError as e:
            return handle_service_error(e)


class BrandRestoreView(BaseStockView):
    """POST /api/stock/brands/<id>/restore/"""

    def post(self, request, brand_id):
        try:
            return self.success(BrandService.restore(brand_id))
        except ServiceError as e:
            return handle_service_error(e)


class BrandForceDeleteView(BaseStockView):
    """DELETE /api/stock/brands/<id>/force/"""

    def delete(self, request, brand_id):
        try:
            return self.success(BrandService.force_delete(brand_id))
        except ServiceError as e:
            return handle_service_error(e)


# ==================== BRAND PRICING ====================

class StockItemBrandListView(BaseStockView):
    """GET/POST /api/stock/items/<id>/brands/"""

    def get(self, request, item_id):
        try:
            return self.success(StockItemBrandService.list_for_item(item_id))
        except ServiceError as e:
            return handle_service_error(e)

    def post(self, request, item_id):
        try:
            data = self.get_json_body(request)
            result = StockItemBrandService.attach(
                stock_item_id=item_id,
                brand_id=data.get("brand_id"),
                price_before_tax=data.get("price_before_tax"),
                price_after_tax=data.get("price_after_tax"),
                is_preferred=data.get("is_preferred", False),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class StockItemBrandDetailView(BaseStockView):
    """PUT/DELETE /api/stock/items/<id>/brands/<brand_id>/"""

    def put(self, request, item_id, brand_id):
        try:
            data = self.get_json_body(request)
            result = StockItemBrandService.update(
                item_id, brand_id,
                **pick(data, "price_before_tax", "price_after_tax", "is_preferred"),
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    patch = put

    def delete(self, request, item_id, brand_id):
        try:
            return self.success(StockItemBrandService.detach(item_id, brand_id))
        except ServiceError as e:
            return handle_service_error(e)


class StockItemBrandPreferredView(BaseStockView):
    """POST /api/stock/items/<id>/brands/<brand_id>/preferred/"""

    def post(self, request, item_id, brand_id):
        try:
            return self.success(StockItemBrandService.set_preferred(item_id, brand_id))
        except ServiceError as e:
            return handle_service_error(e)


# ==================== RECIPES ====================

class RecipeView(BaseStockView):
    """GET/POST /api/stock/products/<product_id>/recipe/"""

    def get(self, request, product_id):
        try:
            return self.success(ProductStockService.get_recipe(product_id))
        except ServiceError as e:
            return handle_service_error(e)

    def post(self, request, product_id):
        try:
            data = self.get_json_body(request)
            result = ProductStockService.add_line(
                product_id=product_id,
                stock_item_id=data.get("stock_item_id"),
                quantity=data.get("quantity"),
                actor_id=self.get_actor_id(request),
                **pick(data, "preferred_brand_id", "notes"),
            )
            return self.success(result, 201)
        except ServiceError as e:
            return handle_service_error(e)


class RecipeLineView(BaseStockView):
    """PUT/DELETE /api/stock/products/<product_id>/recipe/<stock_item_id>/"""

    def put(self, request, product_id, stock_item_id):
        try:
            data = self.get_json_body(request)
            result = ProductStockService.update_line(
                product_id, stock_item_id,
                actor_id=self.get_actor_id(request),
                **pick(data, "quantity", "preferred_brand_id", "notes"),
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)

    patch = put

    def delete(self, request, product_id, stock_item_id):
        try:
            result = ProductStockService.remove_line(
                product_id, stock_item_id, actor_id=self.get_actor_id(request)
            )
            return self.success(result)
        except ServiceError as e:
            return handle_service_error(e)


class ProductCostView(BaseStockView):
    """GET /api/stock/products/<product_id>/cost/"""

    def get(self, request, product_id):
        try:
            return self.success(ProductStockService.calculate_cost(product_id))
        except ServiceError as e:
            return handle_service_error(e)
