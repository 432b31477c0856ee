from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("items/", views.StockItemListView.as_view(), name="item-list"),
    path("items/stats/", views.StockItemStatsView.as_view(), name="item-stats"),
    path("items/import/", views.StockImportView.as_view(), name="item-import"),
    path("items/<int:item_id>/", views.StockItemDetailView.as_view(), name="item-detail"),
    path("items/<int:item_id>/restore/", views.StockItemRestoreView.as_view(), name="item-restore"),
    path("items/<int:item_id>/force/", views.StockItemForceDeleteView.as_view(), name="item-force-delete"),
    path("items/<int:item_id>/deletion-check/", views.StockItemDeletionCheckView.as_view(), name="item-deletion-check"),
    path("items/<int:item_id>/receive/", views.StockReceiveView.as_view(), name="item-receive"),
    path("items/<int:item_id>/adjust/", views.StockAdjustView.as_view(), name="item-adjust"),

    path("items/<int:item_id>/brands/", views.StockItemBrandListView.as_view(), name="item-brand-list"),
    path("items/<int:item_id>/brands/<int:brand_id>/", views.StockItemBrandDetailView.as_view(), name="item-brand-detail"),
    path("items/<int:item_id>/brands/<int:brand_id>/preferred/", views.StockItemBrandPreferredView.as_view(), name="item-brand-preferred"),

    path("movements/", views.MovementListView.as_view(), name="movement-list"),
    path("movements/<int:movement_id>/", views.MovementDetailView.as_view(), name="movement-detail"),

    path("brands/", views.BrandListView.as_view(), name="brand-list"),
    path("brands/<int:brand_id>/", views.BrandDetailView.as_view(), name="brand-detail"),
    path("brands/<int:brand_id>/restore/", views.BrandRestoreView.as_view(), name="brand-restore"),
    path("brands/<int:brand_id>/force/", views.BrandForceDeleteView.as_view(), name="brand-force-delete"),

    path("products/<int:product_id>/recipe/", views.RecipeView.as_view(), name="recipe"),
    path("products/<int:product_id>/recipe/<int:stock_item_id>/", views.RecipeLineView.as_view(), name="recipe-line"),
    path("products/<int:product_id>/cost/", views.ProductCostView.as_view(), name="product-cost"),
]
