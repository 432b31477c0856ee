from django.contrib import admin
from django import forms
from django.urls import reverse
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateTimeFilter,
    RangeNumericFilter,
)

from .models import StockItem, StockMovement, Brand, StockItemBrand, ProductStockItem


class RecipeLineForm(forms.ModelForm):
    """Admin-side guard matching ProductStockService: a preferred brand must price the item."""

    class Meta:
        model = ProductStockItem
        fields = '__all__'

    def clean(self):
        cleaned_data = super().clean()
        stock_item = cleaned_data.get('stock_item')
        brand = cleaned_data.get('preferred_brand')
        if stock_item and brand and not StockItemBrand.objects.filter(
            stock_item=stock_item, brand=brand
        ).exists():
            self.add_error(
                'preferred_brand',
                _("%(brand)s has no price for %(item)s") % {'brand': brand, 'item': stock_item},
            )
        return cleaned_data


class StockItemBrandInline(TabularInline):
    model = StockItemBrand
    extra = 0
    fields = ('brand', 'price_before_tax', 'price_after_tax', 'is_preferred')
    readonly_fields = ('is_preferred',)


@admin.register(StockItem)
class StockItemAdmin(ModelAdmin):
    list_display = ['id', 'name', 'quantity_display', 'reorder_threshold', 'status_badge', 'updated_at']
    list_filter = [
        'status',
        ('current_quantity', RangeNumericFilter),
        ('updated_at', RangeDateTimeFilter),
    ]
    search_fields = ['name', 'description']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [StockItemBrandInline]

    # Quantity changes go through receive/adjust so they are audited
    readonly_fields = ('current_quantity', 'status', 'created_at', 'updated_at')

    fieldsets = (
        (_('Stock Item'), {
            'fields': ('name', 'description', 'unit_of_measure')
        }),
        (_('Stock'), {
            'fields': ('current_quantity', 'reorder_threshold', 'status')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at')
        }),
    )

    @display(description=_("Quantity"), ordering='current_quantity')
    def quantity_display(self, obj):
        return f"{obj.current_quantity} {obj.unit_of_measure}"

    @display(
        description=_("Status"),
        ordering='status',
        label={
            StockItem.Status.AVAILABLE: 'success',
            StockItem.Status.LOW_STOCK: 'warning',
            StockItem.Status.OUT_OF_STOCK: 'danger',
        },
    )
    def status_badge(self, obj):
        return obj.status

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ['id', 'item_link', 'type_badge', 'quantity', 'previous_quantity',
                    'new_quantity', 'actor_id', 'created_at']
    list_filter = [
        'type',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['reason', 'reference_type', 'reference_id', 'actor_id']
    list_filter_submit = True
    list_fullwidth = True

    @display(description=_("Stock Item"))
    def item_link(self, obj):
        item = StockItem.all_objects.filter(pk=obj.stock_item_id).first()
        if item is None:
            return f"#{obj.stock_item_id}"
        url = reverse('admin:stock_stockitem_change', args=[item.pk])
        return format_html('<a href="{}">{}</a>', url, item.name)

    @display(
        description=_("Type"),
        label={
            StockMovement.MovementType.RECEIVED: 'success',
            StockMovement.MovementType.ADJUSTED: 'info',
        },
    )
    def type_badge(self, obj):
        return obj.type

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Brand)
class BrandAdmin(ModelAdmin):
    list_display = ['id', 'name', 'active_badge', 'item_count', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'description']
    list_filter_submit = True

    @display(description=_("Active"), label={"Active": "success", "Inactive": "danger"})
    def active_badge(self, obj):
        return "Active" if obj.is_active else "Inactive"

    @display(description=_("Stock Items"))
    def item_count(self, obj):
        return obj.stock_item_prices.count()

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ProductStockItem)
class ProductStockItemAdmin(ModelAdmin):
    form = RecipeLineForm
    list_display = ['id', 'product', 'stock_item', 'quantity', 'preferred_brand', 'updated_at']
    list_filter = [
        ('quantity', RangeNumericFilter),
    ]
    search_fields = ['product__name', 'stock_item__name']
    list_filter_submit = True
    autocomplete_fields = ['stock_item']
