from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeNumericFilter

from stock.admin import RecipeLineForm
from stock.models import ProductStockItem
from .models import Product


class RecipeLineInline(TabularInline):
    model = ProductStockItem
    form = RecipeLineForm
    extra = 0
    fields = ('stock_item', 'quantity', 'preferred_brand', 'notes')
    autocomplete_fields = ['stock_item']


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ['id', 'name', 'price_display', 'is_active', 'ingredient_count', 'created_at']
    list_filter = [
        'is_active',
        ('price', RangeNumericFilter),
    ]
    search_fields = ['name', 'description']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [RecipeLineInline]

    @display(description=_("Price"), ordering='price')
    def price_display(self, obj):
        return f"{obj.price:.2f}"

    @display(description=_("Ingredients"))
    def ingredient_count(self, obj):
        return obj.stock_items.count()
