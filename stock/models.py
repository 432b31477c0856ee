import uuid as uuid_lib
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from stock.soft_delete import SoftDeleteMixin


class StockItem(SoftDeleteMixin, models.Model):
    class Status(models.TextChoices):
        AVAILABLE = "available", "Available"
        LOW_STOCK = "low_stock", "Low Stock"
        OUT_OF_STOCK = "out_of_stock", "Out of Stock"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(null=True, blank=True)
    unit_of_measure = models.CharField(max_length=50)

    current_quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    reorder_threshold = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0"))],
    )
    # Derived from quantity and threshold on every save
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.OUT_OF_STOCK,
        db_index=True,
        editable=False,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_quantity__gte=0),
                name="stock_item_quantity_non_negative",
            ),
        ]

    def __str__(self):
        return self.name

    def compute_status(self) -> str:
        quantity = self.current_quantity or Decimal("0")
        if quantity <= 0:
            return self.Status.OUT_OF_STOCK
        if self.reorder_threshold is not None and quantity <= self.reorder_threshold:
            return self.Status.LOW_STOCK
        return self.Status.AVAILABLE

    def save(self, *args, **kwargs):
        self.status = self.compute_status()

        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "status" not in update_fields:
            if {"current_quantity", "reorder_threshold"} & set(update_fields):
                kwargs["update_fields"] = list(update_fields) + ["status"]

        super().save(*args, **kwargs)


class StockMovementQuerySet(models.QuerySet):
    def update(self, **kwargs):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movement", "bulk", "movements cannot be updated")

    def delete(self):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movement", "bulk", "movements cannot be deleted")


class StockMovement(models.Model):
    """
    Append-only audit entry for one quantity change.

    The stock item link carries no database constraint so the entry survives a
    force-deleted item.
    """

    class MovementType(models.TextChoices):
        RECEIVED = "received", "Received"
        ADJUSTED = "adjusted", "Adjusted"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    stock_item = models.ForeignKey(
        StockItem,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="movements",
    )
    type = models.CharField(max_length=20, choices=MovementType.choices, db_index=True)

    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    previous_quantity = models.DecimalField(max_digits=12, decimal_places=3)
    new_quantity = models.DecimalField(max_digits=12, decimal_places=3)

    reason = models.CharField(max_length=500, null=True, blank=True)
    reference_type = models.CharField(max_length=50, null=True, blank=True)
    reference_id = models.CharField(max_length=64, null=True, blank=True)

    actor_id = models.CharField(max_length=64, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = StockMovementQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["stock_item", "created_at"], name="stock_mv_item_created_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="stock_mv_reference_idx"),
        ]

    def __str__(self):
        return f"{self.get_type_display()} {self.quantity:+} ({self.stock_item_id})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            from stock.services.base_service import ImmutableRecordError
            raise ImmutableRecordError("Stock movement", self.pk, "movements cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movement", self.pk, "movements cannot be deleted")


class Brand(SoftDeleteMixin, models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class StockItemBrand(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    stock_item = models.ForeignKey(
        StockItem, on_delete=models.CASCADE, related_name="brand_prices"
    )
    brand = models.ForeignKey(
        Brand, on_delete=models.PROTECT, related_name="stock_item_prices"
    )
    price_before_tax = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    price_after_tax = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    is_preferred = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-is_preferred", "created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["stock_item", "brand"],
                name="stock_item_brand_unique",
            ),
            models.UniqueConstraint(
                fields=["stock_item"],
                condition=Q(is_preferred=True),
                name="stock_item_single_preferred_brand",
            ),
            models.CheckConstraint(
                condition=Q(price_before_tax__gt=0) & Q(price_after_tax__gt=0),
                name="stock_item_brand_prices_positive",
            ),
        ]

    def __str__(self):
        return f"{self.brand.name} → {self.stock_item.name}"


class ProductStockItem(models.Model):
    """One recipe line: how much of a stock item one unit of a product consumes."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.CASCADE,
        related_name="stock_items",
    )
    stock_item = models.ForeignKey(
        StockItem,
        on_delete=models.PROTECT,
        related_name="product_usages",
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0.001"))],
    )
    preferred_brand = models.ForeignKey(
        Brand,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "stock_item"],
                name="product_stock_item_unique",
            ),
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="product_stock_item_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.stock_item.name} × {self.quantity}"
