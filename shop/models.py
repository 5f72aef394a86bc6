from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Store(models.Model):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="stores",
    )
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    address = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.name} (by {self.owner.username})"


class Product(models.Model):
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="products")
    name = models.CharField(max_length=100)
    price = models.PositiveIntegerField()  # smallest currency unit
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class CouponQuerySet(models.QuerySet):
    def available(self, store=None, now=None):
        """
        Coupons a customer may pick right now: active, inside the validity
        window, under their usage limit, and either global or for `store`.
        """
        now = now or timezone.now()
        qs = self.filter(is_active=True, valid_from__lte=now, valid_until__gte=now).filter(
            Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit"))
        )
        if store is not None:
            qs = qs.filter(Q(store=store) | Q(store__isnull=True))
        return qs


class Coupon(models.Model):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    DISCOUNT_TYPES = [
        (PERCENTAGE, "Percentage"),
        (FIXED, "Fixed amount"),
    ]

    # null store = usable in every store
    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="coupons",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES)
    discount_value = models.PositiveIntegerField()
    min_order_amount = models.PositiveIntegerField(null=True, blank=True)
    max_discount_amount = models.PositiveIntegerField(null=True, blank=True)
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    used_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CouponQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def clean(self):
        if self.discount_type == self.PERCENTAGE and self.discount_value is not None and self.discount_value > 100:
            raise ValidationError({"discount_value": "A percentage discount cannot exceed 100."})
        if self.valid_from and self.valid_until and self.valid_from >= self.valid_until:
            raise ValidationError({"valid_until": "Must be later than valid_from."})

    def __str__(self) -> str:
        if self.discount_type == self.PERCENTAGE:
            return f"{self.name} ({self.discount_value}% off)"
        return f"{self.name} ({self.discount_value} off)"


class Order(models.Model):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STATUSES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (PREPARING, "Preparing"),
        (READY, "Ready"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
    ]

    # Allowed manual and reconciliation moves; anything else is rejected.
    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED},
        CONFIRMED: {PREPARING, CANCELLED},
        PREPARING: {READY},
        READY: {COMPLETED},
        COMPLETED: set(),
        CANCELLED: set(),
    }

    order_number = models.CharField(max_length=64, unique=True)
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    store = models.ForeignKey(Store, on_delete=models.PROTECT, related_name="orders")
    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.SET_NULL,
        related_name="orders",
        null=True,
        blank=True,
    )
    # Frozen at creation; nothing recomputes these afterwards.
    total_amount = models.PositiveIntegerField()
    discount_amount = models.PositiveIntegerField(default=0)
    final_amount = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUSES, default=PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(final_amount=F("total_amount") - F("discount_amount")),
                name="order_final_amount_matches_settlement",
            )
        ]

    def can_transition_to(self, status: str) -> bool:
        return status in self.TRANSITIONS.get(self.status, set())

    def __str__(self) -> str:
        return f"Order {self.order_number} by {self.customer.username}"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.PositiveIntegerField()

    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def __str__(self) -> str:
        return f"{self.product.name} x{self.quantity} (Order {self.order.order_number})"


class Payment(models.Model):
    COMPLETED = "completed"
    FAILED = "failed"
    STATUSES = [
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    # One terminal outcome per order; the unique key makes replays detectable.
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="payment")
    payment_key = models.CharField(max_length=200, blank=True)
    amount = models.PositiveIntegerField()
    method = models.CharField(max_length=40, blank=True)
    status = models.CharField(max_length=20, choices=STATUSES)
    failure_reason = models.TextField(blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Payment {self.status} for {self.order.order_number}"


class Notification(models.Model):
    ORDER = "order"
    PAYMENT = "payment"
    SYSTEM = "system"
    PROMOTION = "promotion"
    INVENTORY = "inventory"
    KINDS = [
        (ORDER, "Order"),
        (PAYMENT, "Payment"),
        (SYSTEM, "System"),
        (PROMOTION, "Promotion"),
        (INVENTORY, "Inventory"),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    kind = models.CharField(max_length=20, choices=KINDS, default=SYSTEM)
    is_read = models.BooleanField(default=False)
    related_id = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.title} -> {self.user_id}"


class PurchaseRequest(models.Model):
    """An owner's restock order for one product, received into stock on completion."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    STATUSES = [
        (PENDING, "Pending"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
        (COMPLETED, "Completed"),
    ]

    TRANSITIONS = {
        PENDING: {APPROVED, REJECTED},
        APPROVED: {COMPLETED, REJECTED},
        REJECTED: set(),
        COMPLETED: set(),
    }

    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name="purchase_requests")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="purchase_requests")
    requested_quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    # Stock on hand when the request was made
    current_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUSES, default=PENDING)
    notes = models.TextField(blank=True)
    expected_delivery_date = models.DateField(null=True, blank=True)
    requested_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-requested_at"]

    @property
    def is_closed(self) -> bool:
        return not self.TRANSITIONS.get(self.status)

    def can_transition_to(self, status: str) -> bool:
        return status in self.TRANSITIONS.get(self.status, set())

    def __str__(self) -> str:
        return f"{self.product.name} x{self.requested_quantity} ({self.status})"
