from django.contrib import admin
from .models import Coupon, Notification, Order, OrderItem, Payment, Product, PurchaseRequest, Store


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "owner", "product_count")
    list_select_related = ("owner",)
    search_fields = ("name", "owner__username")
    list_filter = ("owner",)
    ordering = ("name",)

    @admin.display(description="Products")
    def product_count(self, obj: Store) -> int:
        return obj.products.count()


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "store", "price", "stock", "is_active")
    list_select_related = ("store", "store__owner")
    list_filter = ("store", "is_active")
    search_fields = ("name", "store__name")
    list_editable = ("price", "stock", "is_active")
    ordering = ("name",)


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "store", "discount_type", "discount_value", "valid_until", "used_count", "is_active")
    list_select_related = ("store",)
    list_filter = ("discount_type", "is_active", "store")
    search_fields = ("name", "store__name")
    readonly_fields = ("used_count", "created_at")


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "quantity", "unit_price", "line_total_calc")
    fields = ("product", "quantity", "unit_price", "line_total_calc")
    can_delete = False

    @admin.display(description="Line total")
    def line_total_calc(self, obj: OrderItem):
        if obj.pk:
            return obj.line_total()
        return "-"


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    can_delete = False
    readonly_fields = ("payment_key", "amount", "method", "status", "failure_reason", "approved_at", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "order_number", "customer", "store", "created_at", "status", "final_amount", "items_count")
    list_select_related = ("customer", "store")
    list_filter = ("status", "store", "created_at")
    search_fields = ("order_number", "customer__username")
    date_hierarchy = "created_at"
    # Amounts are frozen at checkout.
    readonly_fields = ("order_number", "created_at", "updated_at", "coupon", "total_amount", "discount_amount", "final_amount")
    inlines = [OrderItemInline, PaymentInline]
    ordering = ("-created_at",)

    @admin.display(description="Items")
    def items_count(self, obj: Order) -> int:
        return obj.items.count()


@admin.register(PurchaseRequest)
class PurchaseRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "product", "store", "requested_quantity", "current_quantity", "status", "requested_at")
    list_select_related = ("product", "store")
    list_filter = ("status", "store")
    search_fields = ("product__name", "store__name", "notes")
    # Status moves only through the API.
    readonly_fields = ("status", "current_quantity", "requested_at", "processed_at")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "kind", "title", "is_read", "created_at")
    list_select_related = ("user",)
    list_filter = ("kind", "is_read")
    search_fields = ("user__username", "title", "related_id")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)


admin.site.site_header = "Storefront Admin"
admin.site.site_title = "Storefront Admin"
admin.site.index_title = "Administration"
