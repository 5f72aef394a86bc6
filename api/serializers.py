# api/serializers.py
from __future__ import annotations

from typing import Any, Dict

from django.db import transaction
from rest_framework import serializers

from shop.checkout import cart_lines
from shop.inventory import PurchaseRequestError, open_purchase_request, process_purchase_request
from shop.models import Coupon, Notification, Order, OrderItem, Product, PurchaseRequest, Store
from shop.pricing import MixedStoreCartError, settle, store_of
from shop.signals import GROUP_OWNERS


def _request_user(serializer):
    request = serializer.context.get("request")
    return getattr(request, "user", None)


def _is_owner(user) -> bool:
    return bool(user and user.is_authenticated and user.groups.filter(name=GROUP_OWNERS).exists())


class ProductSerializer(serializers.ModelSerializer):
    """
    Serializer for Product.
    - Only Owners can write; must own the store.
    - Forbids changing store on update.
    """

    store_name = serializers.ReadOnlyField(source="store.name")
    owner_username = serializers.ReadOnlyField(source="store.owner.username")

    class Meta:
        model = Product
        fields = "__all__"

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        request = self.context.get("request")
        if request and request.method in ("POST", "PUT", "PATCH"):
            user = request.user
            if not user or not user.is_authenticated:
                raise serializers.ValidationError("Authentication required.")

            if not _is_owner(user):
                raise serializers.ValidationError("Only store owners can modify products.")

            store: Store | None = attrs.get("store") or getattr(self.instance, "store", None)
            if store is None:
                raise serializers.ValidationError({"store": "This field is required."})

            if store.owner_id != user.id:
                raise serializers.ValidationError("You do not own this store.")

            if self.instance is not None and "store" in attrs:
                incoming_store: Store = attrs["store"]
                if incoming_store.pk != self.instance.store_id:
                    raise serializers.ValidationError(
                        {"store": "Changing the store of an existing product is not allowed."}
                    )

        return attrs


class StoreSerializer(serializers.ModelSerializer):
    owner_username = serializers.ReadOnlyField(source="owner.username")

    class Meta:
        model = Store
        fields = "__all__"
        read_only_fields = ("owner",)

    def validate_name(self, value: str) -> str:
        if not value or not value.strip():
            raise serializers.ValidationError("Name cannot be blank.")
        return value.strip()

    def create(self, validated_data: Dict[str, Any]) -> Store:
        user = _request_user(self)
        if user is None or not user.is_authenticated:
            raise serializers.ValidationError("Authentication required.")
        if not _is_owner(user):
            raise serializers.ValidationError("Only store owners can create stores.")
        validated_data["owner"] = user
        return super().create(validated_data)


class CouponSerializer(serializers.ModelSerializer):
    store_name = serializers.ReadOnlyField(source="store.name")

    class Meta:
        model = Coupon
        fields = "__all__"
        read_only_fields = ("used_count", "created_at")

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        def current(name):
            return attrs.get(name, getattr(self.instance, name, None))

        discount_type = current("discount_type")
        discount_value = current("discount_value")
        if discount_type == Coupon.PERCENTAGE and discount_value is not None and discount_value > 100:
            raise serializers.ValidationError({"discount_value": "A percentage discount cannot exceed 100."})

        valid_from, valid_until = current("valid_from"), current("valid_until")
        if valid_from and valid_until and valid_from >= valid_until:
            raise serializers.ValidationError({"valid_until": "Must be later than valid_from."})

        user = _request_user(self)
        if user is not None and not user.is_staff:
            store = current("store")
            if store is None:
                raise serializers.ValidationError({"store": "Only staff can create global coupons."})
            if store.owner_id != user.id:
                raise serializers.ValidationError("You do not own this store.")
            if self.instance is not None and "store" in attrs and attrs["store"] != self.instance.store:
                raise serializers.ValidationError({"store": "Changing the store of a coupon is not allowed."})

        return attrs


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.ReadOnlyField(source="product.name")
    line_total = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = ["product", "product_name", "quantity", "unit_price", "line_total"]
        read_only_fields = fields

    def get_line_total(self, obj: OrderItem) -> int:
        return obj.line_total()


class OrderSerializer(serializers.ModelSerializer):
    """Read-only view of an order; amounts never change after checkout."""

    store_name = serializers.ReadOnlyField(source="store.name")
    customer_username = serializers.ReadOnlyField(source="customer.username")
    items = OrderItemSerializer(many=True, read_only=True)
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer",
            "customer_username",
            "store",
            "store_name",
            "coupon",
            "total_amount",
            "discount_amount",
            "final_amount",
            "status",
            "payment_status",
            "items",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payment_status(self, obj: Order):
        payment = getattr(obj, "payment", None)
        return payment.status if payment is not None else None


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUSES)


class QuoteItemSerializer(serializers.Serializer):
    product = serializers.PrimaryKeyRelatedField(queryset=Product.objects.filter(is_active=True))
    quantity = serializers.IntegerField(min_value=1)


class CheckoutQuoteSerializer(serializers.Serializer):
    """
    Price a prospective cart: {"items": [{"product": id, "quantity": n}], "coupon": id|null}.
    The coupon must be available for the cart's store.
    """

    items = QuoteItemSerializer(many=True, allow_empty=False)
    coupon = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        quantities: Dict[int, int] = {}
        products = {}
        for item in attrs["items"]:
            product = item["product"]
            products[product.id] = product
            quantities[product.id] = quantities.get(product.id, 0) + item["quantity"]

        lines = cart_lines(quantities, products.values())
        try:
            store_id = store_of(lines)
        except MixedStoreCartError as exc:
            raise serializers.ValidationError({"items": str(exc)})

        coupon = None
        coupon_id = attrs.get("coupon")
        if coupon_id:
            coupon = Coupon.objects.available(store=store_id).filter(pk=coupon_id).first()
            if coupon is None:
                raise serializers.ValidationError({"coupon": "This coupon cannot be used for this order."})

        attrs["store_id"] = store_id
        attrs["settlement"] = settle(lines, coupon)
        return attrs

    def to_representation(self, instance):
        settlement = instance["settlement"]
        return {
            "store": instance["store_id"],
            "coupon": instance.get("coupon"),
            "total_amount": settlement.total_amount,
            "discount_amount": settlement.discount_amount,
            "final_amount": settlement.final_amount,
        }


class PurchaseRequestSerializer(serializers.ModelSerializer):
    """
    Owner restock requests.
    - The product must belong to one of the requester's stores; store follows the product.
    - New requests start pending; status then moves along the approval graph.
    - Closed (completed/rejected) requests are frozen.
    """

    product_name = serializers.ReadOnlyField(source="product.name")
    store_name = serializers.ReadOnlyField(source="store.name")

    class Meta:
        model = PurchaseRequest
        fields = "__all__"
        read_only_fields = ("store", "current_quantity", "requested_at", "processed_at")

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        instance = self.instance
        user = _request_user(self)
        product = attrs.get("product") or getattr(instance, "product", None)

        if instance is None:
            if attrs.get("status", PurchaseRequest.PENDING) != PurchaseRequest.PENDING:
                raise serializers.ValidationError({"status": "New purchase requests start as pending."})
        else:
            if "product" in attrs and attrs["product"].pk != instance.product_id:
                raise serializers.ValidationError({"product": "Changing the product of a request is not allowed."})
            if instance.is_closed:
                raise serializers.ValidationError("This purchase request is closed.")
            new_status = attrs.get("status", instance.status)
            if new_status != instance.status and not instance.can_transition_to(new_status):
                raise serializers.ValidationError(
                    {"status": f"Cannot move a purchase request from {instance.status} to {new_status}."}
                )

        if user is not None and not user.is_staff and product is not None and product.store.owner_id != user.id:
            raise serializers.ValidationError("You do not own this store.")
        return attrs

    def create(self, validated_data: Dict[str, Any]) -> PurchaseRequest:
        try:
            return open_purchase_request(
                validated_data["product"],
                validated_data["requested_quantity"],
                notes=validated_data.get("notes", ""),
                expected_delivery_date=validated_data.get("expected_delivery_date"),
            )
        except PurchaseRequestError as exc:
            raise serializers.ValidationError(str(exc))

    def update(self, instance: PurchaseRequest, validated_data: Dict[str, Any]) -> PurchaseRequest:
        new_status = validated_data.pop("status", instance.status)
        with transaction.atomic():
            instance = super().update(instance, validated_data)
            if new_status != instance.status:
                try:
                    process_purchase_request(instance, new_status)
                except PurchaseRequestError as exc:
                    raise serializers.ValidationError({"status": str(exc)})
        return instance


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "title", "message", "kind", "is_read", "related_id", "created_at"]
        read_only_fields = ("title", "message", "kind", "related_id", "created_at")


class NotificationReadSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), required=False)

