# api/views.py
from __future__ import annotations

import logging
from datetime import datetime, time

from django.db.models import Count, Sum
from django.db.models.functions import TruncDate, TruncMonth, TruncWeek
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import generics, status
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView

from shop.checkout import CheckoutError, transition_order
from shop.models import Coupon, Notification, Order, Product, PurchaseRequest, Store
from .permissions import IsOwner, IsStoreOwnerOrReadOnly, OwnersOnly
from .serializers import (
    CheckoutQuoteSerializer,
    CouponSerializer,
    NotificationReadSerializer,
    NotificationSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    ProductSerializer,
    PurchaseRequestSerializer,
    StoreSerializer,
)

logger = logging.getLogger(__name__)

PAID_STATUSES = (Order.CONFIRMED, Order.PREPARING, Order.READY, Order.COMPLETED)
TIMEFRAMES = {
    "daily": TruncDate,
    "weekly": TruncWeek,
    "monthly": TruncMonth,
}

# ---------- helpers ----------

def _owned_store_or_404(user, store_id) -> Store:
    """The store if `user` runs it (staff see every store), else 404."""
    if getattr(user, "is_staff", False):
        return get_object_or_404(Store, pk=store_id)
    return get_object_or_404(Store, pk=store_id, owner=user)


def _period_label(value, timeframe: str) -> str:
    if hasattr(value, "date") and callable(value.date):
        value = value.date()
    if timeframe == "monthly":
        return value.strftime("%Y-%m")
    return value.isoformat()


def _parse_bound(raw: str, name: str):
    """Accept an ISO date or datetime query parameter."""
    try:
        parsed = parse_datetime(raw) or parse_date(raw)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError({name: "Use an ISO date (YYYY-MM-DD) or datetime."})
    if not isinstance(parsed, datetime):
        parsed = datetime.combine(parsed, time.min)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed

# ---------- Products ----------

class ProductListCreateAPIView(generics.ListCreateAPIView):
    """GET: list products (public) • POST: create (owners only)."""
    queryset = Product.objects.select_related("store", "store__owner")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsOwner]

    def perform_create(self, serializer):
        product = serializer.save()
        logger.info("Product %s created in store %s", product.pk, product.store_id)

class ProductDetailAPIView(generics.RetrieveUpdateDestroyAPIView):
    """GET: public • PATCH/PUT/DELETE: the store's owner only."""
    queryset = Product.objects.select_related("store", "store__owner")
    serializer_class = ProductSerializer
    permission_classes = [IsStoreOwnerOrReadOnly]

# ---------- Stores ----------

class StoreListCreateAPIView(generics.ListCreateAPIView):
    """GET: public • POST: owners only (owner set from request.user)."""
    queryset = Store.objects.select_related("owner")
    serializer_class = StoreSerializer
    permission_classes = [IsAuthenticatedOrReadOnly, IsOwner]

class OwnerStoreListAPIView(generics.ListAPIView):
    """GET: list all stores for a specific owner id."""
    serializer_class = StoreSerializer

    def get_queryset(self):
        return Store.objects.filter(owner_id=self.kwargs["owner_id"])

class StoreProductListAPIView(generics.ListAPIView):
    """GET: list active products that belong to a specific store."""
    serializer_class = ProductSerializer

    def get_queryset(self):
        store_id = self.kwargs["store_id"]
        get_object_or_404(Store, pk=store_id)
        return Product.objects.filter(store_id=store_id, is_active=True).select_related(
            "store", "store__owner"
        )

# ---------- Coupons ----------

class StoreAvailableCouponListAPIView(generics.ListAPIView):
    """GET: coupons a customer can use at this store right now (store-specific and global)."""
    serializer_class = CouponSerializer

    def get_queryset(self):
        store = get_object_or_404(Store, pk=self.kwargs["store_id"])
        return Coupon.objects.available(store=store).select_related("store")

class CouponListCreateAPIView(generics.ListCreateAPIView):
    """GET: coupons of the owner's stores • POST: create a coupon for one of them."""
    serializer_class = CouponSerializer
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get_queryset(self):
        qs = Coupon.objects.select_related("store")
        if self.request.user.is_staff:
            return qs
        return qs.filter(store__owner=self.request.user)

    def perform_create(self, serializer):
        coupon = serializer.save()
        logger.info("Coupon %s created for store %s", coupon.pk, coupon.store_id)

class CouponDetailAPIView(generics.RetrieveUpdateDestroyAPIView):
    """Owner-only coupon maintenance; other owners' coupons are 404."""
    serializer_class = CouponSerializer
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get_queryset(self):
        qs = Coupon.objects.select_related("store")
        if self.request.user.is_staff:
            return qs
        return qs.filter(store__owner=self.request.user)

    def perform_destroy(self, instance):
        # Orders keep their frozen discount; the FK is nulled.
        logger.info("Coupon %s deleted", instance.pk)
        instance.delete()

# ---------- Purchase requests ----------

class PurchaseRequestListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: restock requests for the owner's stores (?status=, ?store=)
    POST: request more of one of the owner's products.
    """
    serializer_class = PurchaseRequestSerializer
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get_queryset(self):
        qs = PurchaseRequest.objects.select_related("store", "product")
        if not self.request.user.is_staff:
            qs = qs.filter(store__owner=self.request.user)
        params = self.request.query_params
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("store", "").isdigit():
            qs = qs.filter(store_id=params["store"])
        return qs

class PurchaseRequestDetailAPIView(generics.RetrieveUpdateDestroyAPIView):
    """Owner-only; PATCH {"status": ...} approves, rejects or receives the stock."""
    serializer_class = PurchaseRequestSerializer
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get_queryset(self):
        qs = PurchaseRequest.objects.select_related("store", "product")
        if self.request.user.is_staff:
            return qs
        return qs.filter(store__owner=self.request.user)

    def perform_destroy(self, instance):
        if instance.status != PurchaseRequest.PENDING:
            raise ValidationError({"status": "Only pending purchase requests can be withdrawn."})
        logger.info("Purchase request %s withdrawn", instance.pk)
        instance.delete()

# ---------- Checkout ----------

class CheckoutQuoteAPIView(APIView):
    """POST: price items with an optional coupon without creating an order."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CheckoutQuoteSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        return Response(serializer.data)

# ---------- Orders ----------

class CustomerOrderListAPIView(generics.ListAPIView):
    """GET: the requesting customer's orders, newest first."""
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return (
            Order.objects.filter(customer=self.request.user)
            .select_related("store", "customer", "payment")
            .prefetch_related("items__product")
        )

class StoreOrderListAPIView(generics.ListAPIView):
    """
    GET: orders for one of the owner's stores.
    Filters: ?status=<status>&from=<date>&to=<date>
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get_queryset(self):
        store = _owned_store_or_404(self.request.user, self.kwargs["store_id"])
        qs = (
            Order.objects.filter(store=store)
            .select_related("store", "customer", "payment")
            .prefetch_related("items__product")
        )
        params = self.request.query_params
        if params.get("status"):
            qs = qs.filter(status=params["status"])
        if params.get("from"):
            qs = qs.filter(created_at__gte=_parse_bound(params["from"], "from"))
        if params.get("to"):
            qs = qs.filter(created_at__lte=_parse_bound(params["to"], "to"))
        return qs

class OrderStatusAPIView(APIView):
    """
    PATCH: move an order along pending → confirmed → preparing → ready → completed
    (or cancel it from pending/confirmed). Only the store's owner may do this.
    """
    permission_classes = [IsAuthenticated, OwnersOnly]

    def patch(self, request, pk: int):
        order = get_object_or_404(Order.objects.select_related("store"), pk=pk)
        if not request.user.is_staff and order.store.owner_id != request.user.id:
            raise PermissionDenied("You do not own this store.")

        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            transition_order(order, serializer.validated_data["status"])
        except CheckoutError as exc:
            raise ValidationError({"status": str(exc)})

        return Response(OrderSerializer(order).data)

# ---------- Sales ----------

class StoreSalesSummaryAPIView(APIView):
    """GET: paid order totals per day, week or month (?timeframe=daily|weekly|monthly)."""
    permission_classes = [IsAuthenticated, OwnersOnly]

    def get(self, request, store_id: int):
        store = _owned_store_or_404(request.user, store_id)
        timeframe = request.query_params.get("timeframe", "daily")
        trunc = TIMEFRAMES.get(timeframe)
        if trunc is None:
            raise ValidationError({"timeframe": f"Choose one of: {', '.join(TIMEFRAMES)}."})

        rows = (
            Order.objects.filter(store=store, status__in=PAID_STATUSES)
            .annotate(period=trunc("created_at"))
            .values("period")
            .annotate(total=Sum("final_amount"), orders=Count("id"))
            .order_by("period")
        )
        data = [
            {"period": _period_label(row["period"], timeframe), "total": row["total"], "orders": row["orders"]}
            for row in rows
        ]
        return Response({"store": store.id, "timeframe": timeframe, "results": data})

# ---------- Notifications ----------

class NotificationListAPIView(generics.ListAPIView):
    """GET: the requesting user's notifications; ?unread=1 for unread only, ?since=<datetime> to poll."""
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        qs = Notification.objects.filter(user=self.request.user)
        params = self.request.query_params
        if params.get("unread") in ("1", "true"):
            qs = qs.filter(is_read=False)
        if params.get("since"):
            qs = qs.filter(created_at__gt=_parse_bound(params["since"], "since"))
        return qs

class NotificationMarkReadAPIView(APIView):
    """POST {"ids": [...]} marks those read; no ids marks everything read."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = NotificationReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        qs = Notification.objects.filter(user=request.user, is_read=False)
        ids = serializer.validated_data.get("ids")
        if ids:
            qs = qs.filter(id__in=ids)
        updated = qs.update(is_read=True)
        return Response({"updated": updated}, status=status.HTTP_200_OK)
