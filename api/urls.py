# api/urls.py
from django.urls import path
from .views import (
    ProductListCreateAPIView, ProductDetailAPIView,
    StoreListCreateAPIView, OwnerStoreListAPIView, StoreProductListAPIView,
    StoreAvailableCouponListAPIView, CouponListCreateAPIView, CouponDetailAPIView,
    PurchaseRequestListCreateAPIView, PurchaseRequestDetailAPIView,
    CheckoutQuoteAPIView,
    CustomerOrderListAPIView, StoreOrderListAPIView, OrderStatusAPIView,
    StoreSalesSummaryAPIView,
    NotificationListAPIView, NotificationMarkReadAPIView,
)

app_name = "api"

urlpatterns = [
    # Products
    path("products/", ProductListCreateAPIView.as_view(), name="product-list"),
    path("products/<int:pk>/", ProductDetailAPIView.as_view(), name="product-detail"),

    # Stores
    path("stores/", StoreListCreateAPIView.as_view(), name="store-list"),
    path("owners/<int:owner_id>/stores/", OwnerStoreListAPIView.as_view(), name="owner-store-list"),
    path("stores/<int:store_id>/products/", StoreProductListAPIView.as_view(), name="store-product-list"),
    path("stores/<int:store_id>/coupons/", StoreAvailableCouponListAPIView.as_view(),
         name="store-coupon-list"),
    path("stores/<int:store_id>/orders/", StoreOrderListAPIView.as_view(), name="store-order-list"),
    path("stores/<int:store_id>/sales/", StoreSalesSummaryAPIView.as_view(), name="store-sales"),

    # Coupons (owner management)
    path("coupons/", CouponListCreateAPIView.as_view(), name="coupon-list"),
    path("coupons/<int:pk>/", CouponDetailAPIView.as_view(), name="coupon-detail"),

    # Purchase requests (owner restocking)
    path("purchase-requests/", PurchaseRequestListCreateAPIView.as_view(), name="purchase-request-list"),
    path("purchase-requests/<int:pk>/", PurchaseRequestDetailAPIView.as_view(), name="purchase-request-detail"),

    # Checkout & orders
    path("checkout/quote/", CheckoutQuoteAPIView.as_view(), name="checkout-quote"),
    path("orders/", CustomerOrderListAPIView.as_view(), name="order-list"),
    path("orders/<int:pk>/status/", OrderStatusAPIView.as_view(), name="order-status"),

    # Notifications
    path("notifications/", NotificationListAPIView.as_view(), name="notification-list"),
    path("notifications/read/", NotificationMarkReadAPIView.as_view(), name="notification-read"),
]
