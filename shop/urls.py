# shop/urls.py
from django.urls import path
from . import views

app_name = 'shop'

urlpatterns = [
    # Catalog
    path('', views.catalog_store_list, name='store_list'),
    path('stores/<int:store_id>/', views.catalog_product_list, name='product_list'),

    # Cart
    path('cart/', views.view_cart, name='view_cart'),
    path('cart/add/', views.add_to_cart, name='add_to_cart'),
    path('cart/remove/<int:product_id>/', views.remove_from_cart, name='remove_from_cart'),
    path('cart/update/<int:product_id>/', views.update_cart_qty, name='update_cart_qty'),
    path('cart/clear/', views.clear_cart, name='clear_cart'),

    # Checkout & payment hand-off
    path('checkout/', views.checkout, name='checkout'),
    path('checkout/place/', views.place_order, name='place_order'),
    path('checkout/pay/<str:order_number>/', views.payment, name='payment'),
    path('payments/success/', views.payment_success, name='payment_success'),
    path('payments/fail/', views.payment_fail, name='payment_fail'),

    # Orders
    path('orders/', views.my_orders, name='my_orders'),
    path('owner/orders/', views.owner_orders, name='owner_orders'),
    path('owner/orders/<int:pk>/status/', views.owner_order_status, name='owner_order_status'),
]
