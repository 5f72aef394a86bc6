"""Views for the shop app: catalog, session cart, checkout, payment callbacks, and owner order management."""

import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth.decorators import login_required, user_passes_test
from django.core.exceptions import PermissionDenied
from django.db.models import Q
from django.http import HttpRequest
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.views.decorators.http import require_POST

from functions.payments import PaymentGatewayError

from .checkout import (
    CheckoutError,
    build_payment_request,
    cart_lines,
    parse_cart,
    place_order as create_pending_order,
    reconcile_failure,
    reconcile_success,
    transition_order,
)
from .forms import CheckoutForm, OrderStatusForm
from .models import Order, Payment, Product, Store
from .pricing import MixedStoreCartError, settle, store_of
from .signals import GROUP_OWNERS

logger = logging.getLogger(__name__)


# ---- Helpers ------------------------------------------------------------------

def _is_owner(user) -> bool:
    """True if the user belongs to the Owners group."""
    return user.is_authenticated and user.groups.filter(name=GROUP_OWNERS).exists()


def _is_owner_or_403(user) -> bool:
    """Owner check that raises 403 instead of redirecting when unauthorized."""
    if _is_owner(user):
        return True
    raise PermissionDenied


def _get_cart(session) -> dict:
    """
    Return the session-backed cart dict, creating it if missing.
    Structure: {"<product_id>": quantity_int}
    """
    cart = session.get("cart")
    if cart is None:
        cart = {}
        session["cart"] = cart
    return cart


def _cart_contents(cart: dict):
    """Products, quantities and the store for the current cart (store is None when empty)."""
    quantities = parse_cart(cart)
    products = list(Product.objects.filter(id__in=quantities.keys()).select_related("store").order_by("id"))
    items = [
        {"product": p, "qty": quantities[p.id], "subtotal": p.price * quantities[p.id]}
        for p in products
    ]
    store = products[0].store if products else None
    return items, cart_lines(quantities, products), store


# ---- Catalog (Public) ----------------------------------------------------------

def catalog_store_list(request: HttpRequest):
    """Public: show all stores so customers can browse by store."""
    stores = Store.objects.select_related("owner").order_by("name")
    return render(request, "shop/store_list.html", {"stores": stores})


def catalog_product_list(request: HttpRequest, store_id: int):
    """
    Public: list active products for a given store.
    Supports simple search with ?q=
    """
    store = get_object_or_404(Store, pk=store_id)
    q = request.GET.get("q", "").strip()

    products = Product.objects.filter(store=store, is_active=True).order_by("name")
    if q:
        products = products.filter(Q(name__icontains=q))

    return render(request, "shop/product_list.html", {"store": store, "products": products, "q": q})


# ---- Cart (Sessions) -----------------------------------------------------------

@require_POST
@login_required
def add_to_cart(request: HttpRequest):
    """
    Add a product to the cart (or increase its quantity).

    POST fields:
      - product_id: int (required)
      - qty: int (optional, defaults to 1; min=1)
    A cart only ever holds products from one store.
    """
    product_id_raw = request.POST.get("product_id", "").strip()
    if not product_id_raw.isdigit():
        messages.error(request, "Invalid product.")
        return redirect("shop:view_cart")

    product = Product.objects.filter(pk=int(product_id_raw), is_active=True).first()
    if product is None:
        messages.error(request, "Invalid product.")
        return redirect("shop:view_cart")

    try:
        qty = int(request.POST.get("qty", 1))
    except (TypeError, ValueError):
        qty = 1
    if qty < 1:
        qty = 1

    cart = _get_cart(request.session)
    other_store = (
        Product.objects.filter(id__in=[int(pid) for pid in cart.keys()])
        .exclude(store_id=product.store_id)
        .exists()
    )
    if other_store:
        messages.error(request, "Your cart already holds items from another store. Check out or clear it first.")
        return redirect("shop:view_cart")

    key = str(product.id)
    cart[key] = cart.get(key, 0) + qty

    request.session.modified = True
    messages.success(request, "Added to cart.")
    return redirect("shop:view_cart")


@login_required
def view_cart(request: HttpRequest):
    """Render the cart with product details and totals."""
    items, lines, store = _cart_contents(request.session.get("cart", {}))
    total = settle(lines).total_amount if lines else 0
    return render(request, "shop/cart.html", {"items": items, "total": total, "store": store})


@require_POST
@login_required
def remove_from_cart(request: HttpRequest, product_id: int):
    """Remove a product from the cart entirely."""
    cart = request.session.get("cart", {})
    key = str(int(product_id))
    if key in cart:
        del cart[key]
        request.session.modified = True
        messages.success(request, "Item removed from cart.")
    else:
        messages.error(request, "Item not found in cart.")
    return redirect("shop:view_cart")


@require_POST
@login_required
def update_cart_qty(request: HttpRequest, product_id: int):
    """
    Set an explicit quantity for a product in the cart.
    Qty <= 0 removes the item.
    """
    cart = _get_cart(request.session)
    key = str(int(product_id))

    try:
        qty = int(request.POST.get("qty", 1))
    except (TypeError, ValueError):
        qty = 1

    if qty <= 0:
        if key in cart:
            del cart[key]
            messages.success(request, "Item removed from cart.")
    elif key in cart:
        cart[key] = qty
        messages.success(request, "Quantity updated.")
    else:
        messages.error(request, "Item not found in cart.")

    request.session.modified = True
    return redirect("shop:view_cart")


@require_POST
@login_required
def clear_cart(request: HttpRequest):
    """Remove all items from the cart."""
    if "cart" in request.session:
        del request.session["cart"]
    request.session.modified = True
    messages.success(request, "Cart cleared.")
    return redirect("shop:view_cart")


# ---- Checkout ------------------------------------------------------------------

@login_required
def checkout(request: HttpRequest):
    """
    Checkout summary: items, coupon choice and the settled amounts.
    ?coupon=<id> previews a coupon before placing the order.
    """
    cart = request.session.get("cart", {})
    if not cart:
        messages.error(request, "Your cart is empty.")
        return redirect("shop:view_cart")

    try:
        items, lines, store = _cart_contents(cart)
        store_of(lines)
    except (CheckoutError, MixedStoreCartError) as exc:
        messages.error(request, str(exc))
        return redirect("shop:view_cart")

    form = CheckoutForm(request.GET or None, store=store)
    coupon = form.cleaned_data.get("coupon") if form.is_bound and form.is_valid() else None
    settlement = settle(lines, coupon)

    return render(
        request,
        "shop/checkout.html",
        {"items": items, "store": store, "form": form, "coupon": coupon, "settlement": settlement},
    )


@require_POST
@login_required
def place_order(request: HttpRequest):
    """Freeze the cart into a pending order and hand off to the payment page."""
    coupon_raw = request.POST.get("coupon", "").strip()
    coupon_id = int(coupon_raw) if coupon_raw.isdigit() else None

    try:
        order = create_pending_order(request.user, request.session.get("cart", {}), coupon_id=coupon_id)
    except CheckoutError as exc:
        logger.info("Checkout rejected for user %s: %s", request.user.pk, exc)
        messages.error(request, str(exc))
        return redirect("shop:checkout")

    return redirect("shop:payment", order_number=order.order_number)


@login_required
def payment(request: HttpRequest, order_number: str):
    """Render the gateway hand-off page for a pending order."""
    order = get_object_or_404(
        Order.objects.select_related("store", "customer"),
        order_number=order_number,
        customer=request.user,
    )
    if order.status != Order.PENDING:
        messages.error(request, "This order is no longer awaiting payment.")
        return redirect("shop:my_orders")

    payment_request = build_payment_request(
        order,
        success_url=request.build_absolute_uri(reverse("shop:payment_success")),
        fail_url=request.build_absolute_uri(reverse("shop:payment_fail")),
    )

    return render(
        request,
        "shop/payment.html",
        {
            "order": order,
            "payment_request": payment_request,
            "client_key": getattr(settings, "TOSS_CLIENT_KEY", ""),
        },
    )


@login_required
def payment_success(request: HttpRequest):
    """
    Gateway success callback: ?orderId=&paymentKey=&amount=
    Safe to hit more than once; replays leave the order as it is.
    """
    order_number = request.GET.get("orderId", "").strip()
    payment_key = request.GET.get("paymentKey", "").strip()
    amount_raw = request.GET.get("amount", "").strip()

    if not order_number or not payment_key or not amount_raw.isdigit():
        messages.error(request, "Missing payment parameters.")
        return redirect("shop:view_cart")

    get_object_or_404(Order, order_number=order_number, customer=request.user)

    try:
        result = reconcile_success(order_number, payment_key, int(amount_raw))
    except (CheckoutError, PaymentGatewayError) as exc:
        messages.error(request, f"Payment could not be confirmed: {exc}")
        return redirect("shop:my_orders")

    if result.payment.status != Payment.COMPLETED:
        # A failure was already recorded; the cart stays for a new order
        messages.error(request, "This payment was already recorded as failed. Please place the order again.")
        return redirect("shop:view_cart")

    if "cart" in request.session:
        del request.session["cart"]
    request.session.modified = True

    return render(request, "shop/order_success.html", {"order": result.order, "payment": result.payment})


@login_required
def payment_fail(request: HttpRequest):
    """Gateway failure callback: ?orderId=&code=&message="""
    order_number = request.GET.get("orderId", "").strip()
    code = request.GET.get("code", "").strip()
    message = request.GET.get("message", "").strip()

    if not order_number:
        messages.error(request, "Missing order id for the failed payment.")
        return redirect("shop:view_cart")

    get_object_or_404(Order, order_number=order_number, customer=request.user)
    result = reconcile_failure(order_number, code, message)

    return render(
        request,
        "shop/order_fail.html",
        {"order": result.order, "payment": result.payment, "code": code, "message": message},
    )


@login_required
def my_orders(request: HttpRequest):
    """The customer's own orders, newest first."""
    orders = (
        Order.objects.filter(customer=request.user)
        .select_related("store")
        .prefetch_related("items__product")
    )
    return render(request, "shop/my_orders.html", {"orders": orders})


# ---- Owner order management ----------------------------------------------------

@login_required
@user_passes_test(_is_owner_or_403)
def owner_orders(request: HttpRequest):
    """Orders for every store the owner runs; ?status= filters."""
    orders = (
        Order.objects.filter(store__owner=request.user)
        .select_related("store", "customer")
        .prefetch_related("items__product")
    )
    status = request.GET.get("status", "").strip()
    if status:
        orders = orders.filter(status=status)
    return render(request, "shop/owner_orders.html", {"orders": orders, "status": status, "form": OrderStatusForm()})


@require_POST
@login_required
@user_passes_test(_is_owner_or_403)
def owner_order_status(request: HttpRequest, pk: int):
    """Move one of the owner's orders to a new status."""
    order = get_object_or_404(Order, pk=pk, store__owner=request.user)
    form = OrderStatusForm(request.POST)
    if not form.is_valid():
        messages.error(request, "Unknown status.")
        return redirect("shop:owner_orders")

    try:
        transition_order(order, form.cleaned_data["status"])
    except CheckoutError as exc:
        messages.error(request, str(exc))
    else:
        messages.success(request, f"Order {order.order_number} is now {order.get_status_display().lower()}.")
    return redirect("shop:owner_orders")
