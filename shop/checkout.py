"""
Order placement and payment reconciliation.

Checkout runs in two phases. `place_order` freezes the settlement into a
pending Order before the customer is handed to the payment gateway. The
gateway later calls back with success or failure, and `reconcile_success`
or `reconcile_failure` records the single terminal Payment for that order.
Both reconcile calls are keyed on the order, so a replayed callback is a
no-op.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from functions.payments import get_payment_gateway

from .models import Coupon, Order, OrderItem, Payment, Product
from .pricing import CartLine, MixedStoreCartError, settle, store_of

logger = logging.getLogger(__name__)


# ---- Errors --------------------------------------------------------------------

class CheckoutError(Exception):
    """Base class for checkout failures; the message is safe to show users."""


class EmptyCartError(CheckoutError):
    pass


class InvalidCartError(CheckoutError):
    pass


class CouponUnavailableError(CheckoutError):
    pass


class InsufficientStockError(CheckoutError):
    pass


class OrderNotFoundError(CheckoutError):
    pass


class AmountMismatchError(CheckoutError):
    pass


class InvalidTransitionError(CheckoutError):
    pass


@dataclass(frozen=True)
class Reconciliation:
    order: Order
    payment: Payment
    created: bool


# ---- Cart → lines --------------------------------------------------------------

def parse_cart(cart: Dict[str, int]) -> Dict[int, int]:
    """
    Normalize a session cart {"<product_id>": qty} into {product_id: qty},
    dropping non-positive quantities.
    """
    quantities: Dict[int, int] = {}
    for raw_id, raw_qty in (cart or {}).items():
        try:
            product_id, qty = int(raw_id), int(raw_qty)
        except (TypeError, ValueError):
            raise InvalidCartError("Your cart contains an invalid item.")
        if qty > 0:
            quantities[product_id] = qty
    return quantities


def cart_lines(quantities: Dict[int, int], products) -> List[CartLine]:
    return [
        CartLine(product_id=p.id, unit_price=p.price, quantity=quantities[p.id], store_id=p.store_id)
        for p in products
    ]


def _new_order_number() -> str:
    return f"ORD-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"


# ---- Phase 1: create the pending order ----------------------------------------

@transaction.atomic
def place_order(customer, cart: Dict[str, int], coupon_id: Optional[int] = None) -> Order:
    """
    Turn the session cart into a pending Order with frozen amounts and
    decrement stock. Raises a CheckoutError before any write if the cart,
    coupon or stock is not acceptable.
    """
    quantities = parse_cart(cart)
    if not quantities:
        raise EmptyCartError("Your cart is empty.")

    products = list(
        Product.objects.select_for_update().filter(id__in=quantities.keys(), is_active=True).order_by("id")
    )
    if len(products) != len(quantities):
        raise InvalidCartError("Some items in your cart are no longer available.")

    lines = cart_lines(quantities, products)
    try:
        store_id = store_of(lines)
    except MixedStoreCartError as exc:
        raise InvalidCartError(str(exc)) from exc

    coupon = None
    if coupon_id:
        coupon = Coupon.objects.available(store=store_id).filter(pk=coupon_id).first()
        if coupon is None:
            raise CouponUnavailableError("The selected coupon cannot be used for this order.")

    for p in products:
        if p.stock < quantities[p.id]:
            raise InsufficientStockError(f"Insufficient stock for {p.name}.")

    settlement = settle(lines, coupon)

    order = Order.objects.create(
        order_number=_new_order_number(),
        customer=customer,
        store_id=store_id,
        coupon=coupon,
        total_amount=settlement.total_amount,
        discount_amount=settlement.discount_amount,
        final_amount=settlement.final_amount,
        status=Order.PENDING,
    )
    OrderItem.objects.bulk_create(
        [OrderItem(order=order, product=p, quantity=quantities[p.id], unit_price=p.price) for p in products]
    )
    for p in products:
        p.stock = p.stock - quantities[p.id]
        p.save(update_fields=["stock"])

    logger.info(
        "Order %s created: total=%s discount=%s final=%s coupon=%s",
        order.order_number, order.total_amount, order.discount_amount, order.final_amount, coupon_id,
    )
    return order


def build_payment_request(order: Order, success_url: str, fail_url: str) -> dict:
    """Payload handed to the gateway's checkout widget for `order`."""
    customer = order.customer
    item_count = sum(item.quantity for item in order.items.all())
    return {
        "orderId": order.order_number,
        "orderName": f"{order.store.name} order ({item_count} items)",
        "amount": order.final_amount,
        "customerName": customer.get_full_name() or customer.username,
        "customerEmail": customer.email,
        "successUrl": success_url,
        "failUrl": fail_url,
    }


# ---- Phase 2: reconcile the gateway callback -----------------------------------

def _lock_order(order_number: str) -> Order:
    try:
        return Order.objects.select_for_update().get(order_number=order_number)
    except Order.DoesNotExist:
        raise OrderNotFoundError(f"Order {order_number} does not exist.")


def _restock(order: Order) -> None:
    for item in order.items.all():
        Product.objects.filter(pk=item.product_id).update(stock=F("stock") + item.quantity)


def reconcile_success(order_number: str, payment_key: str, amount: int) -> Reconciliation:
    """
    Record a completed payment and confirm the order.

    Replays for an order that already has a Payment (completed or failed)
    return it untouched. The gateway confirmation happens while the order
    row is locked, so concurrent duplicates cannot both confirm.
    """
    with transaction.atomic():
        order = _lock_order(order_number)

        existing = Payment.objects.filter(order=order).first()
        if existing is not None:
            logger.info("Success callback replay for %s ignored (payment already %s)", order_number, existing.status)
            return Reconciliation(order=order, payment=existing, created=False)

        if not payment_key:
            raise CheckoutError("Missing payment key.")
        if amount != order.final_amount:
            logger.warning(
                "Amount mismatch for %s: callback=%s expected=%s", order_number, amount, order.final_amount
            )
            raise AmountMismatchError("The paid amount does not match the order total.")
        if order.status != Order.PENDING:
            raise InvalidTransitionError(f"Order {order_number} is {order.status}; payment not applied.")

        result = get_payment_gateway().confirm(payment_key=payment_key, order_id=order_number, amount=amount)

        payment = Payment.objects.create(
            order=order,
            payment_key=payment_key,
            amount=order.final_amount,
            method=result.get("method", ""),
            status=Payment.COMPLETED,
            approved_at=parse_datetime(result.get("approvedAt") or "") or timezone.now(),
        )
        order.status = Order.CONFIRMED
        order.save(update_fields=["status", "updated_at"])
        if order.coupon_id:
            Coupon.objects.filter(pk=order.coupon_id).update(used_count=F("used_count") + 1)

    logger.info("Payment completed for %s (%s)", order_number, order.final_amount)
    return Reconciliation(order=order, payment=payment, created=True)


def reconcile_failure(order_number: str, code: str, message: str) -> Reconciliation:
    """
    Record a failed payment, cancel the order and put its stock back.
    A second call for the same order is a no-op.
    """
    with transaction.atomic():
        order = _lock_order(order_number)

        existing = Payment.objects.filter(order=order).first()
        if existing is not None:
            logger.info("Failure callback replay for %s ignored (payment already %s)", order_number, existing.status)
            return Reconciliation(order=order, payment=existing, created=False)

        payment = Payment.objects.create(
            order=order,
            amount=0,
            status=Payment.FAILED,
            failure_reason=f"{code or 'UNKNOWN'}: {message or 'Payment failed'}",
        )
        if order.can_transition_to(Order.CANCELLED):
            _restock(order)
            order.status = Order.CANCELLED
            order.save(update_fields=["status", "updated_at"])
        else:
            logger.warning("Payment failed for %s but order is already %s", order_number, order.status)

    logger.info("Payment failed for %s: %s", order_number, payment.failure_reason)
    return Reconciliation(order=order, payment=payment, created=True)


# ---- Owner-side transitions ----------------------------------------------------

def transition_order(order: Order, new_status: str) -> Order:
    """
    Move `order` to `new_status` if the state graph allows it.

    The check runs against the locked row, not the caller's copy, so a
    concurrent cancellation cannot restock twice. Between two legal moves
    the last write wins.
    """
    if new_status not in dict(Order.STATUSES):
        raise InvalidTransitionError(f"Unknown status: {new_status}.")

    with transaction.atomic():
        locked = _lock_order(order.order_number)
        if not locked.can_transition_to(new_status):
            raise InvalidTransitionError(f"Cannot move an order from {locked.status} to {new_status}.")
        if new_status == Order.CANCELLED:
            _restock(locked)
        locked.status = new_status
        locked.save(update_fields=["status", "updated_at"])

    order.status, order.updated_at = locked.status, locked.updated_at

    logger.info("Order %s moved to %s", order.order_number, new_status)
    return order


# ---- Stale pending sweep -------------------------------------------------------

def sweep_stale_orders(older_than: Optional[timedelta] = None, now=None) -> int:
    """
    Fail and cancel pending orders whose payment callback never arrived.
    Returns how many orders were cancelled.
    """
    if older_than is None:
        older_than = timedelta(minutes=getattr(settings, "PENDING_ORDER_TIMEOUT_MINUTES", 30))
    cutoff = (now or timezone.now()) - older_than

    stale = list(
        Order.objects.filter(status=Order.PENDING, created_at__lt=cutoff, payment__isnull=True)
        .values_list("order_number", flat=True)
    )
    cancelled = 0
    for order_number in stale:
        result = reconcile_failure(order_number, "TIMEOUT", "Payment was not completed in time.")
        if result.created:
            cancelled += 1

    if cancelled:
        logger.info("Swept %s stale pending order(s)", cancelled)
    return cancelled
