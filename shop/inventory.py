"""Owner restocking: purchase requests and receiving them into stock."""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import Product, PurchaseRequest

logger = logging.getLogger(__name__)


class PurchaseRequestError(Exception):
    """The requested purchase request change is not allowed; safe to show users."""


def open_purchase_request(product: Product, quantity: int, notes: str = "", expected_delivery_date=None) -> PurchaseRequest:
    """Create a pending request for `product`, recording the stock on hand right now."""
    if quantity < 1:
        raise PurchaseRequestError("Requested quantity must be at least 1.")
    purchase_request = PurchaseRequest.objects.create(
        store_id=product.store_id,
        product=product,
        requested_quantity=quantity,
        current_quantity=product.stock,
        notes=notes,
        expected_delivery_date=expected_delivery_date,
    )
    logger.info(
        "Purchase request %s opened: product=%s qty=%s", purchase_request.pk, product.pk, quantity
    )
    return purchase_request


def process_purchase_request(purchase_request: PurchaseRequest, new_status: str) -> PurchaseRequest:
    """
    Approve, reject or complete a request. Completing adds the requested
    quantity to the product's stock, once: the check runs on the locked row.
    """
    if new_status not in dict(PurchaseRequest.STATUSES):
        raise PurchaseRequestError(f"Unknown status: {new_status}.")

    with transaction.atomic():
        locked = PurchaseRequest.objects.select_for_update().get(pk=purchase_request.pk)
        if not locked.can_transition_to(new_status):
            raise PurchaseRequestError(
                f"Cannot move a purchase request from {locked.status} to {new_status}."
            )
        if new_status == PurchaseRequest.COMPLETED:
            Product.objects.filter(pk=locked.product_id).update(stock=F("stock") + locked.requested_quantity)
        locked.status = new_status
        locked.processed_at = timezone.now()
        locked.save(update_fields=["status", "processed_at"])

    purchase_request.status, purchase_request.processed_at = locked.status, locked.processed_at
    logger.info("Purchase request %s moved to %s", purchase_request.pk, new_status)
    return purchase_request
