# shop/signals.py
import logging

from django.contrib.auth.models import Group
from django.db import DatabaseError, transaction
from django.db.models.signals import post_migrate, post_save
from django.dispatch import receiver

from .models import Notification, Order, Payment, PurchaseRequest

logger = logging.getLogger(__name__)

GROUP_OWNERS = "Owners"
GROUP_CUSTOMERS = "Customers"


@receiver(post_migrate, dispatch_uid="shop_seed_groups_v1")
def create_groups(sender, **kwargs) -> None:
    """After the 'shop' app migrates, ensure the role groups exist."""
    if getattr(sender, "label", None) != "shop":
        return

    Group.objects.get_or_create(name=GROUP_OWNERS)
    Group.objects.get_or_create(name=GROUP_CUSTOMERS)


def notify(user_id, title: str, message: str, kind: str, related_id: str = "") -> None:
    """
    Best-effort notification row. Runs in its own savepoint so a failure
    never poisons the surrounding checkout transaction.
    """
    try:
        with transaction.atomic():
            Notification.objects.create(
                user_id=user_id, title=title, message=message, kind=kind, related_id=related_id
            )
    except DatabaseError as exc:
        logger.warning("Notification for user %s dropped: %s", user_id, exc)


@receiver(post_save, sender=Order, dispatch_uid="shop_order_post_save_v1")
def order_saved(sender, instance: Order, created, update_fields=None, **kwargs) -> None:
    """New orders ping the store owner; status changes ping the customer."""
    if created:
        notify(
            instance.store.owner_id,
            "New order",
            f"Order {instance.order_number} was placed ({instance.final_amount}).",
            Notification.ORDER,
            instance.order_number,
        )
        return

    if update_fields and "status" in update_fields:
        notify(
            instance.customer_id,
            "Order status updated",
            f"Order {instance.order_number} is now {instance.get_status_display().lower()}.",
            Notification.ORDER,
            instance.order_number,
        )


@receiver(post_save, sender=Payment, dispatch_uid="shop_payment_post_save_v1")
def payment_saved(sender, instance: Payment, created, **kwargs) -> None:
    if not created:
        return
    order = instance.order
    if instance.status == Payment.COMPLETED:
        title, message = "Payment completed", f"We received {instance.amount} for order {order.order_number}."
    else:
        title, message = "Payment failed", f"Payment for order {order.order_number} failed: {instance.failure_reason}"
    for user_id in (order.customer_id, order.store.owner_id):
        notify(user_id, title, message, Notification.PAYMENT, order.order_number)


@receiver(post_save, sender=PurchaseRequest, dispatch_uid="shop_purchase_request_post_save_v1")
def purchase_request_saved(sender, instance: PurchaseRequest, created, update_fields=None, **kwargs) -> None:
    """Owners hear about each decision on their restock requests."""
    if created or not update_fields or "status" not in update_fields:
        return
    if instance.status == PurchaseRequest.COMPLETED:
        title = "Stock received"
        message = f"{instance.requested_quantity} x {instance.product.name} added to stock."
    else:
        title = "Purchase request updated"
        message = f"Request for {instance.product.name} is now {instance.get_status_display().lower()}."
    notify(instance.store.owner_id, title, message, Notification.INVENTORY, str(instance.pk))
