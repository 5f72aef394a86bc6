from shop.inventory import PurchaseRequestError, open_purchase_request, process_purchase_request
from shop.models import Notification, Product, PurchaseRequest

from .base import BaseSetup


class PurchaseRequestTests(BaseSetup):
    def setUp(self):
        self.request = open_purchase_request(self.product, 20, notes="Weekend rush")

    def test_open_records_current_stock(self):
        self.assertEqual(self.request.status, PurchaseRequest.PENDING)
        self.assertEqual(self.request.store, self.store)
        self.assertEqual(self.request.current_quantity, 10)
        self.assertIsNone(self.request.processed_at)

    def test_open_rejects_zero_quantity(self):
        with self.assertRaises(PurchaseRequestError):
            open_purchase_request(self.product, 0)

    def test_approve_then_complete_adds_stock(self):
        process_purchase_request(self.request, PurchaseRequest.APPROVED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertIsNotNone(self.request.processed_at)

        process_purchase_request(self.request, PurchaseRequest.COMPLETED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 30)

    def test_cannot_complete_unapproved(self):
        with self.assertRaises(PurchaseRequestError):
            process_purchase_request(self.request, PurchaseRequest.COMPLETED)

    def test_outdated_copy_cannot_receive_twice(self):
        outdated = PurchaseRequest.objects.get(pk=self.request.pk)
        process_purchase_request(self.request, PurchaseRequest.APPROVED)
        outdated.status = PurchaseRequest.APPROVED
        process_purchase_request(self.request, PurchaseRequest.COMPLETED)

        with self.assertRaises(PurchaseRequestError):
            process_purchase_request(outdated, PurchaseRequest.COMPLETED)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock, 30)

    def test_rejected_is_closed(self):
        process_purchase_request(self.request, PurchaseRequest.REJECTED)
        self.assertTrue(self.request.is_closed)
        with self.assertRaises(PurchaseRequestError):
            process_purchase_request(self.request, PurchaseRequest.APPROVED)

    def test_unknown_status(self):
        with self.assertRaises(PurchaseRequestError):
            process_purchase_request(self.request, "shipped")

    def test_completion_notifies_owner(self):
        process_purchase_request(self.request, PurchaseRequest.APPROVED)
        process_purchase_request(self.request, PurchaseRequest.COMPLETED)
        titles = list(
            Notification.objects.filter(user=self.owner_user, kind=Notification.INVENTORY)
            .order_by("id")
            .values_list("title", flat=True)
        )
        self.assertEqual(titles, ["Purchase request updated", "Stock received"])
