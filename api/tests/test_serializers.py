# api/tests/test_serializers.py
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory

from api.serializers import CheckoutQuoteSerializer, CouponSerializer, ProductSerializer, StoreSerializer
from shop.models import Coupon, Product, Store

User = get_user_model()


def ensure_group(name: str) -> Group:
    grp, _ = Group.objects.get_or_create(name=name)
    return grp


class SerializerTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.owner = User.objects.create_user("owner1", password="x")
        self.other_owner = User.objects.create_user("owner2", password="x")
        self.customer = User.objects.create_user("customer1", password="x")
        self.staff = User.objects.create_user("staff1", password="x", is_staff=True)

        ensure_group("Owners").user_set.add(self.owner, self.other_owner)
        ensure_group("Customers").user_set.add(self.customer)

        self.store = Store.objects.create(name="Acme", owner=self.owner)
        self.other_store = Store.objects.create(name="Other", owner=self.other_owner)

        self.product = Product.objects.create(store=self.store, name="Widget", price=1250, stock=3)
        self.gadget = Product.objects.create(store=self.store, name="Gadget", price=9000, stock=3)
        self.foreign = Product.objects.create(store=self.other_store, name="Gizmo", price=500, stock=3)

        now = timezone.now()
        self.window = {
            "valid_from": (now - timedelta(days=1)).isoformat(),
            "valid_until": (now + timedelta(days=1)).isoformat(),
        }
        self.coupon = Coupon.objects.create(
            store=self.store,
            name="Ten percent",
            discount_type=Coupon.PERCENTAGE,
            discount_value=10,
            min_order_amount=5000,
            max_discount_amount=800,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
        )

    def _request(self, method, user):
        request = getattr(self.factory, method)("/api/")
        request.user = user
        return request

    # ---- Products ----
    def test_product_serializer_read_fields(self):
        request = self.factory.get("/api/products/")
        data = ProductSerializer(instance=self.product, context={"request": request}).data
        self.assertEqual(data["name"], "Widget")
        self.assertEqual(data["price"], 1250)
        self.assertEqual(data["store"], self.store.id)
        self.assertEqual(data["store_name"], "Acme")
        self.assertEqual(data["owner_username"], "owner1")

    def test_product_create_requires_owner_group_and_store_ownership(self):
        payload = {"store": self.store.id, "name": "New", "price": 100, "stock": 1}

        ser = ProductSerializer(data=payload, context={"request": self._request("post", self.customer)})
        self.assertFalse(ser.is_valid())

        ser = ProductSerializer(data=payload, context={"request": self._request("post", self.other_owner)})
        self.assertFalse(ser.is_valid())
        self.assertIn("You do not own this store.", str(ser.errors))

        ser = ProductSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertTrue(ser.is_valid(), ser.errors)
        self.assertEqual(ser.save().store, self.store)

    def test_product_update_cannot_change_store(self):
        ser = ProductSerializer(
            instance=self.product,
            data={"store": self.other_store.id},
            partial=True,
            context={"request": self._request("patch", self.owner)},
        )
        self.assertFalse(ser.is_valid())

    # ---- Stores ----
    def test_store_create_sets_owner(self):
        ser = StoreSerializer(data={"name": "  Fresh  "}, context={"request": self._request("post", self.owner)})
        self.assertTrue(ser.is_valid(), ser.errors)
        store = ser.save()
        self.assertEqual(store.owner, self.owner)
        self.assertEqual(store.name, "Fresh")

    def test_store_blank_name_rejected(self):
        ser = StoreSerializer(data={"name": "   "}, context={"request": self._request("post", self.owner)})
        self.assertFalse(ser.is_valid())

    # ---- Coupons ----
    def test_coupon_percentage_over_100_rejected(self):
        payload = {"store": self.store.id, "name": "Huge", "discount_type": "percentage", "discount_value": 150, **self.window}
        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertFalse(ser.is_valid())
        self.assertIn("discount_value", ser.errors)

    def test_coupon_window_must_be_ordered(self):
        payload = {
            "store": self.store.id,
            "name": "Backwards",
            "discount_type": "fixed",
            "discount_value": 100,
            "valid_from": self.window["valid_until"],
            "valid_until": self.window["valid_from"],
        }
        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertFalse(ser.is_valid())
        self.assertIn("valid_until", ser.errors)

    def test_coupon_for_someone_elses_store_rejected(self):
        payload = {"store": self.other_store.id, "name": "Nope", "discount_type": "fixed", "discount_value": 100, **self.window}
        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertFalse(ser.is_valid())

    def test_global_coupon_is_staff_only(self):
        payload = {"name": "Everywhere", "discount_type": "fixed", "discount_value": 100, **self.window}
        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertFalse(ser.is_valid())
        self.assertIn("store", ser.errors)

        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.staff)})
        self.assertTrue(ser.is_valid(), ser.errors)

    def test_coupon_used_count_is_read_only(self):
        payload = {
            "store": self.store.id,
            "name": "Fixed",
            "discount_type": "fixed",
            "discount_value": 100,
            "used_count": 99,
            **self.window,
        }
        ser = CouponSerializer(data=payload, context={"request": self._request("post", self.owner)})
        self.assertTrue(ser.is_valid(), ser.errors)
        self.assertEqual(ser.save().used_count, 0)

    # ---- Checkout quote ----
    def test_quote_applies_capped_coupon(self):
        ser = CheckoutQuoteSerializer(
            data={
                "items": [{"product": self.gadget.id, "quantity": 1}, {"product": self.product.id, "quantity": 1}],
                "coupon": self.coupon.id,
            }
        )
        self.assertTrue(ser.is_valid(), ser.errors)
        self.assertEqual(
            ser.data,
            {
                "store": self.store.id,
                "coupon": self.coupon.id,
                "total_amount": 10250,
                "discount_amount": 800,
                "final_amount": 9450,
            },
        )

    def test_quote_merges_repeated_products(self):
        ser = CheckoutQuoteSerializer(
            data={"items": [{"product": self.product.id, "quantity": 1}, {"product": self.product.id, "quantity": 2}]}
        )
        self.assertTrue(ser.is_valid(), ser.errors)
        self.assertEqual(ser.data["total_amount"], 3750)

    def test_quote_rejects_mixed_stores(self):
        ser = CheckoutQuoteSerializer(
            data={"items": [{"product": self.product.id, "quantity": 1}, {"product": self.foreign.id, "quantity": 1}]}
        )
        self.assertFalse(ser.is_valid())
        self.assertIn("items", ser.errors)

    def test_quote_rejects_foreign_coupon(self):
        ser = CheckoutQuoteSerializer(
            data={"items": [{"product": self.foreign.id, "quantity": 1}], "coupon": self.coupon.id}
        )
        self.assertFalse(ser.is_valid())
        self.assertIn("coupon", ser.errors)
