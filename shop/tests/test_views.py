from django.contrib.auth.models import User
from django.test import Client, override_settings
from django.urls import reverse

from functions.payments import reset_payment_gateway
from shop.checkout import place_order, reconcile_success
from shop.models import Notification, Order, Payment

from .base import BaseSetup


class CatalogTests(BaseSetup):
    def test_store_list_is_public(self):
        resp = Client().get(reverse("shop:store_list"))
        self.assertEqual(resp.status_code, 200)
        self.assertContains(resp, "Alice Mart")

    def test_product_search(self):
        url = reverse("shop:product_list", args=[self.store.id])
        resp = Client().get(url, {"q": "gadg"})
        self.assertContains(resp, "Gadget")
        self.assertNotContains(resp, "Widget")


class CartTests(BaseSetup):
    def test_add_requires_login(self):
        resp = Client().post(reverse("shop:add_to_cart"), {"product_id": self.product.id})
        self.assertEqual(resp.status_code, 302)
        self.assertIn(reverse("accounts:login"), resp["Location"])

    def test_add_accumulates_quantity(self):
        c = self.login("bob_customer")
        self.add_to_cart(c, self.product.id, 2)
        self.add_to_cart(c, self.product.id, 3)
        self.assertEqual(c.session["cart"], {str(self.product.id): 5})

    def test_add_rejects_other_store(self):
        c = self.login("bob_customer")
        self.add_to_cart(c, self.product.id)
        self.add_to_cart(c, self.other_product.id)
        self.assertEqual(c.session["cart"], {str(self.product.id): 1})

    def test_update_and_remove(self):
        c = self.login("bob_customer")
        self.add_to_cart(c, self.product.id)
        c.post(reverse("shop:update_cart_qty", args=[self.product.id]), {"qty": 4})
        self.assertEqual(c.session["cart"][str(self.product.id)], 4)

        c.post(reverse("shop:update_cart_qty", args=[self.product.id]), {"qty": 0})
        self.assertNotIn(str(self.product.id), c.session["cart"])

        self.add_to_cart(c, self.product2.id)
        c.post(reverse("shop:remove_from_cart", args=[self.product2.id]))
        self.assertEqual(c.session["cart"], {})

    def test_cart_shows_total(self):
        c = self.login("bob_customer")
        self.add_to_cart(c, self.product.id, 2)
        resp = c.get(reverse("shop:view_cart"))
        self.assertEqual(resp.context["total"], 2000)

    def test_clear(self):
        c = self.login("bob_customer")
        self.add_to_cart(c, self.product.id)
        c.post(reverse("shop:clear_cart"))
        self.assertNotIn("cart", c.session)


class CheckoutFlowTests(BaseSetup):
    def setUp(self):
        self.client = self.login("bob_customer")
        self.add_to_cart(self.client, self.product.id, 1)
        self.add_to_cart(self.client, self.product2.id, 1)

    def test_checkout_preview_with_coupon(self):
        resp = self.client.get(reverse("shop:checkout"), {"coupon": self.coupon.id})
        self.assertEqual(resp.status_code, 200)
        settlement = resp.context["settlement"]
        self.assertEqual(
            (settlement.total_amount, settlement.discount_amount, settlement.final_amount),
            (10000, 800, 9200),
        )

    def test_checkout_with_empty_cart_redirects(self):
        self.client.post(reverse("shop:clear_cart"))
        resp = self.client.get(reverse("shop:checkout"))
        self.assertRedirects(resp, reverse("shop:view_cart"), fetch_redirect_response=False)

    def test_place_order_then_pay(self):
        resp = self.client.post(reverse("shop:place_order"), {"coupon": self.coupon.id})
        order = Order.objects.get(customer=self.customer_user)
        self.assertRedirects(
            resp, reverse("shop:payment", args=[order.order_number]), fetch_redirect_response=False
        )

        resp = self.client.get(reverse("shop:payment", args=[order.order_number]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context["payment_request"]["amount"], 9200)

        resp = self.client.get(
            reverse("shop:payment_success"),
            {"orderId": order.order_number, "paymentKey": "pk_1", "amount": "9200"},
        )
        self.assertEqual(resp.status_code, 200)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.CONFIRMED)
        self.assertNotIn("cart", self.client.session)

        # Replayed redirect renders the same order without a second payment
        resp = self.client.get(
            reverse("shop:payment_success"),
            {"orderId": order.order_number, "paymentKey": "pk_1", "amount": "9200"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Payment.objects.filter(order=order).count(), 1)

    def test_place_order_with_bad_coupon(self):
        foreign = self.make_coupon(store=self.other_store, name="Carol's")
        resp = self.client.post(reverse("shop:place_order"), {"coupon": foreign.id})
        self.assertRedirects(resp, reverse("shop:checkout"), fetch_redirect_response=False)
        self.assertFalse(Order.objects.exists())

    def test_tampered_amount_is_rejected(self):
        self.client.post(reverse("shop:place_order"))
        order = Order.objects.get(customer=self.customer_user)

        resp = self.client.get(
            reverse("shop:payment_success"),
            {"orderId": order.order_number, "paymentKey": "pk_1", "amount": "1"},
        )
        self.assertRedirects(resp, reverse("shop:my_orders"), fetch_redirect_response=False)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.PENDING)

    def test_missing_callback_parameters(self):
        resp = self.client.get(reverse("shop:payment_success"), {"orderId": "ORD-X"})
        self.assertRedirects(resp, reverse("shop:view_cart"), fetch_redirect_response=False)

    def test_fail_callback_cancels_order_and_keeps_cart(self):
        self.client.post(reverse("shop:place_order"))
        order = Order.objects.get(customer=self.customer_user)

        resp = self.client.get(
            reverse("shop:payment_fail"),
            {"orderId": order.order_number, "code": "PAY_PROCESS_CANCELED", "message": "cancelled"},
        )
        self.assertEqual(resp.status_code, 200)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.CANCELLED)
        self.assertIn("cart", self.client.session)

    def test_success_after_failure_keeps_cart_and_failed_payment(self):
        self.client.post(reverse("shop:place_order"))
        order = Order.objects.get(customer=self.customer_user)
        self.client.get(reverse("shop:payment_fail"), {"orderId": order.order_number, "code": "X", "message": "y"})

        resp = self.client.get(
            reverse("shop:payment_success"),
            {"orderId": order.order_number, "paymentKey": "pk_late", "amount": str(order.final_amount)},
        )
        self.assertRedirects(resp, reverse("shop:view_cart"), fetch_redirect_response=False)
        self.assertIn("cart", self.client.session)
        self.assertEqual(order.payment.status, Payment.FAILED)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.CANCELLED)

    @override_settings(PAYMENTS_ENABLED=True, TOSS_SECRET_KEY="")
    def test_misconfigured_gateway_does_not_confirm(self):
        reset_payment_gateway()
        self.addCleanup(reset_payment_gateway)
        self.client.post(reverse("shop:place_order"))
        order = Order.objects.get(customer=self.customer_user)

        with self.assertLogs("functions.payments", level="ERROR"):
            resp = self.client.get(
                reverse("shop:payment_success"),
                {"orderId": order.order_number, "paymentKey": "forged", "amount": str(order.final_amount)},
            )
        self.assertRedirects(resp, reverse("shop:my_orders"), fetch_redirect_response=False)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.PENDING)
        self.assertFalse(Payment.objects.exists())
        self.assertIn("cart", self.client.session)

    def test_other_customers_order_is_404(self):
        order = place_order(self.customer_user, {str(self.product.id): 1})
        stranger = User.objects.create_user("eve", password="pass123")
        c = self.login("eve")
        resp = c.get(
            reverse("shop:payment_success"),
            {"orderId": order.order_number, "paymentKey": "pk", "amount": "1000"},
        )
        self.assertEqual(resp.status_code, 404)
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(stranger.orders.exists())

    def test_my_orders(self):
        self.client.post(reverse("shop:place_order"))
        resp = self.client.get(reverse("shop:my_orders"))
        self.assertEqual(len(resp.context["orders"]), 1)


class OwnerOrderTests(BaseSetup):
    def setUp(self):
        self.order = place_order(self.customer_user, {str(self.product.id): 1})
        reconcile_success(self.order.order_number, "pk_1", 1000)

    def test_customer_gets_403(self):
        c = self.login("bob_customer")
        resp = c.get(reverse("shop:owner_orders"))
        self.assertEqual(resp.status_code, 403)

    def test_owner_sees_own_store_orders(self):
        c = self.login("alice_owner")
        resp = c.get(reverse("shop:owner_orders"))
        self.assertEqual([o.pk for o in resp.context["orders"]], [self.order.pk])

        c = self.login("carol_owner")
        resp = c.get(reverse("shop:owner_orders"))
        self.assertEqual(len(resp.context["orders"]), 0)

    def test_owner_moves_order_forward(self):
        c = self.login("alice_owner")
        c.post(reverse("shop:owner_order_status", args=[self.order.pk]), {"status": Order.PREPARING})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.PREPARING)

    def test_illegal_move_is_refused(self):
        c = self.login("alice_owner")
        c.post(reverse("shop:owner_order_status", args=[self.order.pk]), {"status": Order.COMPLETED})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.CONFIRMED)

    def test_other_owner_gets_404(self):
        c = self.login("carol_owner")
        resp = c.post(reverse("shop:owner_order_status", args=[self.order.pk]), {"status": Order.PREPARING})
        self.assertEqual(resp.status_code, 404)


class SignUpTests(BaseSetup):
    def _signup(self, **overrides):
        data = {
            "username": "dave",
            "first_name": "Dave",
            "email": "d@example.com",
            "role": "owner",
            "password1": "Sup3r-Secret-pw",
            "password2": "Sup3r-Secret-pw",
        }
        data.update(overrides)
        return Client().post(reverse("accounts:signup"), data)

    def test_signup_as_owner_joins_group(self):
        resp = self._signup()
        self.assertRedirects(resp, reverse("shop:owner_orders"), fetch_redirect_response=False)
        dave = User.objects.get(username="dave")
        self.assertTrue(dave.groups.filter(name="Owners").exists())
        self.assertEqual(dave.first_name, "Dave")

    def test_signup_as_customer_joins_group(self):
        resp = self._signup(username="erin", email="E@Example.com", role="customer")
        self.assertRedirects(resp, reverse("shop:store_list"), fetch_redirect_response=False)
        erin = User.objects.get(username="erin")
        self.assertEqual(erin.email, "e@example.com")
        self.assertTrue(erin.groups.filter(name="Customers").exists())
        note = Notification.objects.get(user=erin)
        self.assertEqual(note.kind, Notification.SYSTEM)

    def test_duplicate_email_rejected(self):
        resp = self._signup(username="mallory", email="B@example.com")
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(User.objects.filter(username="mallory").exists())
