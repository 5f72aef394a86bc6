# shop/forms.py
from django import forms

from .models import Coupon, Order


class CheckoutForm(forms.Form):
    coupon = forms.ModelChoiceField(
        queryset=Coupon.objects.none(),
        required=False,
        empty_label="No coupon",
    )

    def __init__(self, *args, **kwargs):
        store = kwargs.pop("store", None)
        super().__init__(*args, **kwargs)
        # Only coupons usable at this store right now
        if store is not None:
            self.fields["coupon"].queryset = Coupon.objects.available(store=store)


class OrderStatusForm(forms.Form):
    status = forms.ChoiceField(choices=Order.STATUSES)
