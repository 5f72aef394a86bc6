import logging

from django.contrib import messages
from django.contrib.auth import login
from django.contrib.auth.models import Group
from django.urls import reverse
from django.views.generic import FormView

from shop.models import Notification
from shop.signals import GROUP_CUSTOMERS, GROUP_OWNERS, notify

from .forms import OWNER, SignUpForm

logger = logging.getLogger(__name__)


class SignUpView(FormView):
    """Register a customer or store owner, put them in their role group and sign them in."""
    template_name = "accounts/signup.html"
    form_class = SignUpForm

    def form_valid(self, form):
        user = form.save()
        self.is_owner = form.cleaned_data["role"] == OWNER
        group, _ = Group.objects.get_or_create(name=GROUP_OWNERS if self.is_owner else GROUP_CUSTOMERS)
        user.groups.add(group)
        login(self.request, user)

        if self.is_owner:
            welcome = "Create a store through the API to start taking orders."
        else:
            welcome = "Browse the stores and fill your cart."
        notify(user.id, "Welcome to Storefront", welcome, Notification.SYSTEM)
        logger.info("New %s account %s", group.name.lower().rstrip("s"), user.pk)

        messages.success(self.request, f"Welcome, {user.get_short_name() or user.username}!")
        return super().form_valid(form)

    def get_success_url(self):
        # Owners land on their order board; shoppers on the catalog
        if getattr(self, "is_owner", False):
            return reverse("shop:owner_orders")
        return reverse("shop:store_list")
