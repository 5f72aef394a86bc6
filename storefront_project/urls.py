# storefront_project/urls.py
from django.contrib import admin
from django.shortcuts import render
from django.urls import include, path

# --- Custom 403 handler (PermissionDenied) ---
def permission_denied_view(request, exception):
    return render(request, "403.html", status=403)

# Django looks for these names at module level in the *root* URLconf
handler403 = "storefront_project.urls.permission_denied_view"

urlpatterns = [
    path("admin/", admin.site.urls),

    # Sign-up, login, logout
    path("accounts/", include(("accounts.urls", "accounts"), namespace="accounts")),

    # API routes
    path("api/", include(("api.urls", "api"), namespace="api")),

    # Catalog, cart, checkout, payment callbacks, owner order pages
    path("", include(("shop.urls", "shop"), namespace="shop")),
]
