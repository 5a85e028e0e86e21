from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # ============ CATALOG (seller & product lookups) ============
    path("", include("catalog.urls")),

    # ============ ORDERS (checkout, payment, fulfillment, cart) ============
    path("", include("orders.urls")),

    # ============ ADMIN ============
    path("admin/", admin.site.urls),
]
