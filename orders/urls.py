from django.urls import path
from . import views

urlpatterns = [
    # ============ Cart ============
    path("addtocart/<str:user_id>/", views.add_to_cart, name="add_to_cart"),
    path("fetchcart/<str:user_id>/", views.fetch_cart, name="fetch_cart"),
    path("clearcart/<str:user_id>/", views.clear_cart, name="clear_cart"),
    path("updatecart/<str:user_id>/<str:product_id>/", views.update_cart_item, name="update_cart_item"),
    path("deletecartitem/<str:user_id>/<str:product_id>/", views.delete_cart_item, name="delete_cart_item"),

    # ============ Checkout ============
    path("buyNow/<str:user_id>/", views.buy_now, name="buy_now"),
    path("buyfromcart/<str:user_id>/", views.buy_from_cart, name="buy_from_cart"),
    path("makepayment/", views.make_payment, name="make_payment"),
    path("paywithcod/", views.pay_with_cod, name="pay_with_cod"),

    # ============ Gateway callbacks ============
    path("verifyorder/", views.verify_order, name="verify_order"),
    path("paymentfailed/", views.payment_failed, name="payment_failed"),

    # ============ Orders & logistics ============
    path("fetchorders/<str:user_id>/", views.user_orders, name="user_orders"),
    path("fetchorderbyid/<str:user_id>/<str:order_id>/", views.order_detail, name="order_detail"),
    path("logistics/<str:order_id>/", views.logistic_details, name="logistic_details"),

    # ============ Seller ============
    path("seller/updatestatus/", views.update_status, name="update_status"),
    path("seller/fetchorders/<str:seller_id>/", views.seller_orders, name="seller_orders"),
    path("seller/logistics/<str:order_id>/", views.logistic_details, name="seller_logistic_details"),
]
