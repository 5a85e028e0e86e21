import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST, require_http_methods

from . import cart as cart_service
from . import checkout
from .exceptions import OrderFlowError, OrderNotFoundError, ValidationError
from .lifecycle import OrderLifecycleManager
from .models import Order
from .razorpay_utils import get_gateway

logger = logging.getLogger(__name__)

# ==================== HELPERS ====================

def _manager():
    return OrderLifecycleManager(get_gateway())

def _json_body(request):
    try:
        data = json.loads(request.body or b"{}")
    except ValueError:
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body")
    return data

def _error_response(error):
    return JsonResponse({
        "success": False,
        "error": error.message,
        "code": error.code,
    }, status=error.status_code)

def _server_error(context, e):
    logger.error(f"{context} error: {str(e)}", exc_info=True)
    return JsonResponse({"success": False, "error": "Internal server error"}, status=500)

def _intent_payload(intent):
    return {
        "id": intent["gateway_order_id"],
        "amount": intent["amount"],
        "currency": intent["currency"],
        "key": settings.RAZORPAY_KEY_ID,
    }

# ==================== CHECKOUT ====================

@csrf_exempt
@require_POST
def buy_now(request, user_id):
    """Create a gateway intent and Pending order for a single product"""
    try:
        data = _json_body(request)
        order, intent = checkout.buy_now(_manager(), user_id, data.get("productId"), data.get("quantity"))
        item = order.items.first()
        return JsonResponse({
            "success": True,
            "message": "Order created successfully",
            "order": {
                **_intent_payload(intent),
                "orderId": order.order_id,
                "totalPrice": str(order.total_price),
                "productDetails": {"name": item.product_name, "productId": item.product_id},
            },
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Buy now", e)

@csrf_exempt
@require_POST
def buy_from_cart(request, user_id):
    """Checkout the whole cart (single seller only)"""
    try:
        order, intent, removed = checkout.buy_from_cart(_manager(), user_id)
        return JsonResponse({
            "success": True,
            "message": "Order created successfully",
            "order": {
                **_intent_payload(intent),
                "orderId": order.order_id,
                "totalPrice": str(order.total_price),
                "productCount": order.items.count(),
            },
            "cartItemsRemoved": removed,
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Buy from cart", e)

@csrf_exempt
@require_POST
def make_payment(request):
    """Checkout from a client-submitted product list; prices are recomputed"""
    try:
        data = _json_body(request)
        order, intent = checkout.initiate_payment(
            _manager(),
            data.get("userId"),
            data.get("products"),
            client_total=data.get("totalPrice"),
        )
        return JsonResponse({
            "success": True,
            "order": _intent_payload(intent),
            "dbOrder": order.to_dict(),
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Payment initiation", e)

@csrf_exempt
@require_POST
def pay_with_cod(request):
    try:
        data = _json_body(request)
        order = checkout.pay_with_cod(
            _manager(),
            data.get("userId"),
            data.get("sellerId"),
            data.get("products"),
            client_total=data.get("totalPrice"),
        )
        return JsonResponse({
            "success": True,
            "message": "COD order created successfully",
            "order": order.to_dict(),
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("COD order", e)

# ==================== PAYMENT CALLBACKS ====================

@csrf_exempt
@require_POST
def verify_order(request):
    """Razorpay success handler: verify signature, confirm order, record payment"""
    try:
        data = _json_body(request)
        order, payment = _manager().confirm_gateway_payment(
            data.get("razorpay_order_id"),
            data.get("razorpay_payment_id"),
            data.get("razorpay_signature"),
        )
        return JsonResponse({
            "success": True,
            "message": "Payment verified successfully",
            "orderId": order.order_id,
            "status": order.status,
            "paymentId": payment.transaction_id,
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Payment verification", e)

@csrf_exempt
@require_POST
def payment_failed(request):
    try:
        data = _json_body(request)
        error = data.get("error") or {}
        reason = error.get("description") if isinstance(error, dict) else str(error)
        order = _manager().record_gateway_failure(data.get("razorpay_order_id"), reason)
        return JsonResponse({
            "success": True,
            "message": "Order cancelled due to payment failure",
            "orderId": order.order_id,
            "reason": order.failure_reason,
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Payment failure handling", e)

# ==================== FULFILLMENT ====================

@csrf_exempt
@require_http_methods(["PATCH"])
def update_status(request):
    """Seller moves an order forward (or cancels it)"""
    try:
        data = _json_body(request)
        order = _manager().advance_fulfillment(
            data.get("orderId"),
            data.get("sellerId"),
            data.get("status"),
            logistic_info={
                "carrier": data.get("logisticName"),
                "tracking": data.get("trackingNumber"),
            },
        )
        return JsonResponse({
            "success": True,
            "message": "Status Updated Successfully!",
            "orderId": order.order_id,
            "status": order.status,
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Status update", e)

@require_GET
def logistic_details(request, order_id):
    try:
        logistic = OrderLifecycleManager.get_logistic(order_id)
        return JsonResponse({
            "success": True,
            "message": "Logistic details fetched successfully",
            "logisticDetails": logistic.to_dict(),
        })
    except OrderFlowError as e:
        return _error_response(e)

# ==================== ORDER HISTORY ====================

@require_GET
def user_orders(request, user_id):
    orders = Order.objects.filter(user_id=user_id).select_related("payment", "logistic").prefetch_related("items")
    return JsonResponse({
        "success": True,
        "message": "Orders fetched successfully",
        "data": [order.to_dict() for order in orders],
    })

@require_GET
def seller_orders(request, seller_id):
    orders = Order.objects.filter(seller_id=seller_id).select_related("payment", "logistic").prefetch_related("items")
    return JsonResponse({
        "success": True,
        "message": "Orders fetched successfully",
        "data": [order.to_dict() for order in orders],
    })

@require_GET
def order_detail(request, user_id, order_id):
    """Single order of a user, with seller profile, payment and logistic"""
    order = (
        Order.objects.filter(user_id=user_id, order_id=order_id)
        .select_related("seller", "payment", "logistic")
        .prefetch_related("items")
        .first()
    )
    if order is None:
        return _error_response(OrderNotFoundError("Order not found"))
    return JsonResponse({
        "success": True,
        "message": "Order fetched successfully",
        "data": {**order.to_dict(), "seller": order.seller.to_dict()},
    })

# ==================== CART API ====================

@csrf_exempt
@require_POST
def add_to_cart(request, user_id):
    try:
        data = _json_body(request)
        cart = cart_service.add_to_cart(user_id, data.get("productId"), data.get("quantity", 1))
        return JsonResponse({"success": True, "cart": cart.to_dict()})
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Add to cart", e)

@require_GET
def fetch_cart(request, user_id):
    cart = cart_service.get_cart(user_id)
    if cart is None:
        return JsonResponse({"success": True, "cart": {"userId": user_id, "items": [], "itemCount": 0, "total": "0.00"}})
    return JsonResponse({"success": True, "cart": cart.to_dict()})

@csrf_exempt
@require_POST
def clear_cart(request, user_id):
    try:
        removed = cart_service.clear_cart(user_id)
        return JsonResponse({"success": True, "message": "Cart cleared successfully", "deletedCount": removed})
    except OrderFlowError as e:
        return _error_response(e)

@csrf_exempt
@require_http_methods(["PUT"])
def update_cart_item(request, user_id, product_id):
    try:
        data = _json_body(request)
        item = cart_service.update_cart_item(user_id, product_id, data.get("quantity"))
        return JsonResponse({
            "success": True,
            "message": "Cart item updated successfully",
            "updatedItem": {"productId": item.product_id, "quantity": item.quantity},
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Update cart item", e)

@csrf_exempt
@require_http_methods(["DELETE"])
def delete_cart_item(request, user_id, product_id):
    try:
        remaining = cart_service.remove_cart_item(user_id, product_id)
        return JsonResponse({
            "success": True,
            "message": "Item removed from cart successfully",
            "remainingItems": remaining,
        })
    except OrderFlowError as e:
        return _error_response(e)
    except Exception as e:
        return _server_error("Remove cart item", e)
