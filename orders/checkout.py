# orders/checkout.py
import logging
from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


def parse_products(products):
    """Client product list -> line items. Client prices are ignored."""
    if not isinstance(products, list) or not products:
        raise ValidationError("Missing required fields or invalid products array")

    line_items = []
    for product in products:
        if not isinstance(product, dict) or not product.get("productId") or product.get("quantity") is None:
            raise ValidationError("Each product must have productId and quantity")
        line_items.append({"product_id": product["productId"], "quantity": product["quantity"]})
    return line_items


def _warn_on_total_mismatch(order, client_total):
    if client_total in (None, ""):
        return
    try:
        submitted = Decimal(str(client_total))
    except InvalidOperation:
        submitted = None
    if submitted != order.total_price:
        logger.warning(
            f"Client total {client_total} ignored for order {order.order_id}; "
            f"server total is {order.total_price}"
        )


def buy_now(manager, user_id, product_id, quantity):
    """Single product straight to the payment gateway"""
    if not product_id:
        raise ValidationError("Invalid product or quantity")
    return manager.open_gateway_checkout(user_id, [{"product_id": product_id, "quantity": quantity}])


def buy_from_cart(manager, user_id):
    """
    Turn the user's cart into a Pending order.
    Returns (order, intent, removed_item_count). The purchased cart lines are
    deleted in the same transaction as the order insert.
    """
    cart = Cart.objects.filter(user_id=user_id).first()
    cart_items = list(cart.items.all()) if cart else []
    if not cart_items:
        raise ValidationError("Cart is empty")

    line_items = [{"product_id": item.product_id, "quantity": item.quantity} for item in cart_items]
    item_ids = [item.pk for item in cart_items]

    def drain_cart(order):
        CartItem.objects.filter(pk__in=item_ids).delete()

    order, intent = manager.open_gateway_checkout(user_id, line_items, on_created=drain_cart)
    logger.info(f"Cart of {user_id} drained into order {order.order_id} ({len(item_ids)} lines)")
    return order, intent, len(item_ids)


def initiate_payment(manager, user_id, products, client_total=None):
    """Checkout from a client-submitted product list"""
    order, intent = manager.open_gateway_checkout(user_id, parse_products(products))
    _warn_on_total_mismatch(order, client_total)
    return order, intent


def pay_with_cod(manager, user_id, seller_id, products, client_total=None):
    order = manager.place_cash_on_delivery_order(user_id, seller_id, parse_products(products))
    _warn_on_total_mismatch(order, client_total)
    return order
