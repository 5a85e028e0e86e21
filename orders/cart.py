# orders/cart.py
import logging

from django.db import transaction

from catalog.models import Product

from .exceptions import NotFoundError, ProductUnavailableError, ValidationError
from .lifecycle import parse_quantity
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


def add_to_cart(user_id, product_id, quantity=1):
    """Add a product to the user's cart, incrementing an existing line"""
    if not user_id or not product_id:
        raise ValidationError("User ID and product ID are required")
    quantity = parse_quantity(quantity)

    try:
        product = Product.objects.get(product_id=product_id)
    except Product.DoesNotExist:
        raise NotFoundError("Product not found")
    if not product.is_available:
        raise ProductUnavailableError(f"Product {product.name} is not available")

    with transaction.atomic():
        cart, _ = Cart.objects.get_or_create(user_id=user_id)
        item = CartItem.objects.select_for_update().filter(cart=cart, product=product).first()
        if item:
            item.quantity += quantity
            item.price = product.price
            item.save(update_fields=["quantity", "price"])
        else:
            CartItem.objects.create(cart=cart, product=product, quantity=quantity, price=product.price)
        cart.save(update_fields=["updated_at"])

    return cart


def get_cart(user_id):
    return Cart.objects.filter(user_id=user_id).first()


def clear_cart(user_id):
    """Delete the cart; returns the number of lines removed"""
    cart = get_cart(user_id)
    if cart is None:
        raise NotFoundError("Cart not found or already empty")

    removed = cart.items.count()
    cart.delete()
    logger.info(f"Cart of {user_id} cleared ({removed} lines)")
    return removed


def _get_cart_item(user_id, product_id):
    cart = get_cart(user_id)
    if cart is None:
        raise NotFoundError("Cart not found")
    item = cart.items.filter(product_id=product_id).first()
    if item is None:
        raise NotFoundError("Item not found in cart")
    return cart, item


def update_cart_item(user_id, product_id, quantity):
    """Set the quantity of an existing cart line"""
    quantity = parse_quantity(quantity)
    with transaction.atomic():
        cart, item = _get_cart_item(user_id, product_id)
        item.quantity = quantity
        item.save(update_fields=["quantity"])
        cart.save(update_fields=["updated_at"])
    return item


def remove_cart_item(user_id, product_id):
    """Drop one line from the cart; returns the number of lines left"""
    with transaction.atomic():
        cart, item = _get_cart_item(user_id, product_id)
        item.delete()
        cart.save(update_fields=["updated_at"])
    return cart.items.count()
