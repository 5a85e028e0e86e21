from decimal import Decimal

from catalog.models import Seller, Product
from orders.exceptions import GatewayUnavailableError
from orders.razorpay_utils import compute_signature, verify_signature

SECRET = "s3cret"


class FakeGateway:
    """In-memory stand-in for RazorpayClient"""

    def __init__(self, secret=SECRET, unavailable=False):
        self.secret = secret
        self.unavailable = unavailable
        self.intents = []

    def create_intent(self, amount_minor_units, currency="INR"):
        if self.unavailable:
            raise GatewayUnavailableError()
        intent = {
            "gateway_order_id": f"order_{len(self.intents) + 1:04d}",
            "amount": amount_minor_units,
            "currency": currency,
        }
        self.intents.append(intent)
        return intent

    def verify_signature(self, gateway_order_id, gateway_payment_id, signature):
        return verify_signature(gateway_order_id, gateway_payment_id, signature, self.secret)

    def sign(self, gateway_order_id, gateway_payment_id):
        return compute_signature(gateway_order_id, gateway_payment_id, self.secret)


def make_seller(seller_id="S1", **kwargs):
    defaults = {
        "name": f"Seller {seller_id}",
        "email": f"{seller_id.lower()}@example.com",
        "phone": "9876543210",
        "address": "12 Market Road",
        "city": "Kolkata",
        "state": "West Bengal",
        "country": "India",
    }
    defaults.update(kwargs)
    return Seller.objects.create(seller_id=seller_id, **defaults)


def make_product(product_id, price, seller, status=Product.AVAILABLE, category="Books"):
    return Product.objects.create(
        product_id=product_id,
        name=f"Product {product_id}",
        price=Decimal(str(price)),
        description="",
        category=category,
        status=status,
        seller=seller,
    )
