# orders/lifecycle.py
"""
Order lifecycle: draft creation, payment confirmation, gateway failure,
cash on delivery and seller fulfillment.

Every status change goes through a conditional update on the status the
caller observed, so two concurrent requests cannot both move the same
order. Multi-row writes run inside a single ``transaction.atomic()`` block.
"""
import logging
import time
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import transaction, IntegrityError
from django.utils import timezone

from catalog.models import Product

from .exceptions import (
    AlreadyShippedError,
    AlreadyTerminalError,
    DuplicatePaymentError,
    InvalidSignatureError,
    InvalidTransitionError,
    MixedSellerError,
    NoLogisticRecordError,
    NotAuthorizedError,
    NotFoundError,
    OrderNotFoundError,
    ProductUnavailableError,
    ValidationError,
)
from .models import Order, OrderItem, Payment, Logistic
from .razorpay_utils import to_minor_units

logger = logging.getLogger(__name__)


def generate_cod_order_id():
    """Locally generated order id for cash-on-delivery orders"""
    return f"COD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def parse_quantity(value):
    if isinstance(value, bool) or value is None:
        raise ValidationError("Quantity must be a whole number of at least 1")
    try:
        quantity = int(str(value).strip())
    except ValueError:
        raise ValidationError("Quantity must be a whole number of at least 1")
    if quantity < 1:
        raise ValidationError("Quantity must be a whole number of at least 1")
    return quantity


class OrderLifecycleManager:
    """Owns the order state machine. The payment gateway is injected."""

    def __init__(self, gateway):
        self.gateway = gateway

    # ==================== DRAFTS ====================

    def prepare_line_items(self, line_items, seller_id=None):
        """
        Validate line items against the catalog and snapshot prices.

        Each item is a dict with ``product_id`` and ``quantity``. Prices
        always come from the catalog, never from the caller. Returns a draft
        dict with ``seller_id``, ``items`` and ``total_price``.
        """
        if not isinstance(line_items, (list, tuple)) or not line_items:
            raise ValidationError("At least one line item is required")

        requested = []
        for item in line_items:
            if not isinstance(item, dict) or not item.get("product_id"):
                raise ValidationError("Each line item must have a product_id and quantity")
            requested.append((str(item["product_id"]), parse_quantity(item.get("quantity"))))

        products = Product.objects.in_bulk([product_id for product_id, _ in requested], field_name="product_id")

        items = []
        seller_ids = set()
        total_price = Decimal("0.00")
        for product_id, quantity in requested:
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if not product.is_available:
                raise ProductUnavailableError(f"Product {product.name} is not available")

            seller_ids.add(product.seller_id)
            items.append({
                "product_id": product.product_id,
                "product_name": product.name,
                "price": product.price,
                "quantity": quantity,
            })
            total_price += product.price * quantity

        if len(seller_ids) > 1:
            raise MixedSellerError()
        draft_seller_id = seller_ids.pop()
        if seller_id and str(seller_id) != draft_seller_id:
            raise MixedSellerError(f"Products do not belong to seller {seller_id}")

        return {
            "seller_id": draft_seller_id,
            "items": items,
            "total_price": total_price,
        }

    def _persist(self, user_id, draft, order_id, status, payment_method, on_created=None):
        try:
            with transaction.atomic():
                order = Order.objects.create(
                    order_id=order_id,
                    user_id=user_id,
                    seller_id=draft["seller_id"],
                    total_price=draft["total_price"],
                    payment_method=payment_method,
                    status=status,
                )
                OrderItem.objects.bulk_create([
                    OrderItem(order=order, **item) for item in draft["items"]
                ])
                if on_created is not None:
                    on_created(order)
        except IntegrityError:
            logger.error(f"Order id collision: {order_id}")
            raise ValidationError(f"Order {order_id} already exists")

        logger.info(f"Order {order.order_id} created [{status}] total={order.total_price}")
        return order

    def create_draft_order(self, user_id, seller_id, line_items, payment_intent_id):
        """Persist a Pending order keyed by the gateway intent id"""
        if not user_id:
            raise ValidationError("User ID is required")
        if not payment_intent_id:
            raise ValidationError("Payment intent id is required")

        draft = self.prepare_line_items(line_items, seller_id)
        return self._persist(user_id, draft, payment_intent_id, Order.PENDING, Order.METHOD_RAZORPAY)

    def open_gateway_checkout(self, user_id, line_items, seller_id=None, on_created=None):
        """
        Validate, create the gateway intent, then write the Pending order.

        The order row is only written once the intent exists, so a gateway
        failure leaves nothing behind. ``on_created`` runs inside the same
        transaction as the order insert.
        """
        if not user_id:
            raise ValidationError("User ID is required")

        draft = self.prepare_line_items(line_items, seller_id)
        intent = self.gateway.create_intent(to_minor_units(draft["total_price"]), settings.RAZORPAY_CURRENCY)
        order = self._persist(
            user_id,
            draft,
            intent["gateway_order_id"],
            Order.PENDING,
            Order.METHOD_RAZORPAY,
            on_created=on_created,
        )
        return order, intent

    def place_cash_on_delivery_order(self, user_id, seller_id, line_items):
        """COD orders start Confirmed and never get a Payment record"""
        if not user_id or not seller_id:
            raise ValidationError("Missing required fields")

        draft = self.prepare_line_items(line_items, seller_id)
        return self._persist(user_id, draft, generate_cod_order_id(), Order.CONFIRMED, Order.METHOD_COD)

    # ==================== PAYMENT ====================

    def confirm_gateway_payment(self, gateway_order_id, gateway_payment_id, signature):
        if not gateway_order_id or not gateway_payment_id or not signature:
            raise ValidationError("Missing required Razorpay verification fields")

        if not self.gateway.verify_signature(gateway_order_id, gateway_payment_id, signature):
            logger.warning(f"Invalid payment signature for gateway order {gateway_order_id}")
            raise InvalidSignatureError()

        try:
            with transaction.atomic():
                if (Payment.objects.filter(transaction_id=gateway_payment_id).exists()
                        or Payment.objects.filter(order_id=gateway_order_id).exists()):
                    raise DuplicatePaymentError(f"Payment already recorded for order {gateway_order_id}")

                updated = Order.objects.filter(
                    order_id=gateway_order_id,
                    status=Order.PENDING,
                ).update(status=Order.CONFIRMED, updated_at=timezone.now())

                if not updated:
                    order = Order.objects.filter(order_id=gateway_order_id).first()
                    if order is None:
                        raise OrderNotFoundError(f"Order not found with ID: {gateway_order_id}")
                    raise InvalidTransitionError(
                        f"Order {gateway_order_id} is {order.status}, cannot confirm payment"
                    )

                order = Order.objects.get(order_id=gateway_order_id)
                payment = Payment.objects.create(
                    order=order,
                    user_id=order.user_id,
                    amount=order.total_price,
                    transaction_id=gateway_payment_id,
                    method=Order.METHOD_RAZORPAY,
                    status=Payment.COMPLETED,
                )
        except IntegrityError:
            # Concurrent replay inserted the payment first; status update rolled back
            logger.warning(f"Duplicate payment {gateway_payment_id} for order {gateway_order_id}")
            raise DuplicatePaymentError(f"Payment already recorded for order {gateway_order_id}")

        logger.info(f"Payment {gateway_payment_id} confirmed order {gateway_order_id}")
        return order, payment

    def record_gateway_failure(self, gateway_order_id, failure_reason=None):
        if not gateway_order_id:
            raise ValidationError("Gateway order id is required")

        reason = (str(failure_reason or "").strip() or "Payment failed")[:255]
        with transaction.atomic():
            order = Order.objects.filter(order_id=gateway_order_id).first()
            if order is None:
                raise OrderNotFoundError()
            if order.is_terminal:
                raise AlreadyTerminalError(f"Order {gateway_order_id} is already {order.status}")

            self._apply_transition(order, Order.CANCELLED, failure_reason=reason)
            self._sync_logistic(order, Order.CANCELLED)

        logger.info(f"Order {gateway_order_id} cancelled after gateway failure: {reason}")
        return order

    # ==================== FULFILLMENT ====================

    def advance_fulfillment(self, order_id, seller_id, new_status, logistic_info=None):
        if not order_id or not seller_id or not new_status:
            raise ValidationError("Missing required fields")
        if new_status not in Order.TRANSITIONS:
            raise ValidationError(f"Unknown status: {new_status}")

        with transaction.atomic():
            order = Order.objects.filter(order_id=order_id).first()
            if order is None:
                raise OrderNotFoundError(f"Order not found with ID: {order_id}")
            if order.seller_id != str(seller_id):
                logger.warning(f"Seller {seller_id} tried to update order {order_id}")
                raise NotAuthorizedError()

            if new_status == Order.SHIPPED and Logistic.objects.filter(order=order).exists():
                raise AlreadyShippedError()

            if not order.can_transition_to(new_status):
                raise InvalidTransitionError(f"Cannot move order from {order.status} to {new_status}")

            if (new_status == Order.CONFIRMED and order.payment_method == Order.METHOD_RAZORPAY
                    and not Payment.objects.filter(order=order).exists()):
                raise InvalidTransitionError("Order is awaiting payment confirmation")

            if new_status == Order.SHIPPED:
                carrier, tracking_number = self._validate_logistic_info(logistic_info)
            elif order.status == Order.SHIPPED and not Logistic.objects.filter(order=order).exists():
                raise NoLogisticRecordError(f"Order {order_id} is Shipped but has no logistic record")

            previous_status = order.status
            self._apply_transition(order, new_status)

            if new_status == Order.SHIPPED:
                self._create_logistic(order, carrier, tracking_number)
            else:
                self._sync_logistic(order, new_status)

        logger.info(f"Order {order_id} moved {previous_status} -> {new_status} by seller {seller_id}")
        return order

    def _validate_logistic_info(self, logistic_info):
        logistic_info = logistic_info or {}
        carrier = logistic_info.get("carrier")
        tracking_number = (logistic_info.get("tracking") or "").strip()

        if carrier not in Logistic.CARRIERS:
            raise ValidationError(f"Carrier must be one of {', '.join(Logistic.CARRIERS)}")
        if not tracking_number:
            raise ValidationError("Tracking number is required")
        return carrier, tracking_number

    def _apply_transition(self, order, new_status, **fields):
        """Conditional update: only succeeds if the status is still what we read"""
        updated = Order.objects.filter(pk=order.pk, status=order.status).update(
            status=new_status,
            updated_at=timezone.now(),
            **fields,
        )
        if not updated:
            raise InvalidTransitionError(f"Order {order.order_id} was modified concurrently, reload and retry")

        order.status = new_status
        for name, value in fields.items():
            setattr(order, name, value)

    def _create_logistic(self, order, carrier, tracking_number):
        # A clash on the Logistic.order one-to-one means another request shipped first
        try:
            with transaction.atomic():
                return Logistic.objects.create(
                    order=order,
                    logistic_name=carrier,
                    tracking_number=tracking_number,
                    logistic_status=Order.SHIPPED,
                )
        except IntegrityError:
            logger.warning(f"Concurrent shipment for order {order.order_id}")
            raise AlreadyShippedError()

    def _sync_logistic(self, order, new_status):
        if new_status not in (Order.DELIVERED, Order.CANCELLED):
            return
        Logistic.objects.filter(order=order).update(logistic_status=new_status, updated_at=timezone.now())

    # ==================== READS ====================

    @staticmethod
    def get_logistic(order_id):
        logistic = Logistic.objects.filter(order_id=order_id).first()
        if logistic is None:
            raise NotFoundError("Logistic record not found")
        return logistic

    @staticmethod
    def find_unreconciled_orders():
        """Gateway orders past Pending with no Payment row"""
        return Order.objects.filter(
            payment_method=Order.METHOD_RAZORPAY,
            status__in=[Order.CONFIRMED, Order.SHIPPED, Order.DELIVERED],
            payment__isnull=True,
        )
