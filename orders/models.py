# orders/models.py
from decimal import Decimal

from django.db import models


class Order(models.Model):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (SHIPPED, "Shipped"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
    ]

    TERMINAL_STATUSES = (DELIVERED, CANCELLED)

    # Allowed forward moves; anything else is rejected
    TRANSITIONS = {
        PENDING: (CONFIRMED, CANCELLED),
        CONFIRMED: (SHIPPED, CANCELLED),
        SHIPPED: (DELIVERED, CANCELLED),
        DELIVERED: (),
        CANCELLED: (),
    }

    METHOD_RAZORPAY = "Razorpay"
    METHOD_COD = "COD"

    PAYMENT_METHOD_CHOICES = [
        (METHOD_RAZORPAY, "Razorpay"),
        (METHOD_COD, "Cash on Delivery"),
    ]

    # Gateway order id, or a locally generated id for COD
    order_id = models.CharField(max_length=100, unique=True)
    user_id = models.CharField(max_length=100, db_index=True)
    seller = models.ForeignKey(
        "catalog.Seller",
        to_field="seller_id",
        related_name="orders",
        on_delete=models.PROTECT,
    )

    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default=METHOD_RAZORPAY)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    failure_reason = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=['status', 'created_at'], name='order_status_created_idx'),
            models.Index(fields=['payment_method', 'status'], name='order_method_status_idx'),
        ]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())

    def to_dict(self):
        # Reverse one-to-ones; list views select_related both
        try:
            payment = self.payment
        except Payment.DoesNotExist:
            payment = None
        try:
            logistic = self.logistic
        except Logistic.DoesNotExist:
            logistic = None
        return {
            "orderId": self.order_id,
            "userId": self.user_id,
            "sellerId": self.seller_id,
            "products": [item.to_dict() for item in self.items.all()],
            "totalPrice": str(self.total_price),
            "paymentMethod": self.payment_method,
            "status": self.status,
            "failureReason": self.failure_reason,
            "payment": payment.to_dict() if payment else None,
            "logistic": logistic.to_dict() if logistic else None,
            "createdAt": self.created_at.isoformat(),
        }

    def __str__(self):
        return f"Order {self.order_id} [{self.status}]"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product_id = models.CharField(max_length=100)
    product_name = models.CharField(max_length=200)
    # Unit price copied from the catalog when the order was created
    price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ["id"]

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "price": str(self.price),
        }

    def __str__(self):
        return f"{self.product_name} x {self.quantity}"


class Payment(models.Model):
    COMPLETED = "Completed"

    STATUS_CHOICES = [
        (COMPLETED, "Completed"),
    ]

    order = models.OneToOneField(
        Order,
        to_field="order_id",
        related_name="payment",
        on_delete=models.PROTECT,
    )
    user_id = models.CharField(max_length=100, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    # Gateway payment id; unique so replayed confirmations cannot insert twice
    transaction_id = models.CharField(max_length=100, unique=True)
    method = models.CharField(max_length=20, choices=Order.PAYMENT_METHOD_CHOICES, default=Order.METHOD_RAZORPAY)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=COMPLETED)
    payment_date = models.DateTimeField(auto_now_add=True)

    def to_dict(self):
        return {
            "transactionId": self.transaction_id,
            "amount": str(self.amount),
            "paymentMethod": self.method,
            "status": self.status,
            "paymentDate": self.payment_date.isoformat(),
        }

    def __str__(self):
        return f"Payment {self.transaction_id} for {self.order_id}"


class Logistic(models.Model):
    CARRIER_CHOICES = [
        ("DTDC", "DTDC"),
        ("DELHIVERY", "Delhivery"),
        ("BLUE-DART", "Blue Dart"),
    ]

    CARRIERS = tuple(code for code, _ in CARRIER_CHOICES)

    STATUS_CHOICES = [
        (Order.SHIPPED, "Shipped"),
        (Order.DELIVERED, "Delivered"),
        (Order.CANCELLED, "Cancelled"),
    ]

    order = models.OneToOneField(
        Order,
        to_field="order_id",
        related_name="logistic",
        on_delete=models.CASCADE,
    )
    logistic_name = models.CharField(max_length=20, choices=CARRIER_CHOICES)
    tracking_number = models.CharField(max_length=100)
    logistic_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=Order.SHIPPED)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def to_dict(self):
        return {
            "orderId": self.order_id,
            "logisticName": self.logistic_name,
            "trackingNumber": self.tracking_number,
            "logisticStatus": self.logistic_status,
        }

    def __str__(self):
        return f"{self.logistic_name} {self.tracking_number} ({self.logistic_status})"


class Cart(models.Model):
    user_id = models.CharField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def total(self):
        return sum((item.line_total for item in self.items.all()), Decimal("0.00"))

    def to_dict(self):
        items = list(self.items.select_related("product"))
        return {
            "userId": self.user_id,
            "items": [item.to_dict() for item in items],
            "itemCount": sum(item.quantity for item in items),
            "total": str(sum((item.line_total for item in items), Decimal("0.00"))),
        }

    def __str__(self):
        return f"Cart of {self.user_id}"


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(
        "catalog.Product",
        to_field="product_id",
        related_name="cart_items",
        on_delete=models.CASCADE,
    )
    quantity = models.PositiveIntegerField(default=1)
    # Display only; checkout always re-reads the catalog price
    price = models.DecimalField(max_digits=10, decimal_places=2)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["added_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=['cart', 'product'], name='unique_cart_product'),
        ]

    @property
    def line_total(self):
        return self.price * self.quantity

    def to_dict(self):
        return {
            "productId": self.product_id,
            "productName": self.product.name,
            "quantity": self.quantity,
            "price": str(self.price),
        }

    def __str__(self):
        return f"{self.product_id} x {self.quantity}"
