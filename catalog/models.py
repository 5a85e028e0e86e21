# catalog/models.py
from django.db import models


class Seller(models.Model):
    STATUS_CHOICES = [
        ("Active", "Active"),
        ("Inactive", "Inactive"),
    ]

    seller_id = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=20)
    address = models.TextField()
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    country = models.CharField(max_length=100)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="Active")

    def to_dict(self):
        """Public profile, safe to return to buyers"""
        return {
            "sellerId": self.seller_id,
            "sellerName": self.name,
            "sellerEmail": self.email,
            "sellerPhone": self.phone,
            "sellerAddress": self.address,
            "sellerCity": self.city,
            "sellerState": self.state,
            "sellerCountry": self.country,
            "status": self.status,
        }

    def __str__(self):
        return f"{self.name} ({self.seller_id})"


class Product(models.Model):
    AVAILABLE = "Available"
    OUT_OF_STOCK = "Out of Stock"

    STATUS_CHOICES = [
        (AVAILABLE, "Available"),
        (OUT_OF_STOCK, "Out of Stock"),
    ]

    CATEGORY_CHOICES = [
        ("Electronics", "Electronics"),
        ("Fashion", "Fashion"),
        ("Home Appliances", "Home Appliances"),
        ("Books", "Books"),
    ]

    product_id = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=AVAILABLE, db_index=True)
    seller = models.ForeignKey(
        Seller,
        to_field="seller_id",
        related_name="products",
        on_delete=models.CASCADE,
    )

    @property
    def is_available(self):
        return self.status == self.AVAILABLE

    def to_dict(self):
        return {
            "productId": self.product_id,
            "productName": self.name,
            "productPrice": str(self.price),
            "productDescription": self.description,
            "productCategory": self.category,
            "productStatus": self.status,
            "sellerId": self.seller_id,
        }

    def __str__(self):
        return f"{self.name} ({self.product_id})"
