import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET

from .models import Seller, Product

logger = logging.getLogger(__name__)


@require_GET
def get_seller(request, seller_id):
    """Resolve a seller's public profile"""
    try:
        seller = Seller.objects.get(seller_id=seller_id)
    except Seller.DoesNotExist:
        return JsonResponse({"success": False, "error": "Seller not found"}, status=404)

    return JsonResponse({"success": True, "seller": seller.to_dict()})


@require_GET
def get_product(request, product_id):
    """Resolve current price and availability of a product"""
    try:
        product = Product.objects.get(product_id=product_id)
    except Product.DoesNotExist:
        logger.info(f"Product lookup miss: {product_id}")
        return JsonResponse({"success": False, "error": "Product not found"}, status=404)

    return JsonResponse({"success": True, "product": product.to_dict()})
