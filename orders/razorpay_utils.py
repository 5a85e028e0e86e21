# orders/razorpay_utils.py
import hmac
import hashlib
import logging
import time
import uuid
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
import requests

from .exceptions import GatewayError, GatewayUnavailableError, ValidationError

logger = logging.getLogger(__name__)


def compute_signature(gateway_order_id, gateway_payment_id, secret):
    """HMAC-SHA256 hex digest over "<order_id>|<payment_id>" """
    body = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(str(secret).encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_signature(gateway_order_id, gateway_payment_id, signature, secret):
    """Verify the checkout signature sent back by Razorpay. No I/O."""
    if not signature or not secret:
        return False
    expected = compute_signature(gateway_order_id, gateway_payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), str(signature).encode("utf-8"))


def to_minor_units(amount):
    """Rupees -> paise"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayClient:
    """Razorpay Orders API client with retry on transient failures"""

    def __init__(self, key_id=None, key_secret=None, base_url=None, timeout=None,
                 max_attempts=None, backoff=None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.base_url = (base_url or settings.RAZORPAY_BASE_URL).strip().rstrip("/")
        self.timeout = timeout if timeout is not None else settings.RAZORPAY_TIMEOUT
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.RAZORPAY_MAX_ATTEMPTS)
        self.backoff = backoff if backoff is not None else settings.RAZORPAY_RETRY_BACKOFF

    def create_intent(self, amount_minor_units, currency=None):
        """
        Create a Razorpay order for the given amount in paise.
        Returns {"gateway_order_id", "amount", "currency"}.
        Retries timeouts, connection errors and 5xx responses; nothing has
        been written locally at this point so a retry is always safe.
        """
        if isinstance(amount_minor_units, bool) or not isinstance(amount_minor_units, int) or amount_minor_units <= 0:
            raise ValidationError("Amount must be a positive integer in minor units")

        currency = currency or settings.RAZORPAY_CURRENCY
        url = f"{self.base_url}/orders"
        payload = {
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": f"receipt_{uuid.uuid4().hex[:16]}",
            "payment_capture": 1,
        }

        last_error = None
        for attempt in range(self.max_attempts):
            try:
                response = requests.post(
                    url,
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                    timeout=self.timeout,
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = str(e)
                logger.warning(f"Razorpay order creation attempt {attempt + 1} failed: {last_error}")
            else:
                if response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(f"Razorpay order creation attempt {attempt + 1} failed: {last_error}")
                elif response.status_code >= 400:
                    logger.error(f"Razorpay rejected order creation: {response.status_code} {response.text}")
                    raise GatewayError(f"Payment gateway rejected the request ({response.status_code})")
                else:
                    try:
                        data = response.json()
                    except ValueError:
                        logger.error(f"Razorpay returned a non-JSON body: {response.text[:200]}")
                        raise GatewayError("Payment gateway returned an invalid response")
                    if not isinstance(data, dict) or not data.get("id"):
                        logger.error(f"Razorpay order response without id: {data}")
                        raise GatewayError("Payment gateway returned no order id")
                    logger.info(f"Razorpay order created: {data['id']}")
                    return {
                        "gateway_order_id": data["id"],
                        "amount": data.get("amount", amount_minor_units),
                        "currency": data.get("currency", currency),
                    }

            if attempt < self.max_attempts - 1:
                time.sleep(self.backoff * (2 ** attempt))

        logger.error(f"Razorpay unavailable after {self.max_attempts} attempts: {last_error}")
        raise GatewayUnavailableError()

    def verify_signature(self, gateway_order_id, gateway_payment_id, signature):
        return verify_signature(gateway_order_id, gateway_payment_id, signature, self.key_secret)


def get_gateway():
    """Gateway built from settings; views hand it to the lifecycle manager"""
    return RazorpayClient()
