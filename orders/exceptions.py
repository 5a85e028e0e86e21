# orders/exceptions.py
"""
Domain errors raised by the order lifecycle.

Each error carries the HTTP status the views translate it into; nothing in
the lifecycle itself deals with responses.
"""


class OrderFlowError(Exception):
    status_code = 500
    code = "order_error"
    default_message = "Order processing failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OrderFlowError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class ProductUnavailableError(ValidationError):
    code = "product_unavailable"
    default_message = "Product is not available"


class MixedSellerError(ValidationError):
    code = "mixed_seller"
    default_message = "All items must be from the same seller"


class InvalidSignatureError(OrderFlowError):
    status_code = 400
    code = "invalid_signature"
    default_message = "Invalid payment signature"


class NotAuthorizedError(OrderFlowError):
    status_code = 403
    code = "not_authorized"
    default_message = "Not authorized to modify this order"


class NotFoundError(OrderFlowError):
    status_code = 404
    code = "not_found"
    default_message = "Record not found"


class OrderNotFoundError(NotFoundError):
    code = "order_not_found"
    default_message = "Order not found"


class InvalidTransitionError(OrderFlowError):
    status_code = 409
    code = "invalid_transition"
    default_message = "Status transition not allowed"


class AlreadyTerminalError(InvalidTransitionError):
    code = "already_terminal"
    default_message = "Order is already delivered or cancelled"


class AlreadyShippedError(OrderFlowError):
    status_code = 409
    code = "already_shipped"
    default_message = "Order already has a shipment record"


class DuplicatePaymentError(OrderFlowError):
    status_code = 409
    code = "duplicate_payment"
    default_message = "Payment already recorded"


class NoLogisticRecordError(OrderFlowError):
    status_code = 409
    code = "no_logistic_record"
    default_message = "Shipped order has no logistic record"


class GatewayError(OrderFlowError):
    status_code = 502
    code = "gateway_error"
    default_message = "Payment gateway rejected the request"
    retryable = False


class GatewayUnavailableError(GatewayError):
    status_code = 503
    code = "gateway_unavailable"
    default_message = "Payment gateway unavailable, please retry"
    retryable = True
