from decimal import Decimal
from itertools import product as pairs
from unittest import mock

from django.db import IntegrityError
from django.test import TestCase

from catalog.models import Product
from orders.exceptions import (
    AlreadyShippedError,
    AlreadyTerminalError,
    DuplicatePaymentError,
    GatewayUnavailableError,
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
from orders.lifecycle import OrderLifecycleManager
from orders.models import Order, OrderItem, Payment, Logistic

from .helpers import FakeGateway, make_product, make_seller

ALLOWED = {
    (Order.PENDING, Order.CONFIRMED),
    (Order.PENDING, Order.CANCELLED),
    (Order.CONFIRMED, Order.SHIPPED),
    (Order.CONFIRMED, Order.CANCELLED),
    (Order.SHIPPED, Order.DELIVERED),
    (Order.SHIPPED, Order.CANCELLED),
}
STATUSES = [code for code, _ in Order.STATUS_CHOICES]
SHIPMENT = {"carrier": "DTDC", "tracking": "T1"}


class LifecycleTestCase(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        self.manager = OrderLifecycleManager(self.gateway)
        self.seller = make_seller("S1")
        self.other_seller = make_seller("S2")
        self.p1 = make_product("P1", 500, self.seller)
        self.p2 = make_product("P2", "199.99", self.seller)
        self.p3 = make_product("P3", 250, self.other_seller)
        self.sold_out = make_product("P4", 100, self.seller, status=Product.OUT_OF_STOCK)

    def make_order(self, order_id, status, method=Order.METHOD_COD, total="1000.00"):
        order = Order.objects.create(
            order_id=order_id,
            user_id="U1",
            seller=self.seller,
            total_price=Decimal(total),
            payment_method=method,
            status=status,
        )
        OrderItem.objects.create(order=order, product_id="P1", product_name="Product P1", price=Decimal("500"), quantity=2)
        return order


class DraftOrderTests(LifecycleTestCase):
    def test_single_line_item_scenario(self):
        order = self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 2}], "order_abc")

        self.assertEqual(order.order_id, "order_abc")
        self.assertEqual(order.total_price, Decimal("1000.00"))
        self.assertEqual(order.status, Order.PENDING)
        self.assertEqual(order.payment_method, Order.METHOD_RAZORPAY)
        self.assertEqual(order.seller_id, "S1")
        item = order.items.get()
        self.assertEqual((item.product_id, item.quantity, item.price), ("P1", 2, Decimal("500.00")))

    def test_total_is_sum_of_quantity_times_unit_price(self):
        cases = [
            [("P1", 1)],
            [("P1", 3), ("P2", 1)],
            [("P2", 7), ("P1", 2)],
            [("P2", 1), ("P2", 4)],
        ]
        for index, case in enumerate(cases):
            with self.subTest(case=case):
                line_items = [{"product_id": pid, "quantity": qty} for pid, qty in case]
                order = self.manager.create_draft_order("U1", None, line_items, f"order_{index}")
                expected = sum(Product.objects.get(product_id=pid).price * qty for pid, qty in case)
                self.assertEqual(order.total_price, expected)
                self.assertEqual(sum(item.line_total for item in order.items.all()), expected)

    def test_price_is_snapshotted(self):
        order = self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 1}], "order_snap")
        Product.objects.filter(product_id="P1").update(price=Decimal("999.00"))

        order.refresh_from_db()
        self.assertEqual(order.total_price, Decimal("500.00"))
        self.assertEqual(order.items.get().price, Decimal("500.00"))

    def test_invalid_line_items_write_nothing(self):
        bad_inputs = [
            [],
            None,
            [{"product_id": "P1", "quantity": 0}],
            [{"product_id": "P1", "quantity": -2}],
            [{"product_id": "P1", "quantity": "abc"}],
            [{"product_id": "P1", "quantity": True}],
            [{"product_id": "P1"}],
            [{"quantity": 1}],
            ["P1"],
        ]
        for line_items in bad_inputs:
            with self.subTest(line_items=line_items):
                with self.assertRaises(ValidationError):
                    self.manager.create_draft_order("U1", "S1", line_items, "order_bad")
        self.assertFalse(Order.objects.exists())

    def test_missing_user_or_intent_id(self):
        with self.assertRaises(ValidationError):
            self.manager.create_draft_order("", "S1", [{"product_id": "P1", "quantity": 1}], "order_x")
        with self.assertRaises(ValidationError):
            self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 1}], "")

    def test_unknown_product(self):
        with self.assertRaises(NotFoundError):
            self.manager.create_draft_order("U1", "S1", [{"product_id": "NOPE", "quantity": 1}], "order_x")

    def test_unavailable_product(self):
        with self.assertRaises(ProductUnavailableError):
            self.manager.create_draft_order("U1", "S1", [{"product_id": "P4", "quantity": 1}], "order_x")
        self.assertFalse(Order.objects.exists())

    def test_mixed_sellers_rejected(self):
        line_items = [{"product_id": "P1", "quantity": 1}, {"product_id": "P3", "quantity": 1}]
        with self.assertRaises(MixedSellerError):
            self.manager.create_draft_order("U1", None, line_items, "order_x")
        self.assertFalse(Order.objects.exists())

    def test_seller_must_match_products(self):
        with self.assertRaises(MixedSellerError):
            self.manager.create_draft_order("U1", "S2", [{"product_id": "P1", "quantity": 1}], "order_x")

    def test_duplicate_intent_id(self):
        self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 1}], "order_dup")
        with self.assertRaises(ValidationError):
            self.manager.create_draft_order("U1", "S1", [{"product_id": "P2", "quantity": 1}], "order_dup")
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(OrderItem.objects.count(), 1)

    def test_gateway_checkout_writes_order_after_intent(self):
        order, intent = self.manager.open_gateway_checkout("U1", [{"product_id": "P1", "quantity": 2}])

        self.assertEqual(order.order_id, intent["gateway_order_id"])
        self.assertEqual(intent["amount"], 100000)

    def test_gateway_unavailable_leaves_no_order(self):
        manager = OrderLifecycleManager(FakeGateway(unavailable=True))

        with self.assertRaises(GatewayUnavailableError):
            manager.open_gateway_checkout("U1", [{"product_id": "P1", "quantity": 1}])
        self.assertFalse(Order.objects.exists())

    def test_validation_happens_before_gateway_call(self):
        with self.assertRaises(ValidationError):
            self.manager.open_gateway_checkout("U1", [{"product_id": "P1", "quantity": 0}])
        self.assertEqual(self.gateway.intents, [])


class ConfirmPaymentTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.order = self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 2}], "order_abc")
        self.signature = self.gateway.sign("order_abc", "pay_xyz")

    def test_valid_signature_confirms_and_records_payment(self):
        order, payment = self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)

        self.assertEqual(order.status, Order.CONFIRMED)
        self.assertEqual(Order.objects.get(order_id="order_abc").status, Order.CONFIRMED)
        self.assertEqual(payment.transaction_id, "pay_xyz")
        self.assertEqual(payment.amount, Decimal("1000.00"))
        self.assertEqual(payment.status, Payment.COMPLETED)
        self.assertEqual(payment.method, Order.METHOD_RAZORPAY)
        self.assertEqual(payment.user_id, "U1")

    def test_tampered_signature_never_changes_state(self):
        tampered_inputs = [
            ("order_abc", "pay_xyz", self.signature[:-1] + ("0" if self.signature[-1] != "0" else "1")),
            ("order_abc", "pay_other", self.signature),
            ("order_abc", "pay_xyz", self.signature.upper()),
            ("order_abc", "pay_xyz", "deadbeef"),
        ]
        before = Order.objects.values_list("order_id", "status", "updated_at")
        before = list(before)
        for args in tampered_inputs:
            with self.subTest(args=args):
                with self.assertRaises(InvalidSignatureError):
                    self.manager.confirm_gateway_payment(*args)

        self.assertEqual(list(Order.objects.values_list("order_id", "status", "updated_at")), before)
        self.assertFalse(Payment.objects.exists())

    def test_replay_yields_exactly_one_payment(self):
        self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)

        with self.assertRaises(DuplicatePaymentError):
            self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)

        self.assertEqual(Payment.objects.filter(transaction_id="pay_xyz").count(), 1)
        self.assertEqual(Order.objects.get(order_id="order_abc").status, Order.CONFIRMED)

    def test_second_payment_for_confirmed_order_rejected(self):
        self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)

        with self.assertRaises(DuplicatePaymentError):
            self.manager.confirm_gateway_payment("order_abc", "pay_2", self.gateway.sign("order_abc", "pay_2"))
        self.assertEqual(Payment.objects.count(), 1)

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            self.manager.confirm_gateway_payment("order_missing", "pay_xyz", self.gateway.sign("order_missing", "pay_xyz"))
        self.assertFalse(Payment.objects.exists())

    def test_cancelled_order_cannot_be_confirmed(self):
        self.manager.record_gateway_failure("order_abc", "card declined")

        with self.assertRaises(InvalidTransitionError):
            self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)
        self.assertEqual(Order.objects.get(order_id="order_abc").status, Order.CANCELLED)
        self.assertFalse(Payment.objects.exists())

    def test_missing_fields(self):
        with self.assertRaises(ValidationError):
            self.manager.confirm_gateway_payment("order_abc", "", self.signature)
        with self.assertRaises(ValidationError):
            self.manager.confirm_gateway_payment("order_abc", "pay_xyz", None)

    def test_concurrent_payment_insert_rolls_back_confirmation(self):
        # Another request inserted the same payment between the check and the insert
        with mock.patch.object(Payment.objects, "create", side_effect=IntegrityError("duplicate key")):
            with self.assertRaises(DuplicatePaymentError):
                self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)

        self.assertEqual(Order.objects.get(order_id="order_abc").status, Order.PENDING)
        self.assertFalse(Payment.objects.exists())

        order, _ = self.manager.confirm_gateway_payment("order_abc", "pay_xyz", self.signature)
        self.assertEqual(order.status, Order.CONFIRMED)
        self.assertEqual(Payment.objects.count(), 1)


class GatewayFailureTests(LifecycleTestCase):
    def test_pending_order_is_cancelled_with_reason(self):
        self.manager.create_draft_order("U1", "S1", [{"product_id": "P1", "quantity": 1}], "order_f")

        order = self.manager.record_gateway_failure("order_f", "Card declined")

        self.assertEqual(order.status, Order.CANCELLED)
        stored = Order.objects.get(order_id="order_f")
        self.assertEqual(stored.status, Order.CANCELLED)
        self.assertEqual(stored.failure_reason, "Card declined")

    def test_default_reason(self):
        self.make_order("order_f", Order.PENDING, method=Order.METHOD_RAZORPAY)
        self.manager.record_gateway_failure("order_f")
        self.assertEqual(Order.objects.get(order_id="order_f").failure_reason, "Payment failed")

    def test_non_string_reason_is_stored_as_text(self):
        for order_id, reason, expected in (
            ("order_int", 502, "502"),
            ("order_dict", {"code": "BAD_REQUEST_ERROR"}, "{'code': 'BAD_REQUEST_ERROR'}"),
            ("order_long", "x" * 300, "x" * 255),
        ):
            with self.subTest(reason=reason):
                self.make_order(order_id, Order.PENDING, method=Order.METHOD_RAZORPAY)
                self.manager.record_gateway_failure(order_id, reason)

                stored = Order.objects.get(order_id=order_id)
                self.assertEqual(stored.status, Order.CANCELLED)
                self.assertEqual(stored.failure_reason, expected)

    def test_terminal_orders_rejected(self):
        for status in Order.TERMINAL_STATUSES:
            with self.subTest(status=status):
                self.make_order(f"order_{status}", status)
                with self.assertRaises(AlreadyTerminalError):
                    self.manager.record_gateway_failure(f"order_{status}", "late failure")
                self.assertEqual(Order.objects.get(order_id=f"order_{status}").status, status)

    def test_repeated_failure_is_rejected(self):
        self.make_order("order_f", Order.PENDING, method=Order.METHOD_RAZORPAY)
        self.manager.record_gateway_failure("order_f", "first")

        with self.assertRaises(AlreadyTerminalError):
            self.manager.record_gateway_failure("order_f", "second")
        self.assertEqual(Order.objects.get(order_id="order_f").failure_reason, "first")

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            self.manager.record_gateway_failure("order_missing", "x")

    def test_shipped_order_logistic_is_cancelled_too(self):
        order = self.make_order("order_s", Order.SHIPPED)
        Logistic.objects.create(order=order, logistic_name="DTDC", tracking_number="T1")

        self.manager.record_gateway_failure("order_s", "chargeback")

        self.assertEqual(Logistic.objects.get(order=order).logistic_status, Order.CANCELLED)


class CashOnDeliveryTests(LifecycleTestCase):
    def test_created_confirmed_without_payment(self):
        order = self.manager.place_cash_on_delivery_order("U1", "S1", [{"product_id": "P1", "quantity": 2}])

        self.assertEqual(order.status, Order.CONFIRMED)
        self.assertEqual(order.payment_method, Order.METHOD_COD)
        self.assertEqual(order.total_price, Decimal("1000.00"))
        self.assertTrue(order.order_id.startswith("COD-"))
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.gateway.intents, [])

    def test_order_ids_are_unique(self):
        first = self.manager.place_cash_on_delivery_order("U1", "S1", [{"product_id": "P1", "quantity": 1}])
        second = self.manager.place_cash_on_delivery_order("U1", "S1", [{"product_id": "P1", "quantity": 1}])
        self.assertNotEqual(first.order_id, second.order_id)

    def test_requires_seller(self):
        with self.assertRaises(ValidationError):
            self.manager.place_cash_on_delivery_order("U1", "", [{"product_id": "P1", "quantity": 1}])

    def test_same_validation_as_drafts(self):
        with self.assertRaises(MixedSellerError):
            self.manager.place_cash_on_delivery_order("U1", "S2", [{"product_id": "P1", "quantity": 1}])
        with self.assertRaises(ProductUnavailableError):
            self.manager.place_cash_on_delivery_order("U1", "S1", [{"product_id": "P4", "quantity": 1}])
        self.assertFalse(Order.objects.exists())

    def test_cod_orders_are_not_unreconciled(self):
        self.manager.place_cash_on_delivery_order("U1", "S1", [{"product_id": "P1", "quantity": 1}])
        self.assertFalse(OrderLifecycleManager.find_unreconciled_orders().exists())


class FulfillmentTests(LifecycleTestCase):
    def test_ship_creates_one_logistic_and_second_ship_fails(self):
        self.make_order("order_c", Order.CONFIRMED)

        order = self.manager.advance_fulfillment("order_c", "S1", Order.SHIPPED, SHIPMENT)

        self.assertEqual(order.status, Order.SHIPPED)
        logistic = Logistic.objects.get(order_id="order_c")
        self.assertEqual((logistic.logistic_name, logistic.tracking_number), ("DTDC", "T1"))
        self.assertEqual(logistic.logistic_status, Order.SHIPPED)

        with self.assertRaises(AlreadyShippedError):
            self.manager.advance_fulfillment("order_c", "S1", Order.SHIPPED, {"carrier": "DELHIVERY", "tracking": "T2"})
        self.assertEqual(Logistic.objects.filter(order_id="order_c").count(), 1)

    def test_only_table_transitions_are_accepted(self):
        for from_status, to_status in pairs(STATUSES, STATUSES):
            with self.subTest(from_status=from_status, to_status=to_status):
                order = self.make_order(f"ord-{from_status}-{to_status}", from_status)
                if (from_status, to_status) in ALLOWED:
                    if from_status == Order.SHIPPED:
                        Logistic.objects.create(order=order, logistic_name="DTDC", tracking_number="T0")
                    self.manager.advance_fulfillment(order.order_id, "S1", to_status, SHIPMENT)
                    self.assertEqual(Order.objects.get(pk=order.pk).status, to_status)
                else:
                    with self.assertRaises(InvalidTransitionError):
                        self.manager.advance_fulfillment(order.order_id, "S1", to_status, SHIPMENT)
                    self.assertEqual(Order.objects.get(pk=order.pk).status, from_status)

    def test_pending_to_delivered_rejected(self):
        self.make_order("order_p", Order.PENDING)
        with self.assertRaises(InvalidTransitionError):
            self.manager.advance_fulfillment("order_p", "S1", Order.DELIVERED)

    def test_other_seller_not_authorized(self):
        self.make_order("order_c", Order.CONFIRMED)

        with self.assertRaises(NotAuthorizedError):
            self.manager.advance_fulfillment("order_c", "S2", Order.SHIPPED, SHIPMENT)
        self.assertEqual(Order.objects.get(order_id="order_c").status, Order.CONFIRMED)
        self.assertFalse(Logistic.objects.exists())

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFoundError):
            self.manager.advance_fulfillment("order_missing", "S1", Order.SHIPPED, SHIPMENT)

    def test_unknown_status_and_missing_fields(self):
        self.make_order("order_c", Order.CONFIRMED)
        with self.assertRaises(ValidationError):
            self.manager.advance_fulfillment("order_c", "S1", "Lost")
        with self.assertRaises(ValidationError):
            self.manager.advance_fulfillment("order_c", "", Order.SHIPPED, SHIPMENT)

    def test_unpaid_gateway_order_cannot_be_confirmed_by_seller(self):
        self.make_order("order_p", Order.PENDING, method=Order.METHOD_RAZORPAY)

        with self.assertRaises(InvalidTransitionError):
            self.manager.advance_fulfillment("order_p", "S1", Order.CONFIRMED)
        self.assertEqual(Order.objects.get(order_id="order_p").status, Order.PENDING)

    def test_shipping_requires_known_carrier_and_tracking(self):
        self.make_order("order_c", Order.CONFIRMED)
        for info in (None, {"carrier": "FEDEX", "tracking": "T1"}, {"carrier": "DTDC", "tracking": "  "}):
            with self.subTest(info=info):
                with self.assertRaises(ValidationError):
                    self.manager.advance_fulfillment("order_c", "S1", Order.SHIPPED, info)
        self.assertEqual(Order.objects.get(order_id="order_c").status, Order.CONFIRMED)
        self.assertFalse(Logistic.objects.exists())

    def test_delivered_and_cancelled_sync_logistic(self):
        for final_status in (Order.DELIVERED, Order.CANCELLED):
            with self.subTest(final_status=final_status):
                order_id = f"order_{final_status}"
                self.make_order(order_id, Order.CONFIRMED)
                self.manager.advance_fulfillment(order_id, "S1", Order.SHIPPED, {"carrier": "BLUE-DART", "tracking": "BD9"})
                self.manager.advance_fulfillment(order_id, "S1", final_status)

                self.assertEqual(Order.objects.get(order_id=order_id).status, final_status)
                self.assertEqual(Logistic.objects.get(order_id=order_id).logistic_status, final_status)

    def test_cancel_before_shipping_creates_no_logistic(self):
        self.make_order("order_c", Order.CONFIRMED)
        self.manager.advance_fulfillment("order_c", "S1", Order.CANCELLED)

        self.assertEqual(Order.objects.get(order_id="order_c").status, Order.CANCELLED)
        self.assertFalse(Logistic.objects.exists())

    def test_shipped_order_without_logistic_raises(self):
        self.make_order("order_s", Order.SHIPPED)

        with self.assertRaises(NoLogisticRecordError):
            self.manager.advance_fulfillment("order_s", "S1", Order.DELIVERED)
        self.assertEqual(Order.objects.get(order_id="order_s").status, Order.SHIPPED)

    def test_concurrent_shipment_rolls_back_status(self):
        self.make_order("order_c", Order.CONFIRMED)

        with mock.patch.object(Logistic.objects, "create", side_effect=IntegrityError("duplicate key")):
            with self.assertRaises(AlreadyShippedError):
                self.manager.advance_fulfillment("order_c", "S1", Order.SHIPPED, SHIPMENT)

        self.assertEqual(Order.objects.get(order_id="order_c").status, Order.CONFIRMED)

    def test_other_integrity_errors_are_not_reported_as_shipped(self):
        order = self.make_order("order_s", Order.SHIPPED)
        Logistic.objects.create(order=order, logistic_name="DTDC", tracking_number="T1")

        with mock.patch.object(OrderLifecycleManager, "_sync_logistic", side_effect=IntegrityError("constraint")):
            with self.assertRaises(IntegrityError):
                self.manager.advance_fulfillment("order_s", "S1", Order.DELIVERED)

        self.assertEqual(Order.objects.get(order_id="order_s").status, Order.SHIPPED)

    def test_stale_status_is_rejected(self):
        order = self.make_order("order_c", Order.CONFIRMED)
        # Another request cancels the order after we read it
        Order.objects.filter(pk=order.pk).update(status=Order.CANCELLED)

        with self.assertRaises(InvalidTransitionError):
            self.manager._apply_transition(order, Order.SHIPPED)
        self.assertEqual(Order.objects.get(pk=order.pk).status, Order.CANCELLED)


class ReadTests(LifecycleTestCase):
    def test_get_logistic(self):
        order = self.make_order("order_s", Order.SHIPPED)
        Logistic.objects.create(order=order, logistic_name="DTDC", tracking_number="T1")

        self.assertEqual(OrderLifecycleManager.get_logistic("order_s").tracking_number, "T1")
        with self.assertRaises(NotFoundError):
            OrderLifecycleManager.get_logistic("order_missing")

    def test_find_unreconciled_orders(self):
        self.make_order("order_anomaly", Order.CONFIRMED, method=Order.METHOD_RAZORPAY)
        self.make_order("order_pending", Order.PENDING, method=Order.METHOD_RAZORPAY)
        paid = self.make_order("order_paid", Order.CONFIRMED, method=Order.METHOD_RAZORPAY)
        Payment.objects.create(order=paid, user_id="U1", amount=paid.total_price, transaction_id="pay_1")
        self.make_order("order_cod", Order.CONFIRMED, method=Order.METHOD_COD)

        found = list(OrderLifecycleManager.find_unreconciled_orders().values_list("order_id", flat=True))
        self.assertEqual(found, ["order_anomaly"])
