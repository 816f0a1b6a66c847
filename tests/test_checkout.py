import asyncio

import pytest

from checkout import CheckoutAttempt, CheckoutOrchestrator, prefill_form
from emails import EmailNotificationService
from errors import InvalidTransitionError, PaymentGatewayError
from orders import OrderService
from payments import PaymentCollector, PaymentResult
from schemas import ShippingAddress, UserProfile
from stores import CartStore, MemoryStateStorage

from conftest import FixedPaymentCollector, RecordingEmailSender


class RaisingPaymentCollector(PaymentCollector):
    def __init__(self, error: Exception):
        self.error = error

    async def collect(self, request):
        raise self.error


@pytest.fixture
def cart(make_product):
    cart = CartStore(MemoryStateStorage())
    cart.add_item(make_product(price=10000, mrp=12000, making_charges_saved=2000), 2)
    cart.add_item(make_product(name="Silver Anklet", category="anklet", metal_type="silver",
                               metal_purity="925_silver", price=5000, mrp=5000, making_charges_saved=0), 1)
    return cart


def build(db, cart, payments, sender=None):
    sender = sender or RecordingEmailSender()
    orchestrator = CheckoutOrchestrator(cart, OrderService(db), payments, EmailNotificationService(sender),
                                        shipping_cost=200)
    return orchestrator, sender


def test_happy_path_confirms_order_and_clears_cart(db, cart, checkout_form):
    payments = FixedPaymentCollector(PaymentResult(success=True, payment_id="pay_123", method="card"))
    orchestrator, sender = build(db, cart, payments)

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert result.success
    assert result.stage == "completed"
    assert result.redirect_to == f"/order-confirmation/{result.order_number}"
    assert result.notification.title == "Payment successful!"
    assert cart.is_empty()

    order = OrderService(db).get_order_by_number(result.order_number)
    assert order.payment_status == "paid"
    assert order.order_status == "confirmed"
    assert order.payment_id == "pay_123"
    assert order.payment_method == "card"
    assert order.subtotal == 25000
    assert order.total_savings == 4000
    assert order.shipping_cost == 200
    assert order.total_amount == 25200
    assert [(i.name, i.quantity, i.price) for i in order.items] == [
        ("Gold Band Ring", 2, 10000), ("Silver Anklet", 1, 5000)]

    assert payments.requests[0].amount == 2520000
    assert payments.requests[0].order_number == result.order_number
    assert sender.sent[0]["to"] == ["priya@djewel.in"]
    assert result.order_number in sender.sent[0]["subject"]
    assert result.email_sent


def test_cancelled_payment_keeps_cart(db, cart, checkout_form):
    payments = FixedPaymentCollector(PaymentResult(success=False, error="Payment cancelled by user"))
    orchestrator, sender = build(db, cart, payments)

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert not result.success
    assert result.stage == "payment_failed"
    assert result.notification.title == "Payment cancelled"
    assert result.failure == "payment_failed"
    assert result.notification.description == "Payment cancelled by user"
    assert len(cart.items) == 2
    assert cart.item_count == 3
    assert sender.sent == []

    order = OrderService(db).get_order_by_number(result.order_number)
    assert order.order_status == "payment_failed"
    assert order.payment_status == "failed"


def test_email_failure_does_not_fail_checkout(db, cart, checkout_form):
    payments = FixedPaymentCollector(PaymentResult(success=True, payment_id="pay_123", method="upi"))
    orchestrator, _ = build(db, cart, payments, RecordingEmailSender(fail=True))

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert result.success
    assert not result.email_sent
    assert cart.is_empty()
    order = OrderService(db).get_order_by_number(result.order_number)
    assert (order.payment_status, order.order_status) == ("paid", "confirmed")


def test_invalid_form_stops_before_any_call(db, cart, checkout_form):
    checkout_form["shipping_address"]["pincode"] = "5600"
    checkout_form["customer_phone"] = "12345"
    payments = FixedPaymentCollector(PaymentResult(success=True, payment_id="pay_123"))
    orchestrator, _ = build(db, cart, payments)

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert not result.success
    assert result.errors["shipping_address.pincode"] == "Please enter a valid 6-digit pincode"
    assert result.errors["customer_phone"] == "Please enter a valid phone number (10-14 digits)"
    assert result.notification.title == "Please fix the errors"
    assert result.failure == "invalid_form"
    assert db["order"].count_documents({}) == 0
    assert payments.requests == []
    assert cart.item_count == 3


def test_empty_cart_redirects_to_cart(db, checkout_form):
    payments = FixedPaymentCollector(PaymentResult(success=True, payment_id="pay_123"))
    orchestrator, _ = build(db, CartStore(MemoryStateStorage()), payments)

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert not result.success
    assert result.redirect_to == "/cart"
    assert result.failure == "empty_cart"
    assert db["order"].count_documents({}) == 0


def test_gateway_error_is_a_payment_failure(db, cart, checkout_form):
    orchestrator, _ = build(db, cart, RaisingPaymentCollector(PaymentGatewayError("Razorpay key not configured")))

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert result.stage == "payment_failed"
    assert result.notification.description == "Razorpay key not configured"
    assert OrderService(db).get_order_by_number(result.order_number).order_status == "payment_failed"


def test_unexpected_error_reports_orphaned_order(db, cart, checkout_form):
    orchestrator, sender = build(db, cart, RaisingPaymentCollector(RuntimeError("connection reset")))

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert not result.success
    assert result.orphaned
    assert result.stage == "order_created"
    assert result.failure == "orphaned"
    assert result.notification.title == "Order failed"
    order = OrderService(db).get_order_by_number(result.order_number)
    assert (order.payment_status, order.order_status) == ("pending", "placed")
    assert cart.item_count == 3
    assert sender.sent == []


def test_second_submission_is_rejected_while_first_runs(db, cart, checkout_form):
    class GatedCollector(PaymentCollector):
        def __init__(self):
            self.gate = asyncio.Event()
            self.calls = 0

        async def collect(self, request):
            self.calls += 1
            await self.gate.wait()
            return PaymentResult(success=True, payment_id="pay_1")

    async def scenario():
        payments = GatedCollector()
        orchestrator, _ = build(db, cart, payments)
        first = asyncio.create_task(orchestrator.place_order(checkout_form))
        while payments.calls == 0:
            await asyncio.sleep(0.01)
        second = await orchestrator.place_order(checkout_form)
        payments.gate.set()
        return await first, second, payments.calls

    first, second, calls = asyncio.run(scenario())
    assert first.success
    assert not second.success
    assert second.notification.title == "Checkout in progress"
    assert second.failure == "in_progress"
    assert calls == 1
    assert db["order"].count_documents({}) == 1


def test_attempt_rejects_skipped_stages():
    attempt = CheckoutAttempt()
    with pytest.raises(InvalidTransitionError):
        attempt.advance("paid")
    attempt.advance("validated")
    attempt.advance("order_created")
    assert attempt.is_orphaned
    attempt.advance("paid")
    attempt.advance("completed")
    assert attempt.history == ["idle", "validated", "order_created", "paid", "completed"]


def test_prefill_uses_profile_and_first_saved_address():
    address = ShippingAddress(line1="7 Park Street", city="Kolkata", state="West Bengal", pincode="700016")
    profile = UserProfile(email="asha@djewel.in", name="Asha", phone="9123456780", saved_addresses=[address])

    form = prefill_form("asha@djewel.in", profile)
    assert form["customer_name"] == "Asha"
    assert form["customer_phone"] == "9123456780"
    assert form["shipping_address"]["city"] == "Kolkata"

    blank = prefill_form("new@djewel.in", UserProfile(email="new@djewel.in", name="New User"))
    assert blank["customer_name"] == ""
    assert blank["shipping_address"]["country"] == "India"


def test_order_creation_failure_fails_attempt(db, cart, checkout_form):
    from pymongo.errors import ServerSelectionTimeoutError

    class DownOrders(OrderService):
        def create_order(self, *args, **kwargs):
            raise ServerSelectionTimeoutError("No servers available")

    payments = FixedPaymentCollector(PaymentResult(success=True, payment_id="pay_123"))
    orchestrator = CheckoutOrchestrator(cart, DownOrders(db), payments,
                                        EmailNotificationService(RecordingEmailSender()))

    result = asyncio.run(orchestrator.place_order(checkout_form))

    assert result.stage == "failed"
    assert not result.orphaned
    assert result.failure == "order_error"
    assert result.order_number is None
    assert result.notification.title == "Order failed"
    assert payments.requests == []
    assert cart.item_count == 3
