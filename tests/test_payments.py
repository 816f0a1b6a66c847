import asyncio
import json

import httpx
import pytest

from errors import PaymentGatewayError, PaymentVerificationError
from payments import (PaymentRequest, RazorpayPaymentCollector, SimulatedPaymentCollector, compute_signature,
                      to_minor_units, verify_payment_signature)

SECRET = "rzp_secret"


def payment_request(**overrides):
    data = {
        "order_number": "ORD-LX2K9A-7QZP",
        "amount": 2520000,
        "customer_name": "Priya Sharma",
        "customer_email": "priya@djewel.in",
        "customer_phone": "9876543210",
    }
    data.update(overrides)
    return PaymentRequest(**data)


def razorpay(handler):
    return RazorpayPaymentCollector("rzp_key", SECRET, timeout=5, transport=httpx.MockTransport(handler))


def test_minor_units():
    assert to_minor_units(25200) == 2520000
    assert to_minor_units(199.99) == 19999


def test_signature_verification():
    signature = compute_signature("order_abc", "pay_123", SECRET)
    assert verify_payment_signature("order_abc", "pay_123", signature, SECRET)
    assert not verify_payment_signature("order_abc", "pay_124", signature, SECRET)
    assert not verify_payment_signature("order_abc", "pay_123", signature, "")
    assert verify_payment_signature("", "dev_pay_1", "", "", allow_dev=True)
    assert not verify_payment_signature("", "dev_pay_1", "", "")


def test_simulated_collector():
    approved = asyncio.run(SimulatedPaymentCollector().collect(payment_request()))
    assert approved.success and approved.payment_id.startswith("dev_pay_")

    declined = asyncio.run(SimulatedPaymentCollector(approve=False).collect(payment_request()))
    assert not declined.success
    assert declined.error == "Payment cancelled by user (dev mode)"


def test_razorpay_creates_gateway_order_and_waits_for_widget():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": "order_rzp_1"})

    collector = razorpay(handler)

    async def scenario():
        task = asyncio.create_task(collector.collect(payment_request()))
        while collector.widget_options("ORD-LX2K9A-7QZP") is None:
            await asyncio.sleep(0.01)
        options = collector.widget_options("ORD-LX2K9A-7QZP")
        signature = compute_signature("order_rzp_1", "pay_123", SECRET)
        assert collector.complete("ORD-LX2K9A-7QZP", "pay_123", "order_rzp_1", signature)
        return options, await task

    options, result = asyncio.run(scenario())
    assert seen["path"] == "/v1/orders"
    assert seen["body"]["amount"] == 2520000
    assert seen["body"]["receipt"] == "ORD-LX2K9A-7QZP"
    assert seen["auth"].startswith("Basic ")
    assert options["order_id"] == "order_rzp_1"
    assert options["prefill"]["email"] == "priya@djewel.in"
    assert result.success
    assert result.payment_id == "pay_123"
    assert result.method == "razorpay"
    assert collector.widget_options("ORD-LX2K9A-7QZP") is None


def test_razorpay_rejects_bad_signature_and_keeps_waiting():
    collector = razorpay(lambda request: httpx.Response(200, json={"id": "order_rzp_1"}))

    async def scenario():
        task = asyncio.create_task(collector.collect(payment_request()))
        while collector.widget_options("ORD-LX2K9A-7QZP") is None:
            await asyncio.sleep(0.01)
        with pytest.raises(PaymentVerificationError):
            collector.complete("ORD-LX2K9A-7QZP", "pay_123", "order_rzp_1", "forged")
        assert not task.done()
        signature = compute_signature("order_rzp_1", "pay_123", SECRET)
        assert collector.complete("ORD-LX2K9A-7QZP", "pay_123", "order_rzp_1", signature)
        return await task

    result = asyncio.run(scenario())
    assert result.success
    assert result.payment_id == "pay_123"


def test_razorpay_only_the_owning_shopper_can_resolve():
    collector = razorpay(lambda request: httpx.Response(200, json={"id": "order_rzp_1"}))
    owner, stranger = "a" * 32, "b" * 32

    async def scenario():
        task = asyncio.create_task(collector.collect(payment_request(shopper_id=owner)))
        while collector.pending_for(owner) is None:
            await asyncio.sleep(0.01)
        assert collector.pending_for(stranger) is None
        assert collector.widget_options("ORD-LX2K9A-7QZP", stranger) is None
        assert not collector.fail("ORD-LX2K9A-7QZP", shopper_id=stranger)
        signature = compute_signature("order_rzp_1", "pay_123", SECRET)
        assert not collector.complete("ORD-LX2K9A-7QZP", "pay_123", "order_rzp_1", signature, stranger)
        pending = collector.pending_for(owner)
        assert collector.fail("ORD-LX2K9A-7QZP", shopper_id=owner)
        return pending, await task

    pending, result = asyncio.run(scenario())
    assert pending["order_number"] == "ORD-LX2K9A-7QZP"
    assert pending["options"]["order_id"] == "order_rzp_1"
    assert not result.success
    assert result.error == "Payment cancelled by user"


def test_razorpay_user_cancellation():
    collector = razorpay(lambda request: httpx.Response(200, json={"id": "order_rzp_1"}))

    async def scenario():
        task = asyncio.create_task(collector.collect(payment_request()))
        while collector.widget_options("ORD-LX2K9A-7QZP") is None:
            await asyncio.sleep(0.01)
        assert collector.fail("ORD-LX2K9A-7QZP")
        return await task

    result = asyncio.run(scenario())
    assert not result.success
    assert result.error == "Payment cancelled by user"
    assert not collector.fail("ORD-LX2K9A-7QZP")


def test_razorpay_timeout():
    collector = RazorpayPaymentCollector("rzp_key", SECRET, timeout=0.05, transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={"id": "order_rzp_1"})))
    result = asyncio.run(collector.collect(payment_request()))
    assert not result.success
    assert result.error == "Payment timed out"


def test_razorpay_gateway_error():
    collector = razorpay(lambda request: httpx.Response(
        400, json={"error": {"description": "The amount must be atleast INR 1.00"}}))
    with pytest.raises(PaymentGatewayError, match="atleast INR 1.00"):
        asyncio.run(collector.collect(payment_request(amount=10)))


def test_razorpay_requires_keys():
    collector = RazorpayPaymentCollector("", "")
    with pytest.raises(PaymentGatewayError, match="not configured"):
        asyncio.run(collector.collect(payment_request()))
