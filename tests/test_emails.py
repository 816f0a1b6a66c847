import asyncio
import json

import httpx
import pytest

from emails import (EmailNotificationService, ResendEmailSender, format_inr, render_order_confirmation,
                    render_order_status_update)
from errors import EmailDeliveryError
from schemas import Order, OrderItem, ShippingAddress


@pytest.fixture
def order():
    return Order(
        order_number="ORD-LX2K9A-7QZP",
        customer_name="Priya <Sharma>",
        customer_email="priya@djewel.in",
        customer_phone="9876543210",
        shipping_address=ShippingAddress(line1="12 MG Road", city="Bengaluru", state="Karnataka",
                                         pincode="560038"),
        items=[OrderItem(product_id="p1", name="Gold Band Ring", price=10000, quantity=2)],
        subtotal=20000,
        total_savings=4000,
        shipping_cost=200,
        total_amount=20200,
        order_status="shipped",
        tracking_number="BD123456789IN",
        shipping_provider="BlueDart",
    )


def test_format_inr():
    assert format_inr(25200) == "₹25,200"
    assert format_inr(1234567) == "₹12,34,567"
    assert format_inr(999) == "₹999"
    assert format_inr(1500.5) == "₹1,500.50"


def test_confirmation_escapes_customer_input(order):
    html = render_order_confirmation(order)
    assert "Priya &lt;Sharma&gt;" in html
    assert "<Sharma>" not in html
    assert "₹20,200" in html
    assert "You saved ₹4,000" in html


def test_status_update_includes_tracking(order):
    html = render_order_status_update(order, "Your order has shipped.")
    assert "BD123456789IN" in html
    assert "BlueDart" in html
    assert "📦" in html


def test_resend_sender_posts_message(order):
    captured = {}

    def handler(request):
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_1"})

    sender = ResendEmailSender("re_key", "orders@djewel.in", transport=httpx.MockTransport(handler))
    asyncio.run(EmailNotificationService(sender).send_order_confirmation(order))

    assert captured["auth"] == "Bearer re_key"
    assert captured["body"]["to"] == ["priya@djewel.in"]
    assert captured["body"]["subject"] == "Order Confirmation - ORD-LX2K9A-7QZP"


def test_resend_sender_raises_on_error(order):
    sender = ResendEmailSender("re_key", "orders@djewel.in",
                               transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    with pytest.raises(EmailDeliveryError):
        asyncio.run(EmailNotificationService(sender).send_order_status_update(order, "Shipped"))


def test_resend_sender_without_key_skips():
    def handler(request):
        raise AssertionError("no request expected")

    sender = ResendEmailSender("", "orders@djewel.in", transport=httpx.MockTransport(handler))
    asyncio.run(sender.send(["priya@djewel.in"], "Hello", "<p>hi</p>"))
