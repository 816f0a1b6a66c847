"""
Payment collection.

A collector takes an amount (in paise) and the order number as reference and
resolves with a ``PaymentResult``: success with a payment id, or failure /
cancellation with a reason.

``SimulatedPaymentCollector`` is used in development. ``RazorpayPaymentCollector``
creates a gateway order, publishes the options the hosted widget needs, and
waits for the widget outcome to be posted back through ``complete`` or
``fail``.
"""
import asyncio
import hashlib
import hmac
import time
from typing import Dict, Optional

import httpx
import structlog
from pydantic import BaseModel

from errors import PaymentGatewayError, PaymentVerificationError

logger = structlog.get_logger(__name__)

STORE_NAME = "DJewel Boutique"
RAZORPAY_API = "https://api.razorpay.com/v1"


class PaymentRequest(BaseModel):
    order_number: str
    shopper_id: Optional[str] = None
    amount: int
    currency: str = "INR"
    customer_name: str
    customer_email: str
    customer_phone: str
    description: str = "Jewellery Purchase"


class PaymentResult(BaseModel):
    success: bool
    payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    signature: Optional[str] = None
    method: Optional[str] = None
    error: Optional[str] = None


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def compute_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    body = f"{gateway_order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_payment_signature(gateway_order_id: str, payment_id: str, signature: str, secret: str,
                             allow_dev: bool = False) -> bool:
    if allow_dev and payment_id.startswith("dev_"):
        return True
    if not (gateway_order_id and payment_id and signature and secret):
        return False
    return hmac.compare_digest(compute_signature(gateway_order_id, payment_id, secret), signature)


class PaymentCollector:
    async def collect(self, request: PaymentRequest) -> PaymentResult:
        raise NotImplementedError


class SimulatedPaymentCollector(PaymentCollector):
    def __init__(self, approve: bool = True, delay: float = 0.0,
                 reason: str = "Payment cancelled by user (dev mode)"):
        self.approve = approve
        self.delay = delay
        self.reason = reason

    async def collect(self, request):
        logger.info("simulated_payment", order_number=request.order_number, amount=request.amount,
                    approve=self.approve)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.approve:
            return PaymentResult(success=False, error=self.reason)
        stamp = int(time.time() * 1000)
        return PaymentResult(
            success=True,
            payment_id=f"dev_pay_{stamp}",
            gateway_order_id=f"dev_order_{stamp}",
            signature=f"dev_sig_{stamp}",
            method="simulated",
        )


class PendingPayment:
    def __init__(self, gateway_order_id: str, options: dict, future: asyncio.Future,
                 shopper_id: Optional[str] = None):
        self.gateway_order_id = gateway_order_id
        self.shopper_id = shopper_id
        self.options = options
        self.future = future


class RazorpayPaymentCollector(PaymentCollector):
    def __init__(self, key_id: str, key_secret: str, timeout: float = 900,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout
        self.transport = transport
        self._pending: Dict[str, PendingPayment] = {}

    async def create_gateway_order(self, amount: int, receipt: str, currency: str = "INR") -> str:
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": {"order_id": receipt}}
        try:
            async with httpx.AsyncClient(base_url=RAZORPAY_API, transport=self.transport,
                                         auth=(self.key_id, self.key_secret)) as client:
                resp = await client.post("/orders", json=payload)
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Failed to create payment order: {e}") from e
        if not resp.is_success:
            try:
                description = resp.json().get("error", {}).get("description")
            except ValueError:
                description = None
            raise PaymentGatewayError(description or "Failed to create payment order")
        return resp.json()["id"]

    async def collect(self, request):
        if not self.key_id or not self.key_secret:
            raise PaymentGatewayError("Razorpay key not configured")
        gateway_order_id = await self.create_gateway_order(request.amount, request.order_number, request.currency)
        options = {
            "key": self.key_id,
            "amount": request.amount,
            "currency": request.currency,
            "name": STORE_NAME,
            "description": request.description,
            "order_id": gateway_order_id,
            "prefill": {
                "name": request.customer_name,
                "email": request.customer_email,
                "contact": request.customer_phone,
            },
            "theme": {"color": "#D4A84B"},
        }
        future = asyncio.get_running_loop().create_future()
        self._pending[request.order_number] = PendingPayment(gateway_order_id, options, future,
                                                              request.shopper_id)
        logger.info("payment_awaiting_widget", order_number=request.order_number,
                    gateway_order_id=gateway_order_id)
        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            return PaymentResult(success=False, gateway_order_id=gateway_order_id, error="Payment timed out")
        finally:
            self._pending.pop(request.order_number, None)

    def _find(self, order_number: str, shopper_id: Optional[str]) -> Optional[PendingPayment]:
        pending = self._pending.get(order_number)
        if pending is None or pending.future.done() or pending.shopper_id != shopper_id:
            return None
        return pending

    def widget_options(self, order_number: str, shopper_id: Optional[str] = None) -> Optional[dict]:
        pending = self._find(order_number, shopper_id)
        return dict(pending.options) if pending else None

    def pending_for(self, shopper_id: str) -> Optional[dict]:
        """The payment a shopper's checkout is currently waiting on, if any."""
        for order_number, pending in self._pending.items():
            if pending.shopper_id == shopper_id and not pending.future.done():
                return {"order_number": order_number, "options": dict(pending.options)}
        return None

    def complete(self, order_number: str, payment_id: str, gateway_order_id: str, signature: str,
                 shopper_id: Optional[str] = None) -> bool:
        """
        Resolve a pending payment from the widget's success callback.

        Returns False when no payment for this shopper is pending. A payload
        that fails signature verification raises and leaves the payment
        pending, so only the gateway's own callback can settle it.
        """
        pending = self._find(order_number, shopper_id)
        if pending is None:
            return False
        if gateway_order_id != pending.gateway_order_id or not verify_payment_signature(
                gateway_order_id, payment_id, signature, self.key_secret):
            logger.warning("payment_signature_rejected", order_number=order_number, payment_id=payment_id)
            raise PaymentVerificationError("Payment verification failed")
        pending.future.set_result(PaymentResult(
            success=True,
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            signature=signature,
            method="razorpay",
        ))
        return True

    def fail(self, order_number: str, reason: str = "Payment cancelled by user",
             shopper_id: Optional[str] = None) -> bool:
        pending = self._find(order_number, shopper_id)
        if pending is None:
            return False
        pending.future.set_result(PaymentResult(success=False, gateway_order_id=pending.gateway_order_id,
                                                error=reason))
        return True
