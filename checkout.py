"""
Checkout orchestration.

A checkout attempt runs strictly in order:

1. validate the form (no network call on failure)
2. compute totals from the cart
3. create the order as pending / placed, with line items frozen from the cart
4. collect payment for the order total, referenced by the order number
5. on failure or cancellation mark the order payment_failed and keep the cart
6. on success mark the order paid / confirmed with the gateway payment id
7. send the confirmation email (best effort)
8. clear the cart and point the shopper at the confirmation page

The order must exist before payment is attempted so a captured payment can
always be matched to a local row. An attempt that stops between steps 3 and
5/6 leaves the order in ``order_created`` (still pending); it is reported as
orphaned and left for manual reconciliation.
"""
from typing import Dict, List, Literal, Optional

import structlog
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from error_tracking import capture_exception, capture_message
from errors import InvalidTransitionError, PaymentGatewayError
from emails import EmailNotificationService
from orders import OrderService
from payments import PaymentCollector, PaymentRequest, PaymentResult, to_minor_units
from schemas import Notification, Order, OrderItem, ShippingAddress, UserProfile
from stores import CartStore
from validation import CheckoutForm, validate_form

logger = structlog.get_logger(__name__)

TRANSITIONS = {
    "idle": {"validated", "failed"},
    "validated": {"order_created", "failed"},
    "order_created": {"paid", "payment_failed"},
    "paid": {"completed"},
    "payment_failed": set(),
    "completed": set(),
    "failed": set(),
}


class CheckoutAttempt:
    def __init__(self):
        self.stage = "idle"
        self.history = ["idle"]
        self.order: Optional[Order] = None

    def advance(self, stage: str) -> None:
        if stage not in TRANSITIONS[self.stage]:
            raise InvalidTransitionError(f"Cannot move checkout from {self.stage} to {stage}")
        self.stage = stage
        self.history.append(stage)

    @property
    def is_orphaned(self) -> bool:
        return self.stage == "order_created"


class CheckoutTotals(BaseModel):
    subtotal: float
    total_savings: float
    shipping_cost: float
    total: float


CheckoutFailure = Literal["in_progress", "empty_cart", "invalid_form", "order_error", "payment_failed", "orphaned"]


class CheckoutResult(BaseModel):
    success: bool
    stage: str
    order_number: Optional[str] = None
    order: Optional[Order] = None
    notification: Optional[Notification] = None
    errors: Dict[str, str] = {}
    redirect_to: Optional[str] = None
    failure: Optional[CheckoutFailure] = None
    orphaned: bool = False
    email_sent: bool = False


def compute_totals(cart: CartStore, shipping_cost: float) -> CheckoutTotals:
    subtotal = cart.subtotal
    shipping = shipping_cost if not cart.is_empty() else 0
    return CheckoutTotals(
        subtotal=subtotal,
        total_savings=cart.total_savings,
        shipping_cost=shipping,
        total=subtotal + shipping,
    )


def build_order_items(cart: CartStore) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item.product.id,
            name=item.product.name,
            price=item.product.price,
            quantity=item.quantity,
            image=item.product.images[0] if item.product.images else "",
            weight_grams=item.product.weight_grams,
            making_charges_saved=item.product.making_charges_saved,
        )
        for item in cart.items
    ]


def prefill_form(email: Optional[str], profile: Optional[UserProfile]) -> dict:
    """Initial checkout form values for a signed-in shopper."""
    return {
        "customer_name": profile.name if profile and profile.name != "New User" else "",
        "customer_email": email or (profile.email if profile else ""),
        "customer_phone": profile.phone if profile else "",
        "shipping_address": (
            profile.saved_addresses[0].model_dump() if profile and profile.saved_addresses
            else {"line1": "", "line2": "", "city": "", "state": "", "pincode": "", "country": "India"}
        ),
    }


class CheckoutOrchestrator:
    def __init__(self, cart: CartStore, orders: OrderService, payments: PaymentCollector,
                 notifications: EmailNotificationService, shipping_cost: float = 200,
                 shopper_id: Optional[str] = None):
        self.cart = cart
        self.orders = orders
        self.payments = payments
        self.notifications = notifications
        self.shipping_cost = shipping_cost
        self.shopper_id = shopper_id
        self.is_submitting = False

    async def place_order(self, form_data: dict) -> CheckoutResult:
        if self.is_submitting:
            return CheckoutResult(
                success=False,
                stage="idle",
                failure="in_progress",
                notification=Notification(title="Checkout in progress",
                                          description="Your order is already being placed",
                                          variant="destructive"),
            )
        self.is_submitting = True
        try:
            return await self._run(form_data)
        finally:
            self.is_submitting = False

    async def _run(self, form_data: dict) -> CheckoutResult:
        attempt = CheckoutAttempt()

        # 1. validate
        if self.cart.is_empty():
            attempt.advance("failed")
            return CheckoutResult(
                success=False, stage=attempt.stage, failure="empty_cart", redirect_to="/cart",
                notification=Notification(title="Your cart is empty",
                                          description="Add something to your cart first",
                                          variant="destructive"),
            )
        validation = validate_form(CheckoutForm, form_data)
        if not validation.success:
            attempt.advance("failed")
            return CheckoutResult(
                success=False, stage=attempt.stage, failure="invalid_form", errors=validation.errors,
                notification=Notification(title="Please fix the errors",
                                          description="Some fields need your attention",
                                          variant="destructive"),
            )
        form: CheckoutForm = validation.data
        attempt.advance("validated")

        # 2. totals
        totals = compute_totals(self.cart, self.shipping_cost)
        items = build_order_items(self.cart)

        try:
            # 3. order row
            order = await run_in_threadpool(
                self.orders.create_order,
                form.customer_name,
                form.customer_email,
                form.customer_phone,
                ShippingAddress(**form.shipping_address.model_dump()),
                items,
                totals.subtotal,
                totals.total_savings,
                totals.shipping_cost,
                totals.total,
            )
            attempt.order = order
            attempt.advance("order_created")

            # 4. payment
            payment = await self._collect(order, form, totals)

            # 5. failure / cancellation
            if not payment.success:
                await run_in_threadpool(self.orders.update_order_status, order.id, "payment_failed", "failed")
                attempt.advance("payment_failed")
                logger.info("checkout_payment_failed", order_number=order.order_number, reason=payment.error)
                return CheckoutResult(
                    success=False, stage=attempt.stage, failure="payment_failed", order_number=order.order_number,
                    order=order.model_copy(update={"order_status": "payment_failed", "payment_status": "failed"}),
                    notification=Notification(title="Payment cancelled",
                                              description=payment.error or "Please try again",
                                              variant="destructive"),
                )

            # 6. success
            method = payment.method or "razorpay"
            await run_in_threadpool(self.orders.update_order_payment, order.id, "paid", payment.payment_id, method)
            attempt.advance("paid")
            order = order.model_copy(update={
                "payment_status": "paid",
                "order_status": "confirmed",
                "payment_id": payment.payment_id,
                "payment_method": method,
            })
            attempt.order = order
        except Exception as e:
            capture_exception(e, {"stage": attempt.stage, "customer_email": form.customer_email,
                                  "order_number": attempt.order.order_number if attempt.order else None})
            if attempt.stage == "validated":
                attempt.advance("failed")
            if attempt.is_orphaned:
                capture_message(f"Order {attempt.order.order_number} has no recorded payment outcome", level="error")
            return CheckoutResult(
                success=False,
                stage=attempt.stage,
                order_number=attempt.order.order_number if attempt.order else None,
                order=attempt.order,
                failure="orphaned" if attempt.is_orphaned else "order_error",
                orphaned=attempt.is_orphaned,
                notification=Notification(title="Order failed", description=str(e) or "Failed to place order",
                                          variant="destructive"),
            )

        # 7. confirmation email, best effort
        email_sent = False
        try:
            await self.notifications.send_order_confirmation(order)
            email_sent = True
        except Exception as e:
            logger.warning("confirmation_email_failed", order_number=order.order_number, error=str(e))
            capture_exception(e, {"order_id": order.id, "order_number": order.order_number})

        # 8. done
        await run_in_threadpool(self.cart.clear_cart)
        attempt.advance("completed")
        logger.info("checkout_completed", order_number=order.order_number, total=totals.total)
        return CheckoutResult(
            success=True,
            stage=attempt.stage,
            order_number=order.order_number,
            order=order,
            email_sent=email_sent,
            redirect_to=f"/order-confirmation/{order.order_number}",
            notification=Notification(title="Payment successful!",
                                      description=f"Order #{order.order_number} has been placed."),
        )

    async def _collect(self, order: Order, form: CheckoutForm, totals: CheckoutTotals) -> PaymentResult:
        request = PaymentRequest(
            order_number=order.order_number,
            shopper_id=self.shopper_id,
            amount=to_minor_units(totals.total),
            customer_name=form.customer_name,
            customer_email=form.customer_email,
            customer_phone=form.customer_phone,
            description=f"Order #{order.order_number}",
        )
        try:
            return await self.payments.collect(request)
        except PaymentGatewayError as e:
            capture_exception(e, {"order_number": order.order_number})
            return PaymentResult(success=False, error=str(e))
