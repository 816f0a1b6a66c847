"""
Transactional email through the Resend HTTP API, plus the storefront's
message templates (order confirmation, order status update, sign-in code).
"""
from datetime import datetime, timezone
from typing import List, Optional

import httpx
import structlog

from errors import EmailDeliveryError
from schemas import Order
from validation import sanitize_html as esc

logger = structlog.get_logger(__name__)

RESEND_URL = "https://api.resend.com/emails"
SUPPORT_EMAIL = "support@djewel.in"

STATUS_EMOJI = {
    "confirmed": "✅",
    "processing": "⚙️",
    "shipped": "📦",
    "delivered": "🎉",
    "cancelled": "❌",
}


def format_inr(amount: float) -> str:
    """Format with Indian digit grouping, e.g. 1234567 -> ₹12,34,567."""
    negative = amount < 0
    whole, _, frac = f"{abs(amount):.2f}".partition(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    text = whole if frac == "00" else f"{whole}.{frac}"
    return f"{'-' if negative else ''}₹{text}"


class EmailSender:
    async def send(self, to: List[str], subject: str, html: str) -> None:
        raise NotImplementedError


class ResendEmailSender(EmailSender):
    def __init__(self, api_key: str, from_address: str,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.from_address = from_address
        self.transport = transport

    async def send(self, to, subject, html):
        if not self.api_key:
            logger.warning("email_skipped", reason="Resend API key not configured", subject=subject)
            return
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                resp = await client.post(
                    RESEND_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.from_address, "to": to, "subject": subject, "html": html},
                )
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email send failed: {e}") from e
        if not resp.is_success:
            raise EmailDeliveryError(f"Email send failed: {resp.status_code} {resp.reason_phrase}")
        logger.info("email_sent", to=to, subject=subject)


# ----------------------- Templates -----------------------
def render_order_confirmation(order: Order) -> str:
    addr = order.shipping_address
    rows = "".join(
        f'<div class="item"><span>{esc(item.name)} (x{item.quantity})</span>'
        f"<span>{format_inr(item.price)}</span></div>"
        for item in order.items
    )
    line2 = f"{esc(addr.line2)}<br>" if addr.line2 else ""
    year = datetime.now(timezone.utc).year
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div class="container" style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <div class="header" style="background: #1a1a1a; color: white; padding: 30px; text-align: center;">
        <h1>Order Confirmation</h1>
        <p>Order #{esc(order.order_number)}</p>
      </div>
      <div class="content" style="background: #f9f9f9; padding: 30px;">
        <p>Dear {esc(order.customer_name)},</p>
        <p>Thank you for your order! We've received your order and are processing it.</p>
        <div class="order-details">
          <h2>Order Details</h2>
          {rows}
          <div class="total">
            <div><span>Subtotal:</span> <span>{format_inr(order.subtotal)}</span></div>
            <div><span>Shipping:</span> <span>{format_inr(order.shipping_cost)}</span></div>
            <div style="color: #d4a24e;"><span>Total:</span> <span>{format_inr(order.total_amount)}</span></div>
          </div>
        </div>
        <div class="savings" style="background: #fff4e6; padding: 15px; border-left: 4px solid #d4a24e;">
          <strong>You saved {format_inr(order.total_savings)} on making charges!</strong>
        </div>
        <div class="order-details">
          <h3>Shipping Address</h3>
          <p>
            {esc(addr.line1)}<br>
            {line2}
            {esc(addr.city)}, {esc(addr.state)}<br>
            {esc(addr.pincode)}, {esc(addr.country)}
          </p>
        </div>
        <p>We'll send you another email when your order ships.</p>
      </div>
      <div class="footer" style="text-align: center; padding: 20px; color: #666; font-size: 12px;">
        <p>Questions? Contact us at {SUPPORT_EMAIL}</p>
        <p>&copy; {year} DJewel Boutique. All rights reserved.</p>
      </div>
    </div>
  </body>
</html>
"""


def render_order_status_update(order: Order, status_message: str) -> str:
    tracking = ""
    if order.tracking_number:
        carrier = (f"<p><strong>Carrier:</strong> {esc(order.shipping_provider)}</p>"
                   if order.shipping_provider else "")
        tracking = (
            '<div style="background: white; padding: 20px; margin: 20px 0;">'
            "<h3>Tracking Information</h3>"
            f"<p><strong>Tracking Number:</strong> {esc(order.tracking_number)}</p>"
            f"{carrier}</div>"
        )
    emoji = STATUS_EMOJI.get(order.order_status, "📋")
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <div style="background: #1a1a1a; color: white; padding: 30px; text-align: center;">
        <h1>{emoji} Order Update</h1>
        <p>Order #{esc(order.order_number)}</p>
      </div>
      <div style="background: #f9f9f9; padding: 30px;">
        <p>Dear {esc(order.customer_name)},</p>
        <p>{esc(status_message)}</p>
        {tracking}
        <p>Thank you for shopping with us!</p>
      </div>
      <div style="text-align: center; padding: 20px; color: #666; font-size: 12px;">
        <p>Questions? Contact us at {SUPPORT_EMAIL}</p>
      </div>
    </div>
  </body>
</html>
"""


def render_login_code(code: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 480px; margin: 0 auto;">'
        "<h2>Your sign-in code</h2>"
        f'<p style="font-size: 28px; letter-spacing: 6px;"><strong>{esc(code)}</strong></p>'
        "<p>The code expires in 10 minutes. If you did not request it, ignore this email.</p>"
        "</div>"
    )


class EmailNotificationService:
    def __init__(self, sender: EmailSender):
        self.sender = sender

    async def send_order_confirmation(self, order: Order) -> None:
        await self.sender.send([order.customer_email], f"Order Confirmation - {order.order_number}",
                               render_order_confirmation(order))

    async def send_order_status_update(self, order: Order, status_message: str) -> None:
        await self.sender.send([order.customer_email], f"Order Update - {order.order_number}",
                               render_order_status_update(order, status_message))

    async def send_login_code(self, email: str, code: str) -> None:
        await self.sender.send([email], "Your DJewel sign-in code", render_login_code(code))
