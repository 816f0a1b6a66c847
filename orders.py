"""
Order persistence.

Orders are created once per checkout attempt with ``payment_status="pending"``
and ``order_status="placed"``; their line items and totals are frozen at that
point. Afterwards only status, payment and shipping fields change.
"""
import random
import string
import time
from typing import List, Optional

import structlog
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, now_utc, serialize_doc, to_object_id
from schemas import Order, OrderItem, ShippingAddress

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
ORDER_NUMBER_ATTEMPTS = 3


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def generate_order_number() -> str:
    timestamp = _base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"ORD-{timestamp}-{suffix}"


class OrderService:
    collection = "order"

    def __init__(self, database: Database):
        self.db = database

    @staticmethod
    def _to_order(doc) -> Order:
        return Order(**serialize_doc(doc))

    def create_order(self, customer_name: str, customer_email: str, customer_phone: str,
                     shipping_address: ShippingAddress, items: List[OrderItem],
                     subtotal: float, total_savings: float, shipping_cost: float,
                     total_amount: float) -> Order:
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order = Order(
                order_number=generate_order_number(),
                customer_name=customer_name,
                customer_email=customer_email,
                customer_phone=customer_phone,
                shipping_address=shipping_address,
                items=items,
                subtotal=subtotal,
                total_savings=total_savings,
                shipping_cost=shipping_cost,
                total_amount=total_amount,
                payment_status="pending",
                order_status="placed",
            )
            try:
                order_id = create_document(self.db, self.collection, order)
            except DuplicateKeyError:
                logger.warning("order_number_collision", order_number=order.order_number)
                continue
            logger.info("order_created", order_id=order_id, order_number=order.order_number,
                        total_amount=total_amount)
            return self.get_order_by_id(order_id)
        raise RuntimeError("Could not allocate a unique order number")

    def get_order_by_id(self, order_id: str) -> Optional[Order]:
        oid = to_object_id(order_id)
        if oid is None:
            return None
        doc = self.db[self.collection].find_one({"_id": oid})
        return self._to_order(doc) if doc else None

    def get_order_by_number(self, order_number: str) -> Optional[Order]:
        doc = self.db[self.collection].find_one({"order_number": order_number})
        return self._to_order(doc) if doc else None

    def get_orders_by_email(self, email: str, limit: int = 50) -> List[Order]:
        cursor = self.db[self.collection].find({"customer_email": email}).sort("created_at", DESCENDING).limit(limit)
        return [self._to_order(d) for d in cursor]

    def get_all_orders(self, limit: int = 100, order_status: Optional[str] = None,
                       payment_status: Optional[str] = None) -> List[Order]:
        filt = {}
        if order_status:
            filt["order_status"] = order_status
        if payment_status:
            filt["payment_status"] = payment_status
        cursor = self.db[self.collection].find(filt).sort("created_at", DESCENDING).limit(limit)
        return [self._to_order(d) for d in cursor]

    def _update(self, order_id: str, updates: dict) -> bool:
        oid = to_object_id(order_id)
        if oid is None:
            return False
        updates["updated_at"] = now_utc()
        res = self.db[self.collection].update_one({"_id": oid}, {"$set": updates})
        return res.matched_count > 0

    def update_order_status(self, order_id: str, order_status: str, payment_status: Optional[str] = None) -> bool:
        updates = {"order_status": order_status}
        if payment_status:
            updates["payment_status"] = payment_status
        return self._update(order_id, updates)

    def update_order_payment(self, order_id: str, payment_status: str, payment_id: str,
                             payment_method: Optional[str] = None) -> bool:
        return self._update(order_id, {
            "payment_status": payment_status,
            "payment_id": payment_id,
            "payment_method": payment_method or "razorpay",
            "order_status": "confirmed" if payment_status in ("paid", "completed") else "placed",
        })

    def update_order_details(self, order_id: str, updates: dict) -> Optional[Order]:
        """Admin update of status, payment status, tracking, provider or notes."""
        allowed = {"order_status", "payment_status", "tracking_number", "shipping_provider", "notes"}
        updates = {k: v for k, v in updates.items() if k in allowed and v is not None}
        if not self._update(order_id, updates):
            return None
        return self.get_order_by_id(order_id)

    def stats(self, recent: int = 5) -> dict:
        orders = self.get_all_orders(limit=1000)
        return {
            "total_orders": len(orders),
            "pending_orders": len([o for o in orders if o.order_status in ("placed", "confirmed")]),
            "total_revenue": sum(o.total_amount for o in orders if o.payment_status in ("paid", "completed")),
            "recent_orders": [o.model_dump() for o in orders[:recent]],
        }
