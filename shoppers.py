"""
Per-shopper state and the service container.

Every anonymous shopper (``shopper_id`` cookie) gets a ``ShopperContext``
holding its cart, wishlist, identity client, session cache and checkout
orchestrator, all persisted through one ``MongoStateStorage``. Contexts are
kept in a bounded LRU and rehydrated from MongoDB when evicted.
"""
from collections import OrderedDict
from typing import Optional

import structlog
from fastapi.concurrency import run_in_threadpool
from pymongo.database import Database

from admin_logs import AdminLogService
from catalog import ProductService
from checkout import CheckoutOrchestrator
from config import Settings
from custom_requests import CustomRequestService
from emails import EmailNotificationService, EmailSender, ResendEmailSender
from identity import AuthBackend, AuthClient
from orders import OrderService
from payments import PaymentCollector, RazorpayPaymentCollector, SimulatedPaymentCollector
from profiles import UserProfileService
from session import SessionCache
from storage import MediaStorage
from stores import CartStore, MongoStateStorage, StateStorage, WishlistStore

logger = structlog.get_logger(__name__)

MAX_CACHED_SHOPPERS = 10000


class ShopperContext:
    def __init__(self, shopper_id: str, storage: StateStorage, storefront: "Storefront"):
        self.shopper_id = shopper_id
        self.storage = storage
        self.cart = CartStore(storage)
        self.wishlist = WishlistStore(storage)
        self.auth = AuthClient(storefront.auth_backend, storage,
                               send_login_code=storefront.notifications.send_login_code)
        self.session = SessionCache(self.auth, storefront.profiles, storefront.settings, storage)
        self.checkout = CheckoutOrchestrator(self.cart, storefront.orders, storefront.payments,
                                             storefront.notifications, storefront.settings.shipping_cost,
                                             shopper_id=shopper_id)
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        await self.session.start()


class Storefront:
    def __init__(self, settings: Settings, database: Database, payments: PaymentCollector,
                 email_sender: EmailSender, max_shoppers: int = MAX_CACHED_SHOPPERS):
        self.settings = settings
        self.db = database
        self.products = ProductService(database)
        self.orders = OrderService(database)
        self.profiles = UserProfileService(database)
        self.custom_requests = CustomRequestService(database)
        self.admin_logs = AdminLogService(database)
        self.media = MediaStorage(database)
        self.auth_backend = AuthBackend(database, settings)
        self.payments = payments
        self.notifications = EmailNotificationService(email_sender)
        self.max_shoppers = max_shoppers
        self._shoppers: "OrderedDict[str, ShopperContext]" = OrderedDict()

    @classmethod
    def build(cls, settings: Settings, database: Database, payments: Optional[PaymentCollector] = None,
              email_sender: Optional[EmailSender] = None) -> "Storefront":
        if payments is None:
            if settings.is_dev:
                payments = SimulatedPaymentCollector()
            else:
                payments = RazorpayPaymentCollector(settings.razorpay_key_id, settings.razorpay_key_secret,
                                                    timeout=settings.payment_timeout_seconds)
        if email_sender is None:
            email_sender = ResendEmailSender(settings.resend_api_key, settings.email_from)
        return cls(settings, database, payments, email_sender)

    async def shopper(self, shopper_id: str) -> ShopperContext:
        ctx = self._shoppers.get(shopper_id)
        if ctx is None:
            # hydration reads the shopper's blobs from MongoDB
            built = await run_in_threadpool(ShopperContext, shopper_id, MongoStateStorage(self.db, shopper_id), self)
            ctx = self._shoppers.setdefault(shopper_id, built)
            self._evict(keep=shopper_id)
        else:
            self._shoppers.move_to_end(shopper_id)
        await ctx.start()
        return ctx

    def _evict(self, keep: str) -> None:
        # a context with a checkout in flight owns the cart it will clear
        excess = len(self._shoppers) - self.max_shoppers
        for shopper_id in list(self._shoppers):
            if excess <= 0:
                break
            if shopper_id == keep or self._shoppers[shopper_id].checkout.is_submitting:
                continue
            del self._shoppers[shopper_id]
            excess -= 1
            logger.debug("shopper_evicted", shopper_id=shopper_id)
