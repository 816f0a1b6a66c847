import os
import re
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from catalog import CatalogView
from checkout import CheckoutResult, compute_totals, prefill_form
from config import Settings, get_dev_user
from database import db, ensure_indexes
from error_tracking import set_user
from errors import (AuthError, CommentLimitError, EmailDeliveryError, PaymentVerificationError,
                    SessionExpiredError)
from identity import AuthSession
from log import configure_logging
from payments import RazorpayPaymentCollector, verify_payment_signature
from schemas import CustomRequestStatus, OrderStatus, PaymentStatus, ShippingAddress
from shoppers import ShopperContext, Storefront
from validation import (AddressForm, CodeForm, CommentForm, CustomRequestForm, EmailForm, PasswordForm,
                        ProductForm, ProductUpdateForm, ProfileForm, validate_form)

settings = Settings.from_env()
configure_logging(settings.log_level, settings.log_json)


@asynccontextmanager
async def lifespan(app: FastAPI):
    storefront = app.state.storefront
    if storefront is not None:
        ensure_indexes(storefront.db)
    yield


app = FastAPI(title="DJewel Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.storefront = Storefront.build(settings, db) if db is not None else None


# ----------------------- Utils -----------------------
SHOPPER_COOKIE = "shopper_id"
SHOPPER_ID_RE = re.compile(r"^[0-9a-f]{32}$")
security = HTTPBearer()


def get_storefront(request: Request) -> Storefront:
    storefront = request.app.state.storefront
    if storefront is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return storefront


async def get_shopper(request: Request, response: Response,
                      storefront: Storefront = Depends(get_storefront)) -> ShopperContext:
    from_header = request.headers.get("X-Shopper-Id")
    shopper_id = from_header or request.cookies.get(SHOPPER_COOKIE)
    if not shopper_id or not SHOPPER_ID_RE.match(shopper_id):
        shopper_id = uuid.uuid4().hex
        from_header = None
    # header-scoped clients keep their own id; only browsers get the cookie
    if not from_header:
        response.set_cookie(SHOPPER_COOKIE, shopper_id, max_age=365 * 24 * 3600, httponly=True, samesite="lax")
    response.headers["X-Shopper-Id"] = shopper_id
    return await storefront.shopper(shopper_id)


def require_signed_in(shopper: ShopperContext) -> str:
    session = shopper.session
    if not session.is_authenticated or session.user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return session.user.email


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security),
                     storefront: Storefront = Depends(get_storefront)):
    try:
        payload = storefront.auth_backend.decode_access_token(credentials.credentials)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    user = {"id": payload["sub"], "email": payload["email"]}
    set_user(user)
    return user


def require_admin(user=Depends(get_current_user), storefront: Storefront = Depends(get_storefront)):
    dev = get_dev_user(storefront.settings, user["email"])
    if dev and dev["is_admin"]:
        return user
    if not storefront.profiles.is_admin(user["email"]):
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def session_payload(shopper: ShopperContext, session: Optional[AuthSession] = None) -> dict:
    body = {"session": shopper.session.snapshot()}
    if session is not None:
        body["token"] = session.access_token
        body["refresh_token"] = session.refresh_token
        body["expires_at"] = session.expires_at
    return body


def cart_payload(shopper: ShopperContext, storefront: Storefront) -> dict:
    totals = compute_totals(shopper.cart, storefront.settings.shipping_cost)
    return {**shopper.cart.snapshot(), "shipping_cost": totals.shipping_cost, "total": totals.total}


CHECKOUT_FAILURE_STATUS = {
    "invalid_form": 422,
    "empty_cart": 400,
    "in_progress": 409,
    "payment_failed": 402,
    "order_error": 502,
    "orphaned": 502,
}


def checkout_status(result: CheckoutResult) -> int:
    if result.success:
        return 200
    return CHECKOUT_FAILURE_STATUS.get(result.failure, 400)


# ----------------------- Models -----------------------
class CartAddBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantityBody(BaseModel):
    quantity: int


class WishlistAddBody(BaseModel):
    product_id: str


class PaymentCompleteBody(BaseModel):
    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str


class PaymentCancelBody(BaseModel):
    reason: Optional[str] = None


class PaymentVerifyBody(BaseModel):
    order_id: str
    payment_id: str
    signature: str


class AdminOrderUpdateBody(BaseModel):
    order_status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    shipping_provider: Optional[str] = None
    notes: Optional[str] = None
    notify_customer: bool = False
    status_message: Optional[str] = None


class RespondBody(BaseModel):
    admin_response: str = Field(..., min_length=1)
    estimated_price: Optional[float] = Field(None, ge=0)
    status: CustomRequestStatus = "quoted"


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "DJewel storefront API running"}


@app.get("/test")
def test_database(request: Request):
    storefront = request.app.state.storefront
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if storefront is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = storefront.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/otp")
async def send_login_code(body: EmailForm, shopper: ShopperContext = Depends(get_shopper)):
    try:
        await shopper.auth.sign_in_with_otp(body.email)
    except EmailDeliveryError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"sent": True}


async def _signed_in(shopper: ShopperContext, session: AuthSession) -> dict:
    await shopper.session.drain()
    await shopper.session.settle()
    return session_payload(shopper, session)


@app.post("/auth/verify")
async def verify_login_code(body: CodeForm, shopper: ShopperContext = Depends(get_shopper)):
    try:
        session = await shopper.auth.verify_otp(body.email, body.code)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return await _signed_in(shopper, session)


@app.post("/auth/signup")
async def signup(body: PasswordForm, shopper: ShopperContext = Depends(get_shopper)):
    try:
        session = await shopper.auth.sign_up(body.email, body.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await _signed_in(shopper, session)


@app.post("/auth/login")
async def login(body: PasswordForm, shopper: ShopperContext = Depends(get_shopper)):
    try:
        session = await shopper.auth.sign_in_with_password(body.email, body.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return await _signed_in(shopper, session)


@app.post("/auth/refresh")
async def refresh_session(shopper: ShopperContext = Depends(get_shopper)):
    await shopper.session.refresh()
    return session_payload(shopper, shopper.auth.session)


@app.post("/auth/logout")
async def logout(shopper: ShopperContext = Depends(get_shopper)):
    await shopper.session.logout()
    return {"ok": True}


@app.get("/auth/session")
async def current_session(shopper: ShopperContext = Depends(get_shopper)):
    await shopper.session.drain()
    return session_payload(shopper)


# ----------------------- Profile -----------------------
@app.get("/profile")
async def get_profile(shopper: ShopperContext = Depends(get_shopper)):
    require_signed_in(shopper)
    if shopper.session.profile is None:
        await shopper.session.load_profile()
    if shopper.session.profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return shopper.session.profile.model_dump()


@app.put("/profile")
async def update_profile(body: ProfileForm, shopper: ShopperContext = Depends(get_shopper)):
    require_signed_in(shopper)
    try:
        profile = await shopper.session.update_profile(body.name, body.phone)
    except SessionExpiredError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return profile.model_dump()


@app.post("/profile/addresses")
async def add_address(body: AddressForm, shopper: ShopperContext = Depends(get_shopper),
                      storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    address = ShippingAddress(**body.model_dump())
    profile = await run_in_threadpool(storefront.profiles.add_saved_address, email, address)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    await shopper.session.load_profile()
    return profile.model_dump()


# ----------------------- Products -----------------------
@app.get("/products")
def list_products(request: Request, storefront: Storefront = Depends(get_storefront)):
    view = CatalogView(storefront.products, storefront.settings.product_limit)
    view.apply_query_params(request.query_params)
    view.load_products()
    if view.error:
        raise HTTPException(status_code=500, detail=view.error)
    return {
        "products": [p.model_dump() for p in view.filtered_products()],
        "category": view.selected_category,
        "q": view.search_query,
        "query_string": view.to_query_string(),
    }


@app.get("/products/{product_id}")
def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
    product = storefront.products.get_product_by_id(product_id)
    if not product or product.is_active != "active":
        raise HTTPException(status_code=404, detail="Product not found")
    return product.model_dump()


# ----------------------- Cart -----------------------
def _active_product(storefront: Storefront, product_id: str):
    product = storefront.products.get_product_by_id(product_id)
    if not product or product.is_active != "active":
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/cart")
def get_cart(shopper: ShopperContext = Depends(get_shopper), storefront: Storefront = Depends(get_storefront)):
    return cart_payload(shopper, storefront)


@app.post("/cart/items")
def add_to_cart(body: CartAddBody, shopper: ShopperContext = Depends(get_shopper),
                storefront: Storefront = Depends(get_storefront)):
    product = _active_product(storefront, body.product_id)
    existing = shopper.cart.get_item(product.id)
    in_cart = existing.quantity if existing else 0
    if in_cart + body.quantity > product.stock_quantity:
        raise HTTPException(status_code=400, detail=f"Only {product.stock_quantity} in stock")
    shopper.cart.add_item(product, body.quantity)
    return cart_payload(shopper, storefront)


@app.patch("/cart/items/{product_id}")
def update_cart_item(product_id: str, body: CartQuantityBody, shopper: ShopperContext = Depends(get_shopper),
                     storefront: Storefront = Depends(get_storefront)):
    item = shopper.cart.get_item(product_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not in cart")
    quantity = min(body.quantity, item.product.stock_quantity)
    shopper.cart.update_quantity(product_id, quantity)
    return cart_payload(shopper, storefront)


@app.delete("/cart/items/{product_id}")
def remove_cart_item(product_id: str, shopper: ShopperContext = Depends(get_shopper),
                     storefront: Storefront = Depends(get_storefront)):
    shopper.cart.remove_item(product_id)
    return cart_payload(shopper, storefront)


@app.delete("/cart")
def clear_cart(shopper: ShopperContext = Depends(get_shopper), storefront: Storefront = Depends(get_storefront)):
    shopper.cart.clear_cart()
    return cart_payload(shopper, storefront)


# ----------------------- Wishlist -----------------------
def wishlist_payload(shopper: ShopperContext) -> dict:
    return {"items": [p.model_dump() for p in shopper.wishlist.items]}


@app.get("/wishlist")
def get_wishlist(shopper: ShopperContext = Depends(get_shopper)):
    return wishlist_payload(shopper)


@app.post("/wishlist/items")
def add_to_wishlist(body: WishlistAddBody, shopper: ShopperContext = Depends(get_shopper),
                    storefront: Storefront = Depends(get_storefront)):
    product = _active_product(storefront, body.product_id)
    shopper.wishlist.add_item(product)
    return wishlist_payload(shopper)


@app.delete("/wishlist/items/{product_id}")
def remove_from_wishlist(product_id: str, shopper: ShopperContext = Depends(get_shopper)):
    shopper.wishlist.remove_item(product_id)
    return wishlist_payload(shopper)


@app.post("/wishlist/{product_id}/toggle")
def toggle_wishlist(product_id: str, shopper: ShopperContext = Depends(get_shopper),
                    storefront: Storefront = Depends(get_storefront)):
    if shopper.wishlist.is_in_wishlist(product_id):
        shopper.wishlist.remove_item(product_id)
        return {"in_wishlist": False, **wishlist_payload(shopper)}
    product = _active_product(storefront, product_id)
    in_wishlist = shopper.wishlist.toggle_item(product)
    return {"in_wishlist": in_wishlist, **wishlist_payload(shopper)}


@app.delete("/wishlist")
def clear_wishlist(shopper: ShopperContext = Depends(get_shopper)):
    shopper.wishlist.clear_wishlist()
    return wishlist_payload(shopper)


# ----------------------- Checkout -----------------------
@app.get("/checkout")
def checkout_form(shopper: ShopperContext = Depends(get_shopper), storefront: Storefront = Depends(get_storefront)):
    session = shopper.session
    email = session.user.email if session.user else None
    return {"form": prefill_form(email, session.profile), "cart": cart_payload(shopper, storefront)}


@app.post("/checkout")
async def place_order(response: Response, form: dict = Body(...), shopper: ShopperContext = Depends(get_shopper)):
    result = await shopper.checkout.place_order(form)
    response.status_code = checkout_status(result)
    return result.model_dump()


# ----------------------- Orders -----------------------
@app.get("/orders/mine")
async def my_orders(shopper: ShopperContext = Depends(get_shopper), storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    orders = await run_in_threadpool(storefront.orders.get_orders_by_email, email)
    return [o.model_dump() for o in orders]


@app.get("/orders/{order_number}")
def get_order(order_number: str, storefront: Storefront = Depends(get_storefront)):
    order = storefront.orders.get_order_by_number(order_number)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.model_dump()


# ----------------------- Payments -----------------------
def _gateway(storefront: Storefront) -> RazorpayPaymentCollector:
    if not isinstance(storefront.payments, RazorpayPaymentCollector):
        raise HTTPException(status_code=404, detail="No hosted payment in progress")
    return storefront.payments


@app.get("/checkout/payment")
def pending_payment(shopper: ShopperContext = Depends(get_shopper), storefront: Storefront = Depends(get_storefront)):
    """Order number and widget options for the shopper's checkout while it waits on payment."""
    pending = _gateway(storefront).pending_for(shopper.shopper_id)
    if pending is None:
        raise HTTPException(status_code=404, detail="No pending payment")
    return pending


@app.get("/payments/{order_number}")
def payment_options(order_number: str, shopper: ShopperContext = Depends(get_shopper),
                    storefront: Storefront = Depends(get_storefront)):
    options = _gateway(storefront).widget_options(order_number, shopper.shopper_id)
    if options is None:
        raise HTTPException(status_code=404, detail="No pending payment for this order")
    return options


@app.post("/payments/{order_number}/complete")
async def complete_payment(order_number: str, body: PaymentCompleteBody,
                           shopper: ShopperContext = Depends(get_shopper),
                           storefront: Storefront = Depends(get_storefront)):
    try:
        completed = _gateway(storefront).complete(order_number, body.razorpay_payment_id, body.razorpay_order_id,
                                                  body.razorpay_signature, shopper.shopper_id)
    except PaymentVerificationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not completed:
        raise HTTPException(status_code=404, detail="No pending payment for this order")
    return {"verified": True}


@app.post("/payments/{order_number}/cancel")
async def cancel_payment(order_number: str, body: Optional[PaymentCancelBody] = None,
                         shopper: ShopperContext = Depends(get_shopper),
                         storefront: Storefront = Depends(get_storefront)):
    reason = (body and body.reason) or "Payment cancelled by user"
    if not _gateway(storefront).fail(order_number, reason, shopper.shopper_id):
        raise HTTPException(status_code=404, detail="No pending payment for this order")
    return {"ok": True}


@app.post("/payments/verify")
def verify_payment(body: PaymentVerifyBody, storefront: Storefront = Depends(get_storefront)):
    verified = verify_payment_signature(body.order_id, body.payment_id, body.signature,
                                        storefront.settings.razorpay_key_secret,
                                        allow_dev=storefront.settings.is_dev)
    return {"verified": verified}


# ----------------------- Custom Requests -----------------------
@app.post("/custom-requests")
async def submit_custom_request(
    response: Response,
    image: UploadFile = File(...),
    description: str = Form(...),
    customer_phone: str = Form(""),
    customer_name: Optional[str] = Form(None),
    shopper: ShopperContext = Depends(get_shopper),
    storefront: Storefront = Depends(get_storefront),
):
    email = require_signed_in(shopper)
    result = validate_form(CustomRequestForm, {
        "description": description, "customer_phone": customer_phone, "customer_name": customer_name,
    })
    if not result.success:
        raise HTTPException(status_code=422, detail=result.errors)
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Please upload an image")
    data = await image.read()
    image_url = await run_in_threadpool(storefront.media.upload, data, image.filename or "upload.jpg",
                                        image.content_type, "custom-requests")
    form = result.data
    request = await run_in_threadpool(storefront.custom_requests.submit_request, email, image_url,
                                      form.description, form.customer_phone, form.customer_name)
    response.status_code = 201
    return request.model_dump()


@app.get("/custom-requests/mine")
async def my_custom_requests(shopper: ShopperContext = Depends(get_shopper),
                             storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    requests = await run_in_threadpool(storefront.custom_requests.get_my_requests, email)
    return [r.model_dump() for r in requests]


async def _owned_request(request_id: str, email: str, storefront: Storefront):
    request = await run_in_threadpool(storefront.custom_requests.get_request, request_id)
    if not request or request.customer_email != email:
        raise HTTPException(status_code=404, detail="Request not found")
    return request


@app.get("/custom-requests/{request_id}")
async def get_custom_request(request_id: str, shopper: ShopperContext = Depends(get_shopper),
                             storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    request = await _owned_request(request_id, email, storefront)
    return request.model_dump()


@app.get("/custom-requests/{request_id}/comments")
async def list_comments(request_id: str, shopper: ShopperContext = Depends(get_shopper),
                        storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    await _owned_request(request_id, email, storefront)
    comments = await run_in_threadpool(storefront.custom_requests.get_comments, request_id)
    return [c.model_dump() for c in comments]


@app.post("/custom-requests/{request_id}/comments")
async def add_comment(request_id: str, body: CommentForm, shopper: ShopperContext = Depends(get_shopper),
                      storefront: Storefront = Depends(get_storefront)):
    email = require_signed_in(shopper)
    await _owned_request(request_id, email, storefront)
    try:
        comment = await run_in_threadpool(storefront.custom_requests.add_comment, request_id, email,
                                          body.comment_text)
    except CommentLimitError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return comment.model_dump()


# ----------------------- Admin -----------------------
@app.get("/admin/products")
def admin_list_products(user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    return [p.model_dump() for p in storefront.products.list_for_admin()]


@app.post("/admin/products")
def admin_create_product(body: ProductForm, user=Depends(require_admin),
                         storefront: Storefront = Depends(get_storefront)):
    product = storefront.products.create_product(body)
    storefront.admin_logs.log_action(user["email"], "product_created", "product", product.id,
                                     {"name": product.name})
    return product.model_dump()


@app.patch("/admin/products/{product_id}")
def admin_update_product(product_id: str, body: ProductUpdateForm, user=Depends(require_admin),
                         storefront: Storefront = Depends(get_storefront)):
    product = storefront.products.update_product(product_id, body)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    storefront.admin_logs.log_action(user["email"], "product_updated", "product", product_id,
                                     body.model_dump(exclude_none=True))
    return product.model_dump()


@app.delete("/admin/products/{product_id}")
def admin_delete_product(product_id: str, user=Depends(require_admin),
                         storefront: Storefront = Depends(get_storefront)):
    if not storefront.products.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    storefront.admin_logs.log_action(user["email"], "product_deleted", "product", product_id)
    return {"ok": True}


@app.get("/admin/orders")
def admin_list_orders(order_status: Optional[str] = None, payment_status: Optional[str] = None,
                      limit: int = 100, user=Depends(require_admin),
                      storefront: Storefront = Depends(get_storefront)):
    orders = storefront.orders.get_all_orders(limit=limit, order_status=order_status,
                                              payment_status=payment_status)
    return [o.model_dump() for o in orders]


@app.get("/admin/orders/{order_id}")
def admin_get_order(order_id: str, user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    order = storefront.orders.get_order_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order.model_dump()


@app.patch("/admin/orders/{order_id}")
async def admin_update_order(order_id: str, body: AdminOrderUpdateBody, user=Depends(require_admin),
                             storefront: Storefront = Depends(get_storefront)):
    updates = body.model_dump(exclude={"notify_customer", "status_message"}, exclude_none=True)
    order = await run_in_threadpool(storefront.orders.update_order_details, order_id, updates)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    await run_in_threadpool(storefront.admin_logs.log_action, user["email"], "order_updated", "order",
                            order_id, updates)
    email_sent = False
    if body.notify_customer:
        message = body.status_message or f"Your order is now {order.order_status}."
        try:
            await storefront.notifications.send_order_status_update(order, message)
            email_sent = True
        except EmailDeliveryError as e:
            raise HTTPException(status_code=502, detail=f"Order updated but email failed: {e}")
    return {"order": order.model_dump(), "email_sent": email_sent}


@app.get("/admin/custom-requests")
def admin_list_custom_requests(status: Optional[str] = None, user=Depends(require_admin),
                               storefront: Storefront = Depends(get_storefront)):
    return [r.model_dump() for r in storefront.custom_requests.get_all_requests(status=status)]


@app.patch("/admin/custom-requests/{request_id}")
def admin_respond_custom_request(request_id: str, body: RespondBody, user=Depends(require_admin),
                                 storefront: Storefront = Depends(get_storefront)):
    request = storefront.custom_requests.respond_to_request(request_id, body.admin_response,
                                                            body.estimated_price, body.status)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    storefront.admin_logs.log_action(user["email"], "request_responded", "request", request_id,
                                     body.model_dump(exclude_none=True))
    return request.model_dump()


@app.get("/admin/stats")
def admin_stats(user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    return {"total_products": storefront.products.count(), **storefront.orders.stats()}


@app.get("/admin/logs")
def admin_logs(limit: int = 50, user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    return [log.model_dump() for log in storefront.admin_logs.get_recent_logs(limit)]


@app.post("/admin/media")
async def admin_upload_media(file: UploadFile = File(...), folder: str = Form("products"),
                             user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    data = await file.read()
    url = await run_in_threadpool(storefront.media.upload, data, file.filename or "upload.bin",
                                  file.content_type or "application/octet-stream", folder)
    return {"url": url}


@app.delete("/admin/media")
def admin_delete_media(url: str, user=Depends(require_admin), storefront: Storefront = Depends(get_storefront)):
    return {"deleted": storefront.media.delete_by_url(url)}


@app.get("/media/{file_id}")
def get_media(file_id: str, storefront: Storefront = Depends(get_storefront)):
    found = storefront.media.get(file_id)
    if found is None:
        raise HTTPException(status_code=404, detail="File not found")
    content, content_type = found
    return Response(content=content, media_type=content_type)


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS: List[dict] = [
    {
        "name": "Classic Solitaire Ring",
        "description": "A timeless solitaire in 18k gold with a brilliant-cut diamond.",
        "category": "ring",
        "metal_type": "gold",
        "metal_purity": "18k",
        "weight_grams": 3.2,
        "stone_weight": 0.5,
        "stone_quality": "VS1",
        "stone_setting": "Prong",
        "stone_count": 1,
        "price": 45000,
        "mrp": 52000,
        "images": ["https://images.unsplash.com/photo-1605100804763-247f67b3557e"],
        "stock_quantity": 8,
    },
    {
        "name": "Temple Necklace",
        "description": "Handcrafted 22k gold temple necklace with lakshmi motifs.",
        "category": "necklace",
        "metal_type": "gold",
        "metal_purity": "22k",
        "weight_grams": 28.5,
        "price": 185000,
        "mrp": 210000,
        "images": ["https://images.unsplash.com/photo-1599643478518-a784e5dc4c8f"],
        "stock_quantity": 3,
    },
    {
        "name": "Rose Gold Hoop Earrings",
        "description": "Lightweight everyday hoops in 14k rose gold.",
        "category": "earring",
        "metal_type": "rose_gold",
        "metal_purity": "14k",
        "weight_grams": 2.4,
        "price": 12500,
        "mrp": 14000,
        "images": ["https://images.unsplash.com/photo-1535632066927-ab7c9ab60908"],
        "stock_quantity": 15,
    },
    {
        "name": "Sterling Charm Bracelet",
        "description": "925 silver link bracelet with three detachable charms.",
        "category": "bracelet",
        "metal_type": "silver",
        "metal_purity": "925_silver",
        "weight_grams": 11.0,
        "price": 4200,
        "mrp": 4200,
        "images": ["https://images.unsplash.com/photo-1611591437281-460bfbe1220a"],
        "stock_quantity": 20,
    },
    {
        "name": "Platinum Evil Eye Pendant",
        "description": "Minimal 950 platinum pendant with a sapphire evil eye.",
        "category": "pendant",
        "metal_type": "platinum",
        "metal_purity": "950_platinum",
        "weight_grams": 1.8,
        "stone_weight": 0.1,
        "stone_count": 1,
        "price": 21000,
        "mrp": 24500,
        "images": ["https://images.unsplash.com/photo-1602751584552-8ba73aad10e1"],
        "stock_quantity": 6,
    },
    {
        "name": "White Gold Rope Chain",
        "description": "18k white gold rope chain, 20 inch.",
        "category": "chain",
        "metal_type": "white_gold",
        "metal_purity": "18k",
        "weight_grams": 7.5,
        "price": 52000,
        "mrp": 58000,
        "images": ["https://images.unsplash.com/photo-1611085583191-a3b181a88401"],
        "stock_quantity": 5,
    },
]


@app.post("/seed")
def seed(storefront: Storefront = Depends(get_storefront)):
    if storefront.products.count() > 0:
        return {"seeded": False, "message": "Products already exist"}
    for p in DEMO_PRODUCTS:
        storefront.products.create_product(ProductForm(**p))
    # dev admin profile
    if storefront.settings.is_dev:
        storefront.profiles.get_or_create_profile("admin@test.com")
        storefront.profiles.set_admin("admin@test.com", True)
    return {"seeded": True, "products": storefront.products.count()}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
