import mongomock
import mongomock.gridfs
import pytest
from fastapi.testclient import TestClient

import main
from config import Settings
from emails import EmailSender
from errors import EmailDeliveryError
from payments import PaymentCollector, PaymentResult, SimulatedPaymentCollector
from schemas import Product
from shoppers import Storefront
from validation import ProductForm

mongomock.gridfs.enable_gridfs_integration()


class RecordingEmailSender(EmailSender):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, to, subject, html):
        if self.fail:
            raise EmailDeliveryError("Email send failed: 500 Internal Server Error")
        self.sent.append({"to": to, "subject": subject, "html": html})


class FixedPaymentCollector(PaymentCollector):
    def __init__(self, result: PaymentResult):
        self.result = result
        self.requests = []

    async def collect(self, request):
        self.requests.append(request)
        return self.result


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def settings():
    return Settings(app_env="development", jwt_secret="test-secret", shipping_cost=200)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def payments():
    return SimulatedPaymentCollector()


@pytest.fixture
def storefront(settings, db, payments, email_sender):
    return Storefront(settings, db, payments, email_sender)


@pytest.fixture
def client(storefront):
    main.app.dependency_overrides[main.get_storefront] = lambda: storefront
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_product():
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        data = {
            "id": f"prod-{counter['n']}",
            "name": "Gold Band Ring",
            "description": "Plain 22k band",
            "category": "ring",
            "metal_type": "gold",
            "metal_purity": "22k",
            "weight_grams": 4.0,
            "price": 10000,
            "mrp": 12000,
            "making_charges_saved": 2000,
            "images": ["https://img.example.com/ring.jpg"],
            "stock_quantity": 10,
        }
        data.update(overrides)
        return Product(**data)
    return _make


@pytest.fixture
def create_product(storefront):
    def _create(**overrides) -> Product:
        data = {
            "name": "Gold Band Ring",
            "description": "Plain 22k band",
            "category": "ring",
            "metal_type": "gold",
            "metal_purity": "22k",
            "weight_grams": 4.0,
            "price": 10000,
            "mrp": 12000,
            "images": ["https://img.example.com/ring.jpg"],
            "stock_quantity": 10,
        }
        data.update(overrides)
        return storefront.products.create_product(ProductForm(**data))
    return _create


@pytest.fixture
def checkout_form():
    return {
        "customer_name": "Priya Sharma",
        "customer_email": "priya@djewel.in",
        "customer_phone": "9876543210",
        "shipping_address": {
            "line1": "12 MG Road, Indiranagar",
            "line2": "Flat 4B",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560038",
            "country": "India",
        },
    }
