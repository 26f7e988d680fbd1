"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import json
import os
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import Mock, patch

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# The app engine is built at import; keep it off Postgres in tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from app.core.config import settings
from app.db.redis import RedisKVStore, get_kv_store
from app.db.session import get_db
from app.main import app
from app.models import Base
from app.models.order import Order, OrderLineItem, OrderStatus
from app.services.checkout_service import checkout_snapshot_key
from app.services.printful_service import PrintfulClient, get_printful_client

TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_SESSION_TOKEN = "3f2b8c1e-9a4d-4e6f-8b7a-1c2d3e4f5a6b"
PRINTFUL_ORDER_ID = 12345

# Resend test address, see https://resend.com/docs/dashboard/emails/send-test-emails
RESEND_TEST_DELIVERED = "delivered@resend.dev"


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def fake_redis():
    """Fresh fakeredis per test, so rate limit windows never leak between tests"""
    return fakeredis.FakeStrictRedis(decode_responses=True)


@pytest.fixture(scope="function")
def kv_store(fake_redis) -> RedisKVStore:
    return RedisKVStore(fake_redis)


@pytest.fixture(scope="function")
def mock_printful() -> Mock:
    """Printful client double: draft creation and confirm succeed"""
    printful = Mock(spec=PrintfulClient)
    printful.create_order.return_value = {"id": PRINTFUL_ORDER_ID, "status": "draft"}
    printful.confirm_order.return_value = {"id": PRINTFUL_ORDER_ID, "status": "pending"}
    printful.estimate_order.return_value = {
        "costs": {
            "currency": "USD",
            "subtotal": "40.00",
            "shipping": "4.99",
            "tax": "0.00",
            "total": "44.99",
        },
        "shipping_date": "2026-02-01",
    }
    printful.list_orders.return_value = []
    return printful


@pytest.fixture(scope="function", autouse=True)
def webhook_secrets():
    """Real Stripe signature verification against a known test secret"""
    with patch.object(settings, "STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET):
        with patch.object(settings, "PRINTFUL_WEBHOOK_SECRET", ""):
            with patch.object(settings, "RESEND_API_KEY", "re_test_key"):
                yield


@pytest.fixture(scope="function", autouse=True)
def mock_email_service():
    """Mock email service (Resend) to avoid sending actual emails"""
    with patch('app.services.email_service.resend') as mock_resend:
        mock_resend.Emails.send = Mock(return_value={"id": "email_test123"})
        yield mock_resend


@pytest.fixture(scope="function")
def client(db_session: Session, kv_store: RedisKVStore, fake_redis, mock_printful) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database, fakeredis store and a Printful double"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_kv_store] = lambda: kv_store
    app.dependency_overrides[get_printful_client] = lambda: mock_printful

    try:
        # Lifespan touches the real database and Redis; point both at test doubles
        with patch('app.main.init_db'):
            with patch('app.main.get_redis_client', return_value=fake_redis):
                with TestClient(app) as test_client:
                    yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()


# ============================================================================
# PAYLOAD BUILDERS
# ============================================================================

def sign_stripe_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET) -> str:
    """Build a stripe-signature header the way Stripe does"""
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def build_checkout_completed_event(
    order_id: str,
    payment_status: str = "paid",
    event_id: str = "evt_test_checkout_1"
) -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_abc123",
                "object": "checkout.session",
                "payment_status": payment_status,
                "payment_intent": "pi_test_abc123",
                "customer_email": RESEND_TEST_DELIVERED,
                "amount_total": 5499,
                "metadata": {"orderId": order_id},
            }
        },
    })


def build_item(**overrides) -> Dict[str, Any]:
    item = {
        "productId": "cr-punk-tee",
        "productName": "Punk Caterpillar Tee",
        "productImage": "https://cdn.example.com/punk.png",
        "variantId": "cr-punk-tee-m-black",
        "variantSize": "M",
        "variantColor": "Black",
        "printfulVariantId": 4012,
        "unitPrice": 20.0,
        "quantity": 2,
        "discountPercent": 10,
    }
    item.update(overrides)
    return item


def build_shipping(**overrides) -> Dict[str, Any]:
    shipping = {
        "email": RESEND_TEST_DELIVERED,
        "name": "Alex Farmer",
        "address": "1 Ranch Road",
        "address2": "",
        "city": "Austin",
        "state": "TX",
        "zip": "78701",
        "country": "US",
        "phone": "",
    }
    shipping.update(overrides)
    return shipping


@pytest.fixture
def seed_snapshot(kv_store) -> Callable[..., Dict[str, Any]]:
    """Write a CartSnapshot the way checkout does"""

    def _seed(
        order_id: str,
        items: List[Dict[str, Any]] = None,
        discount_percent: float = 10,
        shipping_cost: float = 0
    ) -> Dict[str, Any]:
        snapshot = {
            "items": items if items is not None else [build_item()],
            "shipping": build_shipping(),
            "shippingCost": shipping_cost,
            "discountPercent": discount_percent,
            "createdAt": "2026-01-15T12:00:00+00:00",
        }
        kv_store.set(checkout_snapshot_key(order_id), json.dumps(snapshot), settings.CHECKOUT_SNAPSHOT_TTL)
        return snapshot

    return _seed


@pytest.fixture
def confirmed_order(db_session: Session) -> Order:
    """A materialized order awaiting fulfillment events"""
    order = Order(
        id="RANCH-1736901234567",
        customer_email=RESEND_TEST_DELIVERED,
        customer_name="Alex Farmer",
        shipping_address_line1="1 Ranch Road",
        shipping_city="Austin",
        shipping_state="TX",
        shipping_zip="78701",
        shipping_country="US",
        subtotal=40.0,
        discount_amount=4.0,
        shipping_cost=0,
        total=36.0,
        external_fulfillment_order_id=PRINTFUL_ORDER_ID,
        external_fulfillment_status=OrderStatus.CONFIRMED.value,
        payment_session_id="cs_test_abc123",
    )
    order.items.append(OrderLineItem(
        product_id="cr-punk-tee",
        product_name="Punk Caterpillar Tee",
        variant_id="cr-punk-tee-m-black",
        variant_size="M",
        variant_color="Black",
        unit_price=20.0,
        quantity=2,
        discount_percent=10,
        subtotal=36.0,
        external_variant_id=4012,
    ))
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order
