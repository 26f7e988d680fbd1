"""Checkout session initiator tests"""
import json
import re
from unittest.mock import Mock, patch

import pytest
import stripe

from app.core.config import settings
from app.core.exceptions import ExternalProviderError, NotFoundError, ValidationError
from app.services.checkout_service import (
    checkout_snapshot_key, create_checkout_session, generate_order_id, get_checkout_session_status
)

from conftest import build_item, build_shipping

SUCCESS_URL = "https://ranch.example/checkout/success"
CANCEL_URL = "https://ranch.example/checkout"


def _create(kv_store, items=None, discount_percent=10, shipping_cost=4.99):
    return create_checkout_session(
        kv_store,
        items=items if items is not None else [build_item()],
        shipping=build_shipping(),
        shipping_cost=shipping_cost,
        discount_percent=discount_percent,
        success_url=SUCCESS_URL,
        cancel_url=CANCEL_URL,
    )


@pytest.fixture
def mock_session_create():
    with patch("stripe.checkout.Session.create") as create:
        create.return_value = {"id": "cs_test_abc123", "url": "https://checkout.stripe.com/c/pay/cs_test_abc123"}
        yield create


def test_generate_order_id_format():
    assert re.match(r"^RANCH-\d{13}$", generate_order_id())


@pytest.mark.critical
class TestCreateCheckoutSession:

    def test_returns_session_and_order_id(self, kv_store, mock_session_create):
        result = _create(kv_store)

        assert result["sessionId"] == "cs_test_abc123"
        assert result["url"].startswith("https://checkout.stripe.com/")
        assert result["orderId"].startswith("RANCH-")

    def test_line_items_are_discounted_in_cents(self, kv_store, mock_session_create):
        _create(kv_store)

        params = mock_session_create.call_args.kwargs
        product_line, shipping_line = params["line_items"]
        assert product_line["price_data"]["unit_amount"] == 1800  # $20 less 10%
        assert product_line["quantity"] == 2
        assert product_line["price_data"]["product_data"]["name"] == "Punk Caterpillar Tee"
        assert shipping_line["price_data"]["product_data"]["name"] == "Shipping"
        assert shipping_line["price_data"]["unit_amount"] == 499

    def test_session_parameters(self, kv_store, mock_session_create):
        result = _create(kv_store)

        params = mock_session_create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["customer_email"] == build_shipping()["email"]
        assert params["success_url"] == f"{SUCCESS_URL}?session_id={{CHECKOUT_SESSION_ID}}"
        assert params["cancel_url"] == CANCEL_URL
        assert params["metadata"]["orderId"] == result["orderId"]
        assert params["metadata"]["shippingZip"] == "78701"
        assert params["payment_intent_data"]["metadata"]["orderId"] == result["orderId"]

    def test_no_shipping_line_when_free(self, kv_store, mock_session_create):
        _create(kv_store, shipping_cost=0)

        assert len(mock_session_create.call_args.kwargs["line_items"]) == 1

    def test_snapshot_written_with_ttl(self, kv_store, fake_redis, mock_session_create):
        result = _create(kv_store)

        key = checkout_snapshot_key(result["orderId"])
        snapshot = json.loads(fake_redis.get(key))
        assert snapshot["items"][0]["productId"] == "cr-punk-tee"
        assert snapshot["shippingCost"] == 4.99
        assert snapshot["discountPercent"] == 10
        assert 0 < fake_redis.ttl(key) <= settings.CHECKOUT_SNAPSHOT_TTL

    def test_claimed_discount_is_clamped(self, kv_store, fake_redis, mock_session_create):
        result = _create(kv_store, items=[build_item(discountPercent=40)], discount_percent=40)

        snapshot = json.loads(fake_redis.get(checkout_snapshot_key(result["orderId"])))
        assert snapshot["discountPercent"] == 15
        assert snapshot["items"][0]["discountPercent"] == 15
        params = mock_session_create.call_args.kwargs
        assert params["line_items"][0]["price_data"]["unit_amount"] == 1700
        assert params["metadata"]["discountPercent"] == "15"

    def test_stripe_error_raises_provider_error(self, kv_store, mock_session_create):
        mock_session_create.side_effect = stripe.StripeError("card_declined")

        with pytest.raises(ExternalProviderError) as exc_info:
            _create(kv_store)
        assert exc_info.value.provider == "stripe"

    def test_session_without_url_raises(self, kv_store, mock_session_create):
        mock_session_create.return_value = {"id": "cs_test_abc123", "url": None}

        with pytest.raises(ExternalProviderError):
            _create(kv_store)

    def test_empty_cart_rejected(self, kv_store, mock_session_create):
        with pytest.raises(ValidationError):
            _create(kv_store, items=[])
        mock_session_create.assert_not_called()

    def test_incomplete_item_rejected(self, kv_store, mock_session_create):
        item = build_item()
        del item["printfulVariantId"]

        with pytest.raises(ValidationError):
            _create(kv_store, items=[item])


class TestCheckoutSessionStatus:

    def test_returns_status(self):
        session = {
            "id": "cs_test_abc123",
            "status": "complete",
            "payment_status": "paid",
            "customer_email": "delivered@resend.dev",
            "amount_total": 5499,
            "metadata": {"orderId": "RANCH-1736901234567"},
        }
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            result = get_checkout_session_status("cs_test_abc123")

        assert result == {
            "status": "complete",
            "paymentStatus": "paid",
            "orderId": "RANCH-1736901234567",
            "customerEmail": "delivered@resend.dev",
            "amountTotal": 54.99,
        }

    def test_unknown_session_is_not_found(self):
        error = stripe.InvalidRequestError("No such checkout.session", param="id")
        with patch("stripe.checkout.Session.retrieve", side_effect=error):
            with pytest.raises(NotFoundError):
                get_checkout_session_status("cs_missing")

    def test_stripe_outage_is_provider_error(self):
        with patch("stripe.checkout.Session.retrieve", side_effect=stripe.StripeError("timeout")):
            with pytest.raises(ExternalProviderError):
                get_checkout_session_status("cs_test_abc123")
