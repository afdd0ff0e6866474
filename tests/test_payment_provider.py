"""
Tests for the Stripe adapter: parameter mapping and error translation
"""
import time
from types import SimpleNamespace

import pytest
import stripe

from errors import PaymentProviderError
from services.payment_provider import StripePaymentProvider


@pytest.mark.asyncio
async def test_create_subscription_bills_immediately(monkeypatch):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return SimpleNamespace(id="sub_123")

    monkeypatch.setattr(stripe.Subscription, "create", fake_create)
    provider = StripePaymentProvider(api_key="sk_test_dummy", timeout_seconds=5)

    subscription_id = await provider.create_subscription(
        "cus_1", "price_basic", trial_end="now", metadata={"profile_id": "p1"}, idempotency_key="key-1"
    )

    assert subscription_id == "sub_123"
    assert captured["customer"] == "cus_1"
    assert captured["items"] == [{"price": "price_basic"}]
    assert captured["trial_end"] == "now"
    assert captured["idempotency_key"] == "key-1"
    assert captured["api_key"] == "sk_test_dummy"


@pytest.mark.asyncio
async def test_stripe_error_is_translated(monkeypatch):
    def declined(**params):
        raise stripe.CardError("Your card was declined.", param=None, code="card_declined")

    monkeypatch.setattr(stripe.Customer, "create", declined)
    provider = StripePaymentProvider(api_key="sk_test_dummy", timeout_seconds=5)

    with pytest.raises(PaymentProviderError, match="declined"):
        await provider.create_customer("lawyer@example.com", metadata={})


@pytest.mark.asyncio
async def test_slow_call_times_out(monkeypatch):
    def slow(*args, **params):
        time.sleep(0.5)
        return SimpleNamespace(status="active")

    monkeypatch.setattr(stripe.Subscription, "retrieve", slow)
    provider = StripePaymentProvider(api_key="sk_test_dummy", timeout_seconds=0.05)

    with pytest.raises(PaymentProviderError, match="timed out"):
        await provider.get_subscription("sub_1")


@pytest.mark.asyncio
async def test_missing_api_key_fails_fast(monkeypatch):
    monkeypatch.setattr("services.payment_provider.settings.stripe_secret_key", None)
    provider = StripePaymentProvider()

    with pytest.raises(PaymentProviderError):
        await provider.get_subscription("sub_1")
