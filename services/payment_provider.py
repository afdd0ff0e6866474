"""
Payment Provider Adapter - thin async wrapper over the Stripe SDK
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

import stripe

from config.settings import settings
from errors import PaymentProviderError

logger = logging.getLogger(__name__)

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")

TrialEnd = Union[datetime, str]


class PaymentProvider:
    """
    Interface the sweeper, webhook reconciliation and billing routes depend on.
    Every method raises errors.PaymentProviderError on failure or timeout.
    """

    async def create_customer(self, email: str, metadata: dict, idempotency_key: Optional[str] = None) -> str:
        raise NotImplementedError

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_end: TrialEnd,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> str:
        raise NotImplementedError

    async def cancel_subscription(self, subscription_id: str) -> str:
        raise NotImplementedError

    async def get_subscription(self, subscription_id: str) -> str:
        raise NotImplementedError

    async def create_checkout_session(
        self, customer_id: str, price_id: str, success_url: str, cancel_url: str, metadata: dict
    ) -> str:
        raise NotImplementedError

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        raise NotImplementedError


class StripePaymentProvider(PaymentProvider):
    """
    Stripe implementation. SDK calls are blocking, so each one runs in a
    worker thread under a hard timeout.
    """

    def __init__(self, api_key: Optional[str] = None, timeout_seconds: Optional[float] = None):
        """
        Args:
            api_key: Stripe secret key (defaults to STRIPE_SECRET_KEY)
            timeout_seconds: Upper bound for a single Stripe call
        """
        self.api_key = api_key or settings.stripe_secret_key
        self.timeout_seconds = timeout_seconds or settings.stripe_timeout_seconds

    async def _call(self, operation: str, fn, *args, **params):
        if not self.api_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY is not set")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, api_key=self.api_key, **params),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Stripe {operation} timed out after {self.timeout_seconds}s")
            raise PaymentProviderError(f"Stripe {operation} timed out")
        except stripe.StripeError as e:
            logger.error(f"Stripe {operation} failed: {e}")
            raise PaymentProviderError(f"Stripe {operation} failed: {e.user_message or e}") from e

    async def create_customer(self, email: str, metadata: dict, idempotency_key: Optional[str] = None) -> str:
        params = {"email": email, "metadata": metadata}
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        customer = await self._call("customer create", stripe.Customer.create, **params)
        return customer.id

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_end: TrialEnd,
        metadata: dict,
        idempotency_key: Optional[str] = None,
    ) -> str:
        """
        Create a subscription for an existing customer.

        Args:
            customer_id: Stripe customer id
            price_id: Stripe price id
            trial_end: Datetime, or "now" to start billing immediately
            metadata: Tags stored on the subscription (profile_id for traceability)
            idempotency_key: Replays with the same key return the original subscription

        Returns:
            Stripe subscription id
        """
        params = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "trial_end": trial_end if isinstance(trial_end, str) else int(trial_end.timestamp()),
            "metadata": metadata,
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        subscription = await self._call("subscription create", stripe.Subscription.create, **params)
        return subscription.id

    async def cancel_subscription(self, subscription_id: str) -> str:
        subscription = await self._call("subscription cancel", stripe.Subscription.cancel, subscription_id)
        return subscription.status

    async def get_subscription(self, subscription_id: str) -> str:
        subscription = await self._call("subscription retrieve", stripe.Subscription.retrieve, subscription_id)
        return subscription.status

    async def create_checkout_session(
        self, customer_id: str, price_id: str, success_url: str, cancel_url: str, metadata: dict
    ) -> str:
        session = await self._call(
            "checkout session create",
            stripe.checkout.Session.create,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return session.url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            "billing portal session create",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session.url


def get_payment_provider() -> PaymentProvider:
    """FastAPI dependency; tests override it with a fake provider."""
    return StripePaymentProvider()
