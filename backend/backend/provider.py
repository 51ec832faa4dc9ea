"""Payment provider abstraction layer.

The pipeline only needs two calls: create a customer, then a subscription.
StripeSubscriptionProvider is the production implementation; tests plug in a fake.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import stripe

logger = logging.getLogger(__name__)

CARD_ERROR = "card_error"
API_ERROR = "api_error"


class ProviderError(Exception):
    """Failure reported by the payment provider.

    error_type is CARD_ERROR when the card itself was refused (code carries the
    machine-readable reason), API_ERROR for everything else.
    """

    def __init__(
        self,
        error_type: str,
        message: Optional[str] = None,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message or error_type)
        self.error_type = error_type
        self.message = message
        self.code = code
        self.http_status = http_status

    @property
    def is_card_error(self) -> bool:
        return self.error_type == CARD_ERROR

    def __repr__(self) -> str:
        return (
            f"ProviderError(type={self.error_type!r}, code={self.code!r}, "
            f"http_status={self.http_status!r}, message={self.message!r})"
        )


class SubscriptionProvider(ABC):
    """Abstract base class for subscription providers."""

    @abstractmethod
    def create_customer(
        self,
        email: str,
        name: str,
        source: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Create a customer with the tokenized card as default source. Returns the customer id."""
        pass  # pragma: no cover

    @abstractmethod
    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Subscribe the customer to a recurring price. Returns the subscription id."""
        pass  # pragma: no cover


class StripeSubscriptionProvider(SubscriptionProvider):
    """Stripe implementation (Customers + Subscriptions API)."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_customer(
        self,
        email: str,
        name: str,
        source: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        logger.info("[STRIPE] Creating customer")
        try:
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                name=name,
                source=source,
                metadata=metadata or {},
            )
        except stripe.StripeError as e:
            raise _translate(e) from e
        logger.info(f"[STRIPE] Customer created: {customer.id}")
        return customer.id

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        logger.info(f"[STRIPE] Creating subscription for customer={customer_id}, price={price_id}")
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
        }
        if metadata:
            params["metadata"] = metadata
        try:
            subscription = stripe.Subscription.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise _translate(e) from e
        logger.info(f"[STRIPE] Subscription created: {subscription.id}")
        return subscription.id


def _translate(error: stripe.StripeError) -> ProviderError:
    """Collapse the Stripe exception hierarchy into card / api errors."""
    message = error.user_message or None
    if isinstance(error, stripe.CardError):
        return ProviderError(CARD_ERROR, message=message, code=error.code, http_status=error.http_status)
    return ProviderError(API_ERROR, message=message, code=error.code, http_status=error.http_status)
