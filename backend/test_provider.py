"""Stripe adapter with the stripe SDK mocked out."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from backend.pipeline import SubscriptionPipeline
from backend.provider import API_ERROR, CARD_ERROR, ProviderError, StripeSubscriptionProvider
from backend.stripe_utils import DEFAULT_API_ERROR_MESSAGE
from conftest import make_config, valid_body


@pytest.fixture
def provider():
    return StripeSubscriptionProvider(api_key="sk_test_abc")


class TestStripeSubscriptionProvider:
    @patch("backend.provider.stripe.Customer.create")
    def test_create_customer(self, mock_create, provider):
        mock_create.return_value = SimpleNamespace(id="cus_123")

        customer_id = provider.create_customer(
            email="a@example.com", name="A", source="tok_visa", metadata={"plan": "warrior"}
        )

        assert customer_id == "cus_123"
        mock_create.assert_called_once_with(
            api_key="sk_test_abc",
            email="a@example.com",
            name="A",
            source="tok_visa",
            metadata={"plan": "warrior"},
        )

    @patch("backend.provider.stripe.Subscription.create")
    def test_create_subscription(self, mock_create, provider):
        mock_create.return_value = SimpleNamespace(id="sub_456")

        subscription_id = provider.create_subscription("cus_123", "price_w", metadata={"plan": "warrior"})

        assert subscription_id == "sub_456"
        mock_create.assert_called_once_with(
            api_key="sk_test_abc",
            customer="cus_123",
            items=[{"price": "price_w"}],
            metadata={"plan": "warrior"},
        )

    @patch("backend.provider.stripe.Subscription.create")
    def test_create_subscription_without_metadata(self, mock_create, provider):
        mock_create.return_value = SimpleNamespace(id="sub_789")
        provider.create_subscription("cus_123", "price_w")
        assert "metadata" not in mock_create.call_args.kwargs

    @patch("backend.provider.stripe.Customer.create")
    def test_card_error_translated(self, mock_create, provider):
        mock_create.side_effect = stripe.CardError(
            "Your card was declined.", param="", code="card_declined", http_status=402
        )

        with pytest.raises(ProviderError) as exc_info:
            provider.create_customer(email="a@example.com", name="A", source="tok_chargeDeclined")

        error = exc_info.value
        assert error.error_type == CARD_ERROR
        assert error.is_card_error
        assert error.code == "card_declined"
        assert error.message == "Your card was declined."
        assert error.http_status == 402

    @patch("backend.provider.stripe.Subscription.create")
    def test_invalid_request_is_api_error(self, mock_create, provider):
        mock_create.side_effect = stripe.InvalidRequestError("No such price: 'price_x'", param="items")

        with pytest.raises(ProviderError) as exc_info:
            provider.create_subscription("cus_123", "price_x")

        assert exc_info.value.error_type == API_ERROR
        assert not exc_info.value.is_card_error
        assert exc_info.value.message == "No such price: 'price_x'"

    @patch("backend.provider.stripe.Customer.create")
    def test_connection_error_is_api_error(self, mock_create, provider):
        mock_create.side_effect = stripe.APIConnectionError("")

        with pytest.raises(ProviderError) as exc_info:
            provider.create_customer(email="a@example.com", name="A", source="tok_visa")

        assert exc_info.value.error_type == API_ERROR
        assert exc_info.value.message is None

    @patch("backend.provider.stripe.Customer.create")
    def test_connection_error_without_message_gets_generic_envelope(self, mock_create, provider):
        mock_create.side_effect = stripe.APIConnectionError("")
        pipeline = SubscriptionPipeline(make_config(), provider)

        result = pipeline.handle("POST", valid_body())

        assert result.status_code == 500
        assert result.body == {
            "status": "error",
            "error_type": "api_error",
            "message": DEFAULT_API_ERROR_MESSAGE,
        }


def test_provider_error_repr():
    error = ProviderError(CARD_ERROR, message="declined", code="card_declined")
    assert "card_declined" in repr(error)
    assert str(error) == "declined"
