"""Shared test fixtures."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from backend.billing_plans import PlanCatalog
from backend.config import AppConfig, CorsConfig, RedirectConfig
from backend.main import app, get_config, get_provider
from backend.provider import SubscriptionProvider

TEST_PRICES = {
    "initiate": "price_initiate_test",
    "warrior": "price_warrior_test",
    "guardian": "price_guardian_test",
}

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeProvider(SubscriptionProvider):
    """Records calls; set customer_error / subscription_error to make a call fail."""

    def __init__(self):
        self.customers: List[Dict] = []
        self.subscriptions: List[Dict] = []
        self.customer_error: Optional[Exception] = None
        self.subscription_error: Optional[Exception] = None

    def create_customer(self, email, name, source, metadata=None):
        if self.customer_error is not None:
            raise self.customer_error
        self.customers.append({"email": email, "name": name, "source": source, "metadata": metadata})
        return f"cus_test_{len(self.customers)}"

    def create_subscription(self, customer_id, price_id, metadata=None):
        if self.subscription_error is not None:
            raise self.subscription_error
        self.subscriptions.append({"customer": customer_id, "price": price_id, "metadata": metadata})
        return f"sub_test_{len(self.subscriptions)}"


def make_config(**overrides) -> AppConfig:
    values = {
        "stripe_secret_key": "sk_test_1234567890abcdef",
        "plan_catalog": PlanCatalog(TEST_PRICES),
        "cors": CorsConfig(origin="https://shop.example.com", allow_credentials=True),
        "redirect": RedirectConfig(),
    }
    values.update(overrides)
    return AppConfig(**values)


def valid_body(**overrides) -> Dict:
    body = {
        "stripeToken": "tok_visa_1234567890",
        "name": "Taro Yamada",
        "email": "taro@example.com",
        "plan": "warrior",
    }
    body.update(overrides)
    return body


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def client(config, fake_provider):
    """TestClient wired to the fake provider and the test configuration."""
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_provider] = lambda: fake_provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
