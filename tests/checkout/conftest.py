"""Shared fixtures for the checkout domain.

Every test runs inside a fresh domain context with empty stores and its own
in-memory collaborators (catalog, gateway, audit sink, settings).
"""

import os
from datetime import UTC, datetime

import pytest
from protean import current_domain

from checkout.audit import InMemoryAuditSink, reset_audit_sink, set_audit_sink
from checkout.catalog import reset_catalog, set_catalog
from checkout.catalog.memory_adapter import InMemoryCatalog
from checkout.config import ConfigService, InMemorySettings, reset_config, set_config
from checkout.discount.discount import Discount
from checkout.gateway import FakeGateway, reset_gateway, set_gateway
from checkout.intent import service
from checkout.intent.revalidation import CartLine


@pytest.fixture(scope="session")
def _checkout_domain(request):
    """Initialize the checkout domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from checkout.domain import checkout

    checkout.init()
    return checkout


@pytest.fixture(autouse=True)
def run_around_tests(_checkout_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _checkout_domain.domain_context()
    ctx.push()

    yield

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def settings():
    """Tax 18%, free shipping from 5000, flat shipping 50 below it."""
    source = InMemorySettings(shipping_charge=50)
    set_config(ConfigService(source, ttl_seconds=0))
    yield source
    reset_config()


@pytest.fixture(autouse=True)
def catalog():
    store = InMemoryCatalog()
    store.add_product(
        "prod-ring",
        "Gold Ring",
        base_price=900.0,
        category="rings",
        metal_type="gold",
        weight=4.0,
    )
    store.add_variant(
        "var-ring-7",
        "prod-ring",
        sku="RING-7",
        stock=5,
        base_price=950.0,
        price_override=1000.0,
        size="7",
        color="yellow",
        finish="polished",
        weight=4.0,
    )
    store.add_product("prod-chain", "Silver Chain", base_price=500.0, stock=10, metal_type="silver")
    set_catalog(store)
    yield store
    reset_catalog()


@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture(autouse=True)
def audit_sink():
    sink = InMemoryAuditSink()
    set_audit_sink(sink)
    yield sink
    reset_audit_sink()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def now():
    return datetime.now(UTC)


@pytest.fixture()
def make_discount():
    def _make(code="SAVE10", discount_type="percentage", value=10.0, **kwargs):
        discount = Discount.create(code=code, discount_type=discount_type, value=value, **kwargs)
        current_domain.repository_for(Discount).add(discount)
        return current_domain.repository_for(Discount).get(discount.id)

    return _make


@pytest.fixture()
def create_intent(now):
    """Create an intent for one ring by default."""

    def _create(user_id="user-1", lines=None, discount_code=None, as_of=None, **kwargs):
        lines = lines or [CartLine(product_id="prod-ring", variant_id="var-ring-7", quantity=1, unit_price=1000.0)]
        return service.create_intent(
            user_id=user_id,
            lines=lines,
            shipping_address_id=kwargs.pop("shipping_address_id", "addr-1"),
            discount_code=discount_code,
            as_of=as_of or now,
            **kwargs,
        )

    return _create
