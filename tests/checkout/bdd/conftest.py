"""Shared BDD fixtures and step definitions for checkout scenarios."""

import pytest
from pytest_bdd import given, parsers, then

from checkout.catalog.port import Target, TargetKind
from checkout.intent import lifecycle, service
from checkout.intent.revalidation import CartLine


def ring_line(quantity=1):
    return CartLine(product_id="prod-ring", variant_id="var-ring-7", quantity=quantity, unit_price=1000.0)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured checkout errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the catalog has {quantity:d} unit of "{variant_id}" in stock'))
def catalog_stock(catalog, quantity, variant_id):
    catalog.set_stock(Target(TargetKind.VARIANT, variant_id), quantity)


@given(parsers.cfparse("the shopper has an open intent for {quantity:d} ring"), target_fixture="intent")
def open_intent(create_intent, quantity):
    return create_intent(lines=[ring_line(quantity)])


@given("payment has been started for the intent", target_fixture="payment_session")
def payment_started(intent):
    return service.initiate_payment(intent.id)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{variant_id}" has {quantity:d} units in stock'))
def stock_level(catalog, variant_id, quantity):
    assert catalog.get_stock(Target(TargetKind.VARIANT, variant_id)) == quantity


@then(parsers.cfparse('the intent status is "{status}"'))
def intent_status(intent, status):
    assert lifecycle.load(intent.id).status == status
