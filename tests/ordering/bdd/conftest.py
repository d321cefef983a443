"""Shared BDD fixtures and step definitions for order processing."""

import json

import pytest
from marketplace.errors import MarketplaceError
from marketplace.ordering.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then, when


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured marketplace errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a magazine "{title}" priced {price:f} wholesale with {quantity:d} copies'),
    target_fixture="magazine_id",
)
def listed_magazine(register_magazine, title, price, quantity):
    return register_magazine(title=title, wholesale_price=price, quantity=quantity)


@given(parsers.cfparse("the retailer checks out {quantity:d} copies"), target_fixture="checkout_result")
def checked_out(checkout, magazine_id, quantity):
    return checkout([{"magazine_id": magazine_id, "quantity": quantity}])


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the retailer pays on the hosted page")
def pay(gateway, checkout_result):
    gateway.complete_session(checkout_result.session_id)


@when(parsers.cfparse('the gateway reports the payment "{status}"'))
def gateway_reports(webhook_handler, checkout_result, status):
    body = json.dumps({"sessionId": checkout_result.session_id, "status": status}).encode()
    webhook_handler.handle_webhook(body, "test-signature")


@when(parsers.cfparse('the order is moved to "{status}"'))
def move_order(lifecycle, checkout_result, status, error):
    try:
        lifecycle.transition(checkout_result.order_id, status, "manual")
    except MarketplaceError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def order_status(checkout_result, status):
    order = current_domain.repository_for(Order).get_by_id(checkout_result.order_id)
    assert order.status == status


@then(parsers.cfparse("{quantity:d} copies are available"))
def copies_available(available, magazine_id, quantity):
    assert available(magazine_id) == quantity
