import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config environment before the domain module is imported, and
    keep log files out of the working tree.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("LOG_DIR", "")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Fresh adapters before every test, empty stores after it."""
    from marketplace.notifications import reset_notifier, set_notifier
    from marketplace.notifications.fake_adapter import FakeNotifier
    from marketplace.payments.gateway import reset_gateway, set_gateway
    from marketplace.payments.gateway.fake_adapter import FakeGateway

    set_gateway(FakeGateway())
    set_notifier(FakeNotifier())

    yield

    from protean import current_domain

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    reset_gateway()
    reset_notifier()


@pytest.fixture
def gateway():
    from marketplace.payments.gateway import get_gateway

    return get_gateway()


@pytest.fixture
def notifier():
    from marketplace.notifications import get_notifier

    return get_notifier()


@pytest.fixture
def settings():
    from marketplace.settings import Settings

    return Settings(
        environment="test",
        gateway_timeout_seconds=0.5,
        gateway_max_attempts=3,
        gateway_backoff_seconds=0.0,
        checkout_expiry_minutes=30,
    )


@pytest.fixture
def sleeps():
    """Backoff delays requested by the gateway client."""
    return []


@pytest.fixture
def gateway_client(gateway, settings, sleeps):
    from marketplace.payments.client import PaymentGatewayClient

    return PaymentGatewayClient(gateway=gateway, settings=settings, sleep=sleeps.append)


@pytest.fixture
def register_magazine():
    """Factory that lists a magazine and returns its id."""
    from marketplace.catalogue.registration import RegisterMagazine
    from protean import current_domain

    def _register(title="Coastal Living", wholesale_price=12.50, retail_price=19.99, quantity=5, **overrides):
        command = RegisterMagazine(
            publisher_id=overrides.pop("publisher_id", "pub-001"),
            title=title,
            description=overrides.pop("description", f"{title} monthly issue"),
            retail_price=retail_price,
            wholesale_price=wholesale_price,
            available_quantity=quantity,
            **overrides,
        )
        return current_domain.process(command, asynchronous=False)

    return _register


@pytest.fixture
def available():
    """Current available quantity of a magazine."""
    from marketplace.catalogue.magazine import Magazine
    from protean import current_domain

    def _available(magazine_id):
        return current_domain.repository_for(Magazine).get(magazine_id).available_quantity

    return _available


@pytest.fixture
def lifecycle(gateway_client, notifier):
    from marketplace.ordering.lifecycle import OrderLifecycleManager

    return OrderLifecycleManager(client=gateway_client, notifier=notifier)


@pytest.fixture
def orchestrator(gateway_client, lifecycle, settings):
    from marketplace.ordering.checkout import CheckoutOrchestrator

    return CheckoutOrchestrator(client=gateway_client, lifecycle=lifecycle, settings=settings)


@pytest.fixture
def webhook_handler(gateway_client, lifecycle):
    from marketplace.payments.webhook import PaymentWebhookHandler

    return PaymentWebhookHandler(client=gateway_client, lifecycle=lifecycle)


@pytest.fixture
def refunds(gateway_client):
    from marketplace.ordering.refunds import OrderRefunds

    return OrderRefunds(client=gateway_client)


@pytest.fixture
def sweeper(gateway_client, lifecycle):
    from marketplace.ordering.reconciliation import ExpiredCheckoutSweeper

    return ExpiredCheckoutSweeper(client=gateway_client, lifecycle=lifecycle)


@pytest.fixture
def checkout(orchestrator):
    """Factory that checks out a cart for a retailer and returns the CheckoutResult."""

    def _checkout(items, retailer_id="ret-001", retailer_email="buyer@cornershop.example", **kwargs):
        return orchestrator.start_checkout(
            retailer_id=retailer_id,
            items=items,
            retailer_email=retailer_email,
            **kwargs,
        )

    return _checkout


@pytest.fixture
def paid_order(checkout, register_magazine, gateway, lifecycle):
    """A confirmed order for two copies of a 12.50 magazine."""
    from marketplace.ordering.order import OrderStatus

    magazine_id = register_magazine(wholesale_price=12.50, quantity=5)
    result = checkout([{"magazine_id": magazine_id, "quantity": 2}])
    gateway.complete_session(result.session_id)
    lifecycle.transition(result.order_id, OrderStatus.CONFIRMED, "payment-captured")
    return result


@pytest.fixture
def failing_release():
    """Factory that patches stock release to fail for the given magazines."""
    from unittest.mock import patch

    from marketplace.catalogue.repository import MagazineRepository

    real_release = MagazineRepository.release

    def _failing(*magazine_ids):
        def release(repo, magazine_id, order_id, quantity):
            if str(magazine_id) in magazine_ids:
                raise RuntimeError("datastore unavailable")
            return real_release(repo, magazine_id, order_id, quantity)

        return patch.object(MagazineRepository, "release", autospec=True, side_effect=release)

    return _failing
