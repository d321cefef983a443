"""Schema management for SQL-backed deployments.

Tests and local development run on Protean's in-memory provider, which
needs no schema. Production points the default database at PostgreSQL
(see ``[tool.protean.production]`` in pyproject.toml); these helpers create
and drop the ``magazine``, ``order`` and ``order_item`` tables there.
"""

from collections.abc import Iterator

from protean.domain import Domain
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

SQL_PROVIDERS = frozenset({"sqlite", "postgresql"})


def _sql_providers(domain: Domain) -> Iterator[tuple[object, Engine]]:
    for provider in domain.providers.values():
        if provider.conn_info["provider"] in SQL_PROVIDERS:
            yield provider, create_engine(provider.conn_info["database_uri"])


def _mapped_classes(domain: Domain, provider_name: str):
    records = list(domain.registry.aggregates.values()) + list(domain.registry.entities.values())
    return [record.cls for record in records if record.cls.meta_.provider == provider_name]


def setup_db(domain: Domain) -> None:
    """Create tables for Magazine, Order and OrderItem on every SQL provider."""
    with domain.domain_context():
        for provider, engine in _sql_providers(domain):
            # Building the DAO maps the class onto the provider's metadata
            for cls in _mapped_classes(domain, provider.name):
                domain.repository_for(cls)._dao  # noqa: B018
            provider._metadata.create_all(engine)


def drop_db(domain: Domain) -> None:
    with domain.domain_context():
        for provider, engine in _sql_providers(domain):
            provider._metadata.drop_all(engine)
