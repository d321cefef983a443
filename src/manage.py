"""Marketplace operations CLI.

Usage:
    python src/manage.py setup-db                   # Create tables (postgresql in production)
    python src/manage.py drop-db                    # Drop tables
    python src/manage.py sweep-expired              # Cancel or confirm expired pending orders
    python src/manage.py register-magazine \\
        --publisher pub-001 --title "Coastal Living" \\
        --retail-price 8.99 --wholesale-price 5.40 --quantity 200
"""

import argparse
import sys
from datetime import UTC, datetime


def setup_databases():
    """Create database tables for the configured provider."""
    from marketplace.domain import marketplace
    from marketplace.utils.db import setup_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Creating marketplace database schema...")
    setup_db(marketplace)
    print("Done.")


def drop_databases():
    """Drop database tables for the configured provider."""
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Dropping marketplace database schema...")
    drop_db(marketplace)
    print("Done.")


def sweep_expired(now=None):
    """Resolve every pending order whose reservation has expired."""
    from marketplace.domain import marketplace
    from marketplace.ordering.reconciliation import ExpiredCheckoutSweeper

    marketplace.init()
    with marketplace.domain_context():
        report = ExpiredCheckoutSweeper().sweep(now=now or datetime.now(UTC))

    print(f"Confirmed: {len(report.confirmed)}")
    print(f"Cancelled: {len(report.cancelled)}")
    print(f"Released:  {len(report.released)}")
    print(f"Skipped:   {len(report.skipped)}")
    return report


def register_magazine(publisher_id, title, retail_price, wholesale_price, quantity, description=None):
    """List a magazine for sale and print its id."""
    from marketplace.catalogue.registration import RegisterMagazine
    from marketplace.domain import marketplace

    marketplace.init()
    with marketplace.domain_context():
        magazine_id = marketplace.process(
            RegisterMagazine(
                publisher_id=publisher_id,
                title=title,
                description=description,
                retail_price=retail_price,
                wholesale_price=wholesale_price,
                available_quantity=quantity,
            ),
            asynchronous=False,
        )

    print(magazine_id)
    return magazine_id


def main(argv=None):
    parser = argparse.ArgumentParser(description="Magazine marketplace operations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep-expired", help="Resolve pending orders past their checkout expiry")

    register_parser = subparsers.add_parser("register-magazine", help="List a magazine for sale")
    register_parser.add_argument("--publisher", required=True, help="Publisher id")
    register_parser.add_argument("--title", required=True)
    register_parser.add_argument("--description")
    register_parser.add_argument("--retail-price", type=float, required=True)
    register_parser.add_argument("--wholesale-price", type=float, required=True)
    register_parser.add_argument("--quantity", type=int, default=0)

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "sweep-expired":
        report = sweep_expired()
        return 1 if report.skipped else 0
    elif args.command == "register-magazine":
        register_magazine(
            args.publisher,
            args.title,
            args.retail_price,
            args.wholesale_price,
            args.quantity,
            description=args.description,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
