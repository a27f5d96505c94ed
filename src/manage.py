"""Carmarket management CLI.

Schema management plus the maintenance sweeps an external scheduler runs.

Usage:
    python src/manage.py setup-db            # Create all tables
    python src/manage.py drop-db             # Drop all tables
    python src/manage.py expire-orders       # Cancel orders with an overdue deposit
    python src/manage.py dispatch-refunds    # Send pending refunds to the gateway
    python src/manage.py refund-gaps         # List canceled orders missing a refund entry
"""

import argparse
import sys
from datetime import datetime


def _domain():
    from sales.domain import sales
    from sales.utils.logging import configure_logging

    configure_logging()
    sales.init()
    return sales


def setup_database():
    from sales.utils.db import setup_db

    sales = _domain()
    print("Creating sales database schema...")
    setup_db(sales)
    print("Done.")


def drop_database():
    from sales.utils.db import drop_db

    sales = _domain()
    print("Dropping sales database schema...")
    drop_db(sales)
    print("Done.")


def expire_orders(as_of=None):
    from sales.order.expiry import ExpireUnpaidOrders

    sales = _domain()
    with sales.domain_context():
        expired = sales.process(ExpireUnpaidOrders(as_of=as_of), asynchronous=False)
    print(f"Expired {expired} order(s).")


def dispatch_refunds():
    from sales.ledger.refunds import DispatchPendingRefunds

    sales = _domain()
    with sales.domain_context():
        dispatched = sales.process(DispatchPendingRefunds(), asynchronous=False)
    print(f"Dispatched {dispatched} refund(s).")


def report_refund_gaps():
    from sales.ledger.reconciliation import find_refund_gaps

    sales = _domain()
    with sales.domain_context():
        gaps = find_refund_gaps()
    for order_id in gaps:
        print(order_id)
    print(f"{len(gaps)} order(s) flagged refunded without a refund transaction.")
    return gaps


def main():
    parser = argparse.ArgumentParser(description="Carmarket management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    expire_parser = subparsers.add_parser("expire-orders", help="Cancel orders whose deposit is overdue")
    expire_parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="ISO timestamp to evaluate due dates against (default: now)",
    )

    subparsers.add_parser("dispatch-refunds", help="Send pending refunds to the payment gateway")
    subparsers.add_parser("refund-gaps", help="List canceled orders flagged refunded without a refund entry")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "expire-orders":
        expire_orders(args.as_of)
    elif args.command == "dispatch-refunds":
        dispatch_refunds()
    elif args.command == "refund-gaps":
        if report_refund_gaps():
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
