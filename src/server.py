"""Protean Engine runner for the Sales domain.

Starts an Engine that processes Sales events asynchronously (order
notifications) when the domain is configured for async event processing.

Usage:
    python src/server.py
"""

import asyncio

from protean.server.engine import Engine


def _get_domain():
    from sales.domain import sales
    from sales.utils.logging import configure_logging

    configure_logging()
    sales.init()
    return sales


async def run():
    await Engine(_get_domain()).run()


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
