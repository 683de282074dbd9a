#!/usr/bin/env python3
"""Command-line administration for the donations ledger.

Usage:
    python -m donations_sdk.cli init-db
    python -m donations_sdk.cli generate-key
    python -m donations_sdk.cli add-gateway --church-id CHURCH --secret-key sk_live_... --webhook-key whsec_...
    python -m donations_sdk.cli close-batch --church-id CHURCH
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, List

from .database import (
    DonationBatchRepository,
    Gateway,
    GatewayRepository,
    close_db,
    get_db_context,
    init_db,
)
from .encryption import SecretCodec

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def add_gateway_async(
    church_id: str,
    secret_key: str,
    webhook_key: Optional[str],
    public_key: Optional[str],
    product_id: Optional[str],
    provider: str = "stripe",
) -> str:
    """Store encrypted gateway credentials for a church and return the gateway id."""
    codec = SecretCodec()
    await init_db(create_tables=False)
    try:
        async with get_db_context() as session:
            gateway = await GatewayRepository(session).save(
                Gateway(
                    church_id=church_id,
                    provider=provider,
                    private_key=codec.encrypt(secret_key),
                    webhook_key=codec.encrypt(webhook_key),
                    public_key=codec.encrypt(public_key),
                    product_id=product_id,
                )
            )
            return gateway.id
    finally:
        await close_db()


async def close_batch_async(church_id: str) -> Optional[str]:
    """Close the church's current batch; the next donation opens a new one."""
    await init_db(create_tables=False)
    try:
        async with get_db_context() as session:
            batch = await DonationBatchRepository(session).close_current(church_id)
            return batch.id if batch else None
    finally:
        await close_db()


async def init_db_async() -> None:
    await init_db(create_tables=True)
    await close_db()


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Donations ledger administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create all tables in DATABASE_URL")
    subparsers.add_parser("generate-key", help="Print a new GATEWAY_ENCRYPTION_KEY")

    gateway = subparsers.add_parser("add-gateway", help="Store encrypted gateway credentials")
    gateway.add_argument("--church-id", required=True)
    gateway.add_argument("--secret-key", required=True, help="Provider secret API key")
    gateway.add_argument("--webhook-key", help="Provider webhook signing secret")
    gateway.add_argument("--public-key", help="Provider publishable key")
    gateway.add_argument("--product-id", help="Provider product used for subscriptions")
    gateway.add_argument("--provider", default="stripe")

    close = subparsers.add_parser("close-batch", help="Close the church's current donation batch")
    close.add_argument("--church-id", required=True)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        if args.command == "generate-key":
            print(SecretCodec.generate_key())
        elif args.command == "init-db":
            asyncio.run(init_db_async())
            logger.info("Database initialized")
        elif args.command == "add-gateway":
            gateway_id = asyncio.run(add_gateway_async(
                church_id=args.church_id,
                secret_key=args.secret_key,
                webhook_key=args.webhook_key,
                public_key=args.public_key,
                product_id=args.product_id,
                provider=args.provider,
            ))
            logger.info(f"Added gateway {gateway_id} for church {args.church_id}")
        elif args.command == "close-batch":
            batch_id = asyncio.run(close_batch_async(args.church_id))
            if batch_id:
                logger.info(f"Closed batch {batch_id}")
            else:
                logger.info(f"Church {args.church_id} has no open batch")
    except ValueError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
