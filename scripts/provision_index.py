"""Create the knowledge base vector index on the search collection.

Run once per environment, after the collection and its data access policy
exist and before the first ingestion job:

    python scripts/provision_index.py --endpoint https://<id>.<region>.aoss.amazonaws.com

Exits non-zero if the index could not be created within the retry budget.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

import httpx

from backend.app.adapters.signing import AwsSigV4Auth
from backend.app.config import get_settings
from backend.app.docs.provisioner import IndexProvisioner, ProvisionConfig, ProvisionResult
from backend.app.errors import ProvisioningError
from backend.app.utils.logging import setup_logging

logger = logging.getLogger("provision_index")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--endpoint", help="Collection endpoint (default: COLLECTION_ENDPOINT)")
    parser.add_argument("--index-name", help="Index name (default: INDEX_NAME)")
    parser.add_argument("--region", help="AWS region used for signing (default: AWS_REGION)")
    parser.add_argument(
        "--no-grace",
        action="store_true",
        help="Skip the initial policy propagation wait (policy known to be in place)",
    )
    return parser.parse_args(argv)


async def provision(args: argparse.Namespace) -> ProvisionResult:
    settings = get_settings()
    config = ProvisionConfig.from_settings(settings)
    if args.index_name:
        config = replace(config, index_name=args.index_name)
    if args.no_grace:
        config = replace(config, grace_period_seconds=0.0)

    endpoint = args.endpoint or settings.collection_endpoint
    auth = AwsSigV4Auth.from_default_session(args.region or settings.aws_region)

    async with httpx.AsyncClient(
        auth=auth, timeout=settings.index_request_timeout_seconds
    ) as client:
        provisioner = IndexProvisioner(client, endpoint, config=config)
        logger.info(
            f"Provisioning {provisioner.index_url} "
            f"(worst case {config.worst_case_seconds:.0f}s)"
        )
        return await provisioner.ensure_index()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(get_settings().log_level)

    try:
        result = asyncio.run(provision(args))
    except ProvisioningError as e:
        logger.error(f"Provisioning failed: {e}")
        return 1

    action = "created" if result.created else "already existed"
    print(f"Index {result.index_name} {action} (attempts: {result.attempts})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
