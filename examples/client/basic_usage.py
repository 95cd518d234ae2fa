"""
Basic usage example of BeaconClient.

This example signs in to a beacon service, registers a rotating beacon and
asks the service which beacon its current token belongs to.

Start a local service first with ``ephemurl serve --auth-secret demo``.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path to import ephemurl
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ephemurl.client.client import BeaconClient
from ephemurl.common.exceptions import BeaconError


async def run(client: BeaconClient, logger: logging.Logger) -> None:
    await client.sign_in("demo")
    offset = await client.sync_clock()
    logger.info("Service clock offset: %d ms", offset)

    record = await client.register_beacon(rotation_exponent=4, tag="demo")
    token = client.current_token(record)
    logger.info("Beacon %s broadcasts token %s", record.server_id, token)

    if token is not None:
        info = await client.check_token(token)
        logger.info("Service resolved %s to beacon %s", token, info.beacon)


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    client = BeaconClient(
        service_url="http://127.0.0.1:8000/",
        data_dir=Path.cwd() / ".ephemurl-demo",
        log_level=logging.INFO,
    )
    try:
        asyncio.run(run(client, logger))
        logger.info("Basic usage example completed")
    except BeaconError:
        logger.exception("Error")
        sys.exit(1)


if __name__ == "__main__":
    main()
