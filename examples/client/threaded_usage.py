"""
Threaded usage example of BeaconClient.

This example keeps a leased short URL advertised from a background thread
while the main thread performs other operations.

Start a local service first with ``ephemurl serve --auth-secret demo``.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

# Add the project root to the path to import ephemurl
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ephemurl.client.client import BeaconClient
from ephemurl.common.exceptions import BeaconError


def error_callback(error: Exception) -> None:
    """Custom error handler for advertising errors."""
    logger = logging.getLogger(__name__)
    logger.error("Advertising error: %s", error)


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    client = BeaconClient(
        service_url="http://127.0.0.1:8000/",
        data_dir=Path.cwd() / ".ephemurl-demo",
        on_error_callback=error_callback,
        lease_refresh_margin_ms=7_000,
    )
    try:
        asyncio.run(client.sign_in("demo"))
        # Short URLs live 20 seconds, so the runner re-issues one every ~13 seconds
        record = client.add_leased_beacon(1, "demo-url", time_to_live=20)

        client.start_in_thread()
        logger.info("Advertising started in background thread")

        for i in range(6):
            time.sleep(10)
            current = client.get_beacon(record.record_id)
            lease = current.get_lease() if current else None
            logger.info(
                "Main thread working... Iteration %d, advertising %s",
                i + 1,
                lease.current_short_url if lease else None,
            )

        client.stop()
        logger.info("Threaded usage example completed")
    except BeaconError:
        logger.exception("Error")
        sys.exit(1)


if __name__ == "__main__":
    main()
