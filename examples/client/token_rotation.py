"""
Token rotation example.

This example shows how a beacon's public token changes once per rotation
period, computed offline from an identity key and epoch.
"""

import logging
import os
import sys
import time
from pathlib import Path

# Add the project root to the path to import ephemurl
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ephemurl.common import tokens


def main() -> None:
    # Configure logging
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    identity_key = os.urandom(32)
    exponent = 2  # 4 second periods
    epoch = int(time.time())

    for _ in range(5):
        now = time.time()
        raw = tokens.compute_token(identity_key, exponent, epoch, now)
        logger.info(
            "Counter %d broadcasts %s, next rotation in %.1fs",
            tokens.rotation_counter(exponent, epoch, now),
            tokens.advertised_url(raw, "http://u-c.info/"),
            tokens.time_until_next_rotation(epoch, exponent, now),
        )
        time.sleep(tokens.time_until_next_rotation(epoch, exponent, time.time()))

    logger.info("Token rotation example completed")


if __name__ == "__main__":
    main()
