# Ephemeral URL beacons

from ephemurl.client.client import BeaconClient
from ephemurl.common.tokens import compute_token, encode_token

__all__ = [
    "BeaconClient",
    "compute_token",
    "encode_token",
]
