# Beacon client
from ephemurl.client.client import BeaconClient as BeaconClient

__all__ = ["BeaconClient"]
