"""
Entry point for the reference beacon service.
"""

import logging

import uvicorn

from ephemurl.common.config import Config

from .core import BeaconService


def start_server(config: Config | None = None) -> None:
    """Start the beacon service."""
    if config is None:
        config = Config()
    logging.basicConfig(level=config.LOG_LEVEL)
    service = BeaconService(config=config)
    uvicorn.run(service.app, host=service.server_host, port=service.server_port)
