"""
Custom exceptions for the beacon provisioning system.
"""

from __future__ import annotations


class BeaconError(Exception):
    """Base exception for all provisioning failures."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkFailure(BeaconError):
    """Transport-level failure. Callers may retry."""


class ServerRejected(BeaconError):
    """The service answered, but refused the request."""

    def __init__(self, status_code: int, message: str | None) -> None:
        super().__init__(message or "Invalid response", status_code)

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


class AuthExpired(BeaconError):
    """No cached credential outside the safety margin. Never sent over the network."""

    def __init__(self, message: str = "access credential missing or expired") -> None:
        super().__init__(message, 401)


class CryptoError(BeaconError):
    """Key agreement or derivation failure."""


class InvalidKey(CryptoError):
    """A key has the wrong length or is not a valid curve point."""


class Unavailable(CryptoError):
    """The hash primitive could not be initialized."""
