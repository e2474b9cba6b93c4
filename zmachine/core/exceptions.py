"""Custom exception hierarchy for zmachine.

All zmachine-specific exceptions inherit from ZMachineError, enabling
users to catch every driver failure with a single except clause.

Errors are forwarded rather than swallowed. Each layer that lets an error
pass through appends what it was doing with ``add_context`` and re-raises
the same exception, so callers can still match on the concrete class.
"""

from __future__ import annotations

from typing import Self


class ZMachineError(Exception):
    """Base exception for all zmachine errors."""

    def __init__(self, *args: object) -> None:
        super().__init__(*args)
        self.context: list[str] = []

    def add_context(self, context: str) -> Self:
        self.context.append(context)
        return self

    def __str__(self) -> str:
        base = super().__str__()
        if not self.context:
            return base
        return f"{': '.join(reversed(self.context))}: {base}"


class ConfigurationError(ZMachineError):
    """Raised for invalid configuration or missing required settings."""


class TransportError(ZMachineError):
    """Raised when a network call cannot be completed. Never retried."""


class AuthenticationError(ZMachineError):
    """Raised when the control plane rejects a login."""


class ProtocolError(ZMachineError):
    """Raised when a reachable server returns a malformed or undecodable payload."""


class RemoteOperationError(ZMachineError):
    """Raised when the provider explicitly reports a failed operation."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


class TimeoutError(ZMachineError):  # noqa: A001
    """Raised when an asynchronous job stays pending past its bound."""


class NotFoundError(ZMachineError):
    """Raised when a resource that was expected to exist is absent."""

    def __init__(self, resource: str, identifier: str) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found")


class LifecycleError(ZMachineError):
    """Raised when a remote call succeeded but left the instance in an unexpected state."""


class ProvisioningError(LifecycleError):
    """Raised when guest provisioning fails after the instance was created."""
