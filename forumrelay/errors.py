"""Error taxonomy for the relay.

Only ``InitializationError`` is fatal. The others are caught at the handler
boundary in ``RelayEngine`` and logged.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class InitializationError(RelayError):
    """Startup could not verify the group or bootstrap a control topic."""


class CreationError(RelayError):
    """A user's topic could not be created or recorded in the ledger."""


class DeliveryError(RelayError):
    """Forward, copy or send failed after the topic was resolved."""


class AuditError(RelayError):
    """Writing the audit ledger or exporting a backup failed."""
