"""Typed failures raised by the ledger, the purchase provider and reconciliation."""


class SubscriptionError(Exception):
    """Base class for subscription subsystem failures."""


class LedgerUnavailableError(SubscriptionError):
    """The subscription ledger could not be read or written."""


class ProviderUnavailableError(SubscriptionError):
    """The purchase provider did not return customer information."""


class RequestCancelledError(SubscriptionError):
    """An in-flight request was superseded before it completed."""


class RecordMissingError(SubscriptionError):
    """The user has no ledger row yet."""


class ForeignKeyViolationError(SubscriptionError):
    """The ledger write referenced a user that no longer exists."""
