"""Custom exceptions for model, repository, and lending service layers."""


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when input or model data fails business validation."""


class ModelNotFoundError(ModelError):
    """Raised when a requested document does not exist."""


class VersionConflictError(ModelError):
    """Raised when optimistic concurrency version checks fail."""


class InvalidStateError(ModelError):
    """Raised when an operation is not permitted for the current position status."""


class InsufficientCollateralError(ModelError):
    """Raised when collateral cannot back the requested loan."""


class NotEligibleError(ModelError):
    """Raised when liquidation is attempted on a healthy position."""


class PersistenceError(ModelError):
    """Raised when the backing datastore fails to read or write."""
