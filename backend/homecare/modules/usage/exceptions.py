"""Usage service exceptions."""


class UsageServiceError(Exception):
    """Base exception for usage service errors."""
    pass


class UsageValidationError(UsageServiceError):
    """Raised for a bad tier, service type, category or amount."""
    pass


class UsagePeriodNotFoundError(UsageServiceError):
    """Raised when a user has no usage period at all."""
    pass


class UsagePersistenceError(UsageServiceError):
    """Raised when the storage layer fails."""
    pass
