"""Exceptions raised by the rate provider (hard failures)."""


class RateProviderError(Exception):
    """Base exception for rate provider errors"""
    pass


class InvalidParameterError(RateProviderError, ValueError):
    """Raised when a caller passes a value the provider refuses outright"""
    pass


class AccessControlError(RateProviderError, PermissionError):
    """Raised when the caller does not hold the required role"""
    pass


class NotInitializedError(RateProviderError):
    """Raised when the provider is used before initialize()"""
    pass


class AlreadyInitializedError(RateProviderError):
    """Raised on a second initialize()"""
    pass


class StoreError(RateProviderError):
    """Raised when the snapshot cannot be loaded or persisted"""
    pass
