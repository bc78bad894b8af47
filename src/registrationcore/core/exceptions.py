"""Custom exceptions for the registration core."""


class RegistrationCoreError(Exception):
    """Base exception for registration core errors."""

    pass


class ConfigurationError(RegistrationCoreError):
    """Missing or invalid system configuration."""

    pass


class ValidationError(RegistrationCoreError):
    """Malformed caller input."""

    pass


class RemoteIndexError(RegistrationCoreError):
    """Failure talking to the remote master patient index."""

    pass


class BiometricSubsystemError(RegistrationCoreError):
    """Biometric engine unavailable or a biometric call failed."""

    pass


class IllegalStateError(RegistrationCoreError):
    """An operation was called in a state where its contract forbids it."""

    pass
