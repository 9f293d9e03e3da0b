"""Typed exceptions for identity failures."""


class AuthError(Exception):
    """Base class for authentication errors."""


class SessionExpiredError(AuthError):
    """Session is missing or expired and the user must sign in again."""


class ProfileMissingError(AuthError):
    """
    Identity is valid but has no shop profile.

    Registration provisions the profile; this means that hook never ran.
    """
