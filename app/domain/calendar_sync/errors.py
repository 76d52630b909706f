"""Calendar sync error hierarchy"""

from typing import Optional


class CalendarSyncError(Exception):
    """Base error for everything raised by the calendar sync layer"""


class CredentialMissingError(CalendarSyncError):
    """Raised when a doctor has never connected a Google account"""

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(f"Google not connected for doctor {doctor_id}")


class TokenRefreshError(CalendarSyncError):
    """Raised when the refresh token cannot be exchanged for an access token"""


class ProviderError(CalendarSyncError):
    """Raised when a Google Tasks / Calendar request fails"""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Google API request failed ({status_code}): {message}")


class TransientProviderError(ProviderError):
    """Network failure, timeout, rate limit or 5xx. Not retried inline."""


class StaleReferenceError(ProviderError):
    """A stored task/event id no longer resolves (deleted, gone or malformed)"""
