"""Exception taxonomy shared by the collection, auth and upload layers.

Per-source failures (``SourceUnavailable``) are absorbed by the aggregator.
Everything under ``AuthError`` aborts a cycle before any upload is attempted.
``UploadError`` subclasses describe how the put failed and whether the
caller may retry.
"""

from __future__ import annotations


class VitalSyncError(Exception):
    """Base class for all domain errors."""


class SourceUnavailable(VitalSyncError):
    """A metric source cannot be read (permission denied, type unsupported)."""

    def __init__(self, metric: str, reason: str) -> None:
        super().__init__(f"{metric}: {reason}")
        self.metric = metric
        self.reason = reason


class HealthDataUnavailable(VitalSyncError):
    """Read authorization for the health data store was not granted."""


class MissingUserName(VitalSyncError):
    """No display name is stored, so no storage key can be built."""


class AuthError(VitalSyncError):
    """Base class for identity / credential failures."""


class ReauthRequired(AuthError):
    """The identity token is missing, expiring and could not be refreshed."""


class CredentialsUnavailable(AuthError):
    """Short-lived storage credentials could not be obtained."""


class SignInFailed(AuthError):
    """The identity provider rejected a sign-in or refresh request."""


class UploadError(VitalSyncError):
    """Base class for failed puts."""

    retryable: bool = False


class UploadUnauthorized(UploadError):
    """Storage rejected the credentials, even after one refresh and retry."""


class UploadTransient(UploadError):
    """Network or service fault; safe to retry later with backoff."""

    retryable = True


class UploadInvalid(UploadError):
    """Payload too large or malformed; never retried."""
