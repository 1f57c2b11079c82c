"""Identity and credential handling for VitalSync.

Core modules:
    token       — Decode the identity token's expiry (PyJWT, unverified)
    store       — Persisted session state (token, refresh token, display name)
    sign_in     — Non-interactive refresh flow against the identity provider
    gate        — AuthGate state machine and single-flight refresh
    credentials — Cognito identity pool exchange for short-lived S3 credentials
"""

from vitalsync.auth.credentials import CredentialProvider, StorageCredentials
from vitalsync.auth.gate import AuthGate, AuthState
from vitalsync.auth.sign_in import OIDCRefreshSignIn, SignInFlow, SignInResult
from vitalsync.auth.store import StateStore, StoredSession
from vitalsync.auth.token import IdentityToken, decode_expiry, is_expiring_soon

__all__ = [
    "CredentialProvider",
    "StorageCredentials",
    "AuthGate",
    "AuthState",
    "OIDCRefreshSignIn",
    "SignInFlow",
    "SignInResult",
    "StateStore",
    "StoredSession",
    "IdentityToken",
    "decode_expiry",
    "is_expiring_soon",
]
