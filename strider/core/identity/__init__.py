from __future__ import annotations

"""
Identity records, the local fallback table and the account-service client.
"""

from strider.core.identity.http_client import HttpRemoteIdentityClient
from strider.core.identity.local_store import LOCAL_TOKEN_PREFIX, LocalIdentityStore, RepairReport, is_local_token
from strider.core.identity.models import IdentityRecord, normalize_email
from strider.core.identity.remote import AuthGrant, RemoteError, RemoteErrorKind, RemoteIdentityClient, RemoteResult

__all__ = [
    "HttpRemoteIdentityClient",
    "LOCAL_TOKEN_PREFIX",
    "LocalIdentityStore",
    "RepairReport",
    "is_local_token",
    "IdentityRecord",
    "normalize_email",
    "AuthGrant",
    "RemoteError",
    "RemoteErrorKind",
    "RemoteIdentityClient",
    "RemoteResult",
]
