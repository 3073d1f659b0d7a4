"""Vault — Master-key lifecycle and credential envelopes.

Security Note (Threat Model):
    The master key and the blind-save private key live in process memory
    and in the session-scoped store while the vault is unlocked. A memory
    dump of the process, or read access to the session store, exposes them.
    The host process is trusted; protecting against it is out of scope.
"""

from .config import VaultConfig
from .controller import VaultController
from .credentials import CredentialStore
from .session import SessionManager
from .key_rotation import rotate_master_key
from .exceptions import (
    VaultError,
    AuthFailure,
    LockedFailure,
    DecryptionFailure,
    NotInitializedFailure,
    AlreadyInitializedFailure,
)
from .models import (
    LockState,
    Envelope,
    CredentialRecord,
    CredentialMatches,
    PendingSaveCandidate,
    RotationReport,
    VerificationRecord,
)

__all__ = [
    "VaultConfig",
    "VaultController",
    "CredentialStore",
    "SessionManager",
    "rotate_master_key",
    "VaultError",
    "AuthFailure",
    "LockedFailure",
    "DecryptionFailure",
    "NotInitializedFailure",
    "AlreadyInitializedFailure",
    "LockState",
    "Envelope",
    "CredentialRecord",
    "CredentialMatches",
    "PendingSaveCandidate",
    "RotationReport",
    "VerificationRecord",
]
