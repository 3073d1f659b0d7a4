"""Vault error taxonomy."""
from typing import Optional


class VaultError(Exception):
    """Base class for vault failures reported back to callers."""

    message: str = "Vault error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class AuthFailure(VaultError):
    """Wrong master password (or wrong old password on rotation)."""

    message = "Incorrect password"


class LockedFailure(VaultError):
    """A key is required but the vault is locked."""

    message = "Locked"


class DecryptionFailure(VaultError):
    """Ciphertext is malformed, tampered or under a foreign key."""

    message = "Decryption failed"


class NotInitializedFailure(VaultError):
    """No vault has ever been set up."""

    message = "Vault not initialized"


class AlreadyInitializedFailure(VaultError):
    """Setup attempted on a vault that already has a master password."""

    message = "Vault already initialized"
