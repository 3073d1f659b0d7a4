"""
Vault Models — Records persisted in the durable store and exchanged with callers.
"""
import uuid
from enum import Enum
from typing import Literal, Optional, Union
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LockState(str, Enum):
    """Process-wide vault state."""
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class Envelope(BaseModel):
    """Encrypted form of one credential secret.

    ``aes`` payloads are ``b64(iv):b64(ct)`` under the master key,
    ``rsa`` payloads are ``b64(ct)`` under the vault public key.
    """

    type: Literal["aes", "rsa"]
    payload: str

    @property
    def is_symmetric(self) -> bool:
        return self.type == "aes"

    @classmethod
    def coerce(cls, data: Union["Envelope", dict, str]) -> "Envelope":
        """Build an Envelope from a tagged mapping or a bare legacy payload.

        Untagged strings predate tagging and are always symmetric.
        """
        if isinstance(data, cls):
            return data
        if isinstance(data, str):
            return cls(type="aes", payload=data)
        return cls.model_validate(data)


class VerificationRecord(BaseModel):
    """Hash + salt used to verify the master password."""

    password_hash: str
    salt: str  # base64


class CredentialRecord(BaseModel):
    """A stored site credential; the secret only exists as an envelope."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    site: str
    username: str
    password: Envelope
    created: datetime = Field(default_factory=_utcnow)
    updated: Optional[datetime] = None

    @field_validator("password", mode="before")
    @classmethod
    def coerce_legacy_envelope(cls, v):
        """Records stored before envelopes were tagged hold a bare string."""
        if isinstance(v, str):
            return Envelope.coerce(v)
        return v

    def matches(self, site: str, username: str) -> bool:
        """Same (site, username) pair; site is compared case-insensitively."""
        return self.site.lower() == site.lower() and self.username == username


class PendingSaveCandidate(BaseModel):
    """Login observed by the page, waiting for the user to confirm."""

    site: str
    username: str
    password: str


class RotationReport(BaseModel):
    """Outcome of re-encrypting the credential collection."""

    total: int = 0
    rotated: int = 0
    skipped: int = 0
    errors: int = 0
    degraded: list[str] = Field(default_factory=list)


class CredentialMatches(BaseModel):
    """Autofill lookup: every match plus the decrypted first one when unlocked."""

    matches: list[CredentialRecord] = Field(default_factory=list)
    username: Optional[str] = None
    password: Optional[str] = None
