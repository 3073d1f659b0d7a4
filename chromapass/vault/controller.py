"""
VaultController — the single entry point of the vault engine.

Implements the operation protocol on top of the SessionManager, the
CredentialStore and the crypto primitives:
- ``setup`` / ``unlock`` / ``lock`` / ``rotate_master_password``
- ``fetch_matches`` / ``decrypt_one`` / ``list_credentials`` / ``delete_credential``
- ``capture_candidate`` / ``peek_candidate`` / ``confirm_save`` / ``dismiss_candidate``

Every operation runs under one ``asyncio.Lock`` so no caller can observe a
half-applied mutation. The inactivity timer locks through the SessionManager
directly and is not serialized with operations.

Security Note:
    Never log passwords, keys or envelope payloads. Only log sites,
    record ids and state transitions.
"""
import asyncio
import base64
import logging
from typing import Any, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from ..storage import FileStorage, MemoryStorage
from . import crypto
from .config import VaultConfig
from .credentials import CredentialStore
from .exceptions import (
    AlreadyInitializedFailure,
    AuthFailure,
    DecryptionFailure,
    LockedFailure,
    NotInitializedFailure,
)
from .models import (
    CredentialMatches,
    CredentialRecord,
    Envelope,
    LockState,
    PendingSaveCandidate,
    RotationReport,
    VerificationRecord,
)
from .session import SessionManager

logger = logging.getLogger("chromapass.vault")

# durable store keys
VERIFICATION_KEY = "verification"
PUBLIC_KEY = "asym_public_key"
PRIVATE_KEY_ENCRYPTED = "asym_private_key_encrypted"


class VaultController:
    """Password vault engine bound to a durable and a session store.

    Args:
        storage: Durable store. Defaults to ``FileStorage(config.storage_path)``
            when a path is configured, else an in-memory store.
        session_store: Session-scoped store shared across restarts of the
            controller within one browser/app session.
        config: Vault settings.
        session: Pre-built SessionManager (tests, multiple instances).
    """

    def __init__(
        self,
        storage: Any = None,
        session_store: Any = None,
        config: Optional[VaultConfig] = None,
        session: Optional[SessionManager] = None,
    ):
        self.config = config or VaultConfig()
        if storage is None:
            if self.config.storage_path:
                storage = FileStorage(self.config.storage_path)
            else:
                storage = MemoryStorage()
        self._storage = storage
        self._session_store = session_store if session_store is not None else MemoryStorage()
        self.session = session or SessionManager(
            self._session_store, storage, lock_timeout=self.config.lock_timeout,
        )
        self.credentials = CredentialStore(storage)
        self._pending: Optional[PendingSaveCandidate] = None
        self._lock = asyncio.Lock()
        if self.config.clear_candidate_on_lock:
            self.session.add_lock_listener(self._clear_candidate)

    def __repr__(self) -> str:
        return f'<VaultController session={self.session!r}>'

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clear_candidate(self) -> None:
        if self._pending is not None:
            logger.debug("Pending save candidate cleared for site=%s", self._pending.site)
        self._pending = None

    async def _verification(self) -> Optional[VerificationRecord]:
        raw = await self._storage.get(VERIFICATION_KEY)
        if raw is None:
            return None
        return VerificationRecord.model_validate(raw)

    async def _derive(self, password: str, salt: bytes) -> bytes:
        return await asyncio.to_thread(
            crypto.derive_key, password, salt, self.config.pbkdf2_iterations,
        )

    async def _new_keypair(self, master_key: bytes) -> tuple[rsa.RSAPrivateKey, dict]:
        """Generate a blind-save key pair and its durable representation."""
        private_key = await asyncio.to_thread(
            crypto.generate_keypair, self.config.rsa_key_size,
        )
        values = {
            PUBLIC_KEY: crypto.export_public_key(private_key.public_key()),
            PRIVATE_KEY_ENCRYPTED: crypto.encrypt_symmetric(
                crypto.export_private_key(private_key), master_key,
            ),
        }
        return private_key, values

    async def _unwrap_private_key(self, master_key: bytes) -> Optional[rsa.RSAPrivateKey]:
        encrypted = await self._storage.get(PRIVATE_KEY_ENCRYPTED)
        if encrypted is None:
            return None
        pem = crypto.decrypt_symmetric(encrypted, master_key)
        if pem is None:
            logger.error("Stored private key cannot be decrypted with the master key")
            return None
        return crypto.import_private_key(pem)

    @staticmethod
    def _require_password(password: str) -> None:
        if not password:
            raise ValueError("Master password cannot be empty")

    # ------------------------------------------------------------------
    # Lock state
    # ------------------------------------------------------------------

    async def lock_state(self) -> LockState:
        """Current vault state; an active key access re-arms the idle timer."""
        async with self._lock:
            if await self._verification() is None:
                return LockState.UNINITIALIZED
            if await self.session.get_master_key() is None:
                return LockState.LOCKED
            return LockState.UNLOCKED

    # ------------------------------------------------------------------
    # Key lifecycle
    # ------------------------------------------------------------------

    async def setup(self, password: str) -> None:
        """Create the vault: verification record, master key, blind-save key pair.

        Raises:
            AlreadyInitializedFailure: If a master password already exists.
        """
        self._require_password(password)
        async with self._lock:
            if await self._verification() is not None:
                raise AlreadyInitializedFailure()
            salt = crypto.generate_salt(self.config.salt_length)
            record = VerificationRecord(
                password_hash=crypto.hash_password(password, salt),
                salt=base64.b64encode(salt).decode("ascii"),
            )
            master_key = await self._derive(password, salt)
            private_key, values = await self._new_keypair(master_key)
            values[VERIFICATION_KEY] = record.model_dump()
            await self._storage.update(values)
            await self.session.activate(master_key, private_key)
            logger.info("Vault initialized")

    async def unlock(self, password: str) -> None:
        """Verify the master password and start an unlocked session.

        Raises:
            NotInitializedFailure: If no vault was ever set up.
            AuthFailure: If the password does not match.
        """
        async with self._lock:
            record = await self._verification()
            if record is None:
                raise NotInitializedFailure("Not setup")
            salt = base64.b64decode(record.salt)
            if not crypto.verify_password(password, salt, record.password_hash):
                logger.warning("Vault unlock rejected: incorrect password")
                raise AuthFailure()
            master_key = await self._derive(password, salt)
            if await self._storage.get(PRIVATE_KEY_ENCRYPTED) is None:
                # vaults created before blind saves existed
                private_key, values = await self._new_keypair(master_key)
                await self._storage.update(values)
                logger.info("Generated missing blind-save key pair")
            else:
                private_key = await self._unwrap_private_key(master_key)
            await self.session.activate(master_key, private_key)
            logger.info("Vault unlocked")

    async def lock(self) -> None:
        async with self._lock:
            await self.session.lock()

    async def rotate_master_password(
        self, old_password: str, new_password: str,
    ) -> RotationReport:
        """Replace the master password and re-encrypt stored credentials.

        Records that fail to decrypt under the old key are kept unchanged
        and listed in ``RotationReport.degraded``.

        Raises:
            NotInitializedFailure: If no vault was ever set up.
            AuthFailure: If the old password does not match.
        """
        self._require_password(new_password)
        async with self._lock:
            record = await self._verification()
            if record is None:
                raise NotInitializedFailure("Not setup")
            salt = base64.b64decode(record.salt)
            if not crypto.verify_password(old_password, salt, record.password_hash):
                logger.warning("Master password change rejected: incorrect old password")
                raise AuthFailure("Incorrect old password")
            old_key = await self._derive(old_password, salt)
            new_salt = crypto.generate_salt(self.config.salt_length)
            new_key = await self._derive(new_password, new_salt)

            private_key = await self._unwrap_private_key(old_key)
            regenerated = private_key is None
            if regenerated:
                private_key, extra = await self._new_keypair(new_key)
                logger.warning("Blind-save key pair regenerated during rotation")
            else:
                extra = {
                    PRIVATE_KEY_ENCRYPTED: crypto.encrypt_symmetric(
                        crypto.export_private_key(private_key), new_key,
                    ),
                }
            extra[VERIFICATION_KEY] = VerificationRecord(
                password_hash=crypto.hash_password(new_password, new_salt),
                salt=base64.b64encode(new_salt).decode("ascii"),
            ).model_dump()

            report = await self.credentials.rotate_encryption(old_key, new_key, extra)
            if regenerated:
                # blind saves under the lost private key can no longer be opened
                orphaned = [
                    r.id for r in await self.credentials.all()
                    if not r.password.is_symmetric
                ]
                report.errors += len(orphaned)
                report.degraded.extend(orphaned)
            await self.session.activate(new_key, private_key)
            if report.degraded:
                logger.warning(
                    "Master password changed with %d degraded record(s)",
                    len(report.degraded),
                )
            else:
                logger.info("Master password changed")
            return report

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def _decrypt(self, envelope: Envelope) -> str:
        if envelope.is_symmetric:
            key = await self.session.get_master_key()
            if key is None:
                raise LockedFailure()
            plaintext = crypto.decrypt_symmetric(envelope.payload, key)
        else:
            private_key = await self.session.get_private_key()
            if private_key is None:
                raise LockedFailure()
            plaintext = crypto.decrypt_asymmetric(envelope.payload, private_key)
        if plaintext is None:
            raise DecryptionFailure()
        return plaintext

    async def fetch_matches(self, domain: str) -> CredentialMatches:
        """Credentials for ``domain``; the first one is decrypted when unlocked."""
        async with self._lock:
            result = CredentialMatches(matches=await self.credentials.find_by_site(domain))
            if result.matches and await self.session.get_master_key() is not None:
                first = result.matches[0]
                result.username = first.username
                try:
                    result.password = await self._decrypt(first.password)
                except (LockedFailure, DecryptionFailure) as err:
                    logger.debug("Autofill decryption unavailable for id=%s: %s", first.id, err)
            return result

    async def decrypt_one(self, envelope: Union[Envelope, dict, str]) -> str:
        """Decrypt a single envelope with whichever key its tag requires.

        Raises:
            LockedFailure: If the required key is not available.
            DecryptionFailure: If the envelope cannot be decrypted.
        """
        envelope = Envelope.coerce(envelope)
        async with self._lock:
            return await self._decrypt(envelope)

    async def list_credentials(self, text: str = "") -> list[CredentialRecord]:
        async with self._lock:
            return await self.credentials.search(text)

    async def delete_credential(self, record_id: str) -> bool:
        async with self._lock:
            return await self.credentials.remove(record_id)

    # ------------------------------------------------------------------
    # Save flow
    # ------------------------------------------------------------------

    async def capture_candidate(self, site: str, username: str, password: str) -> None:
        """Hold an observed login until the user confirms or dismisses it."""
        candidate = PendingSaveCandidate(site=site, username=username, password=password)
        async with self._lock:
            self._pending = candidate
            logger.debug("Pending save candidate captured for site=%s", site)

    async def peek_candidate(self) -> Optional[PendingSaveCandidate]:
        async with self._lock:
            return self._pending

    async def dismiss_candidate(self) -> None:
        async with self._lock:
            self._clear_candidate()

    async def confirm_save(
        self,
        site: str,
        username: str,
        password: str,
        record_id: Optional[str] = None,
    ) -> CredentialRecord:
        """Encrypt and store a credential, then clear the pending candidate.

        Unlocked vaults store a symmetric envelope; locked vaults fall back
        to a blind save under the public key.

        Args:
            site: Site the credential belongs to.
            username: Account name.
            password: Plaintext secret.
            record_id: Record being edited; removed if the save landed elsewhere.

        Raises:
            NotInitializedFailure: If locked and no key pair was ever created.
        """
        async with self._lock:
            key = await self.session.get_master_key()
            if key is not None:
                envelope = Envelope(type="aes", payload=crypto.encrypt_symmetric(password, key))
            else:
                public_pem = await self._storage.get(PUBLIC_KEY)
                if public_pem is None:
                    raise NotInitializedFailure()
                envelope = Envelope(
                    type="rsa",
                    payload=crypto.encrypt_asymmetric(
                        password, crypto.import_public_key(public_pem),
                    ),
                )
                logger.info("Blind save for site=%s while locked", site)
            record = await self.credentials.upsert(
                site, username, envelope, replaces=record_id,
            )
            self._pending = None
            return record

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def generate_password(length: int = 16) -> str:
        return crypto.generate_password(length)

    async def close(self) -> None:
        """Cancel the inactivity timer; keys stay in the session store."""
        await self.session.close()
