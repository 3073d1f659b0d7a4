"""
Credential Store — Ordered collection of site credentials and their envelopes.

The whole collection is kept under one durable key and is written back as a
single atomic replace after every mutation.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from collections.abc import Mapping

from pydantic import ValidationError

from .key_rotation import rotate_master_key
from .models import CredentialRecord, Envelope, RotationReport

logger = logging.getLogger("chromapass.vault")

CREDENTIALS_KEY = "passwords"


class CredentialStore:
    """Durable, insertion-ordered collection of CredentialRecord.

    At most one record exists per (site, username); the site comparison
    is case-insensitive.
    """

    def __init__(self, storage: Any):
        self._storage = storage

    async def _load(self) -> list[CredentialRecord]:
        raw = await self._storage.get(CREDENTIALS_KEY, [])
        try:
            return [CredentialRecord.model_validate(item) for item in raw]
        except ValidationError as err:
            raise ValueError(f"Stored credential collection is invalid: {err}") from err

    async def _save(
        self,
        records: list[CredentialRecord],
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        values = {
            CREDENTIALS_KEY: [r.model_dump(mode="json") for r in records],
        }
        if extra:
            values.update(extra)
        await self._storage.update(values)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def all(self) -> list[CredentialRecord]:
        return await self._load()

    async def get(self, record_id: str) -> Optional[CredentialRecord]:
        for record in await self._load():
            if record.id == record_id:
                return record
        return None

    async def find_by_site(self, domain: str) -> list[CredentialRecord]:
        """Records whose site contains ``domain`` (case-insensitive), in insertion order."""
        needle = domain.lower()
        return [r for r in await self._load() if needle in r.site.lower()]

    async def search(self, text: str = "") -> list[CredentialRecord]:
        """Records whose site or username contains ``text`` (case-insensitive)."""
        needle = text.lower()
        return [
            r for r in await self._load()
            if needle in r.site.lower() or needle in r.username.lower()
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def upsert(
        self,
        site: str,
        username: str,
        envelope: Envelope,
        replaces: Optional[str] = None,
    ) -> CredentialRecord:
        """Insert a credential, or replace the envelope of the matching one.

        Args:
            site: Site the credential belongs to.
            username: Account name.
            envelope: Encrypted secret.
            replaces: Id of an edited record; dropped in the same write when
                the save landed on a different record.
        """
        records = await self._load()
        for index, record in enumerate(records):
            if record.matches(site, username):
                record = record.model_copy(update={
                    "password": envelope,
                    "updated": datetime.now(timezone.utc),
                })
                records[index] = record
                action = "updated"
                break
        else:
            record = CredentialRecord(site=site, username=username, password=envelope)
            records.append(record)
            action = "created"
        if replaces and replaces != record.id:
            records = [r for r in records if r.id != replaces]
        await self._save(records)
        logger.debug("Credential %s: id=%s site=%s", action, record.id, site)
        return record

    async def remove(self, record_id: str) -> bool:
        """Delete a record by id.

        Returns:
            True if a record was removed, False if it did not exist.
        """
        records = await self._load()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return False
        await self._save(remaining)
        logger.debug("Credential removed: id=%s", record_id)
        return True

    async def rotate_encryption(
        self,
        old_key: bytes,
        new_key: bytes,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> RotationReport:
        """Re-encrypt symmetric envelopes from old_key to new_key.

        Args:
            old_key: Current master key.
            new_key: Replacement master key.
            extra: Additional durable keys written in the same atomic update.

        Returns:
            RotationReport listing degraded record ids.
        """
        records, report = await rotate_master_key(await self._load(), old_key, new_key)
        await self._save(records, extra)
        return report
