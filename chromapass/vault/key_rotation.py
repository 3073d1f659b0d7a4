"""
Vault Key Rotation — Batch re-encryption of credentials when the master key changes.

Re-encrypts every symmetric envelope from the old master key to the new one
in batches. Asymmetric (blind-save) envelopes do not depend on the master
key and are skipped. A record that cannot be decrypted under the old key
keeps its old envelope and is reported as degraded; the batch continues.

Security Note:
    Plaintext exists in memory only during re-encryption of each record.
    Never log plaintext or ciphertext values.
"""
import asyncio
import logging
from collections.abc import Sequence

from .crypto import decrypt_symmetric, encrypt_symmetric
from .models import CredentialRecord, Envelope, RotationReport

logger = logging.getLogger("chromapass.vault")


async def rotate_master_key(
    records: Sequence[CredentialRecord],
    old_key: bytes,
    new_key: bytes,
    batch_size: int = 100,
) -> tuple[list[CredentialRecord], RotationReport]:
    """Re-encrypt all symmetric envelopes from old_key to new_key.

    Args:
        records: Current credential collection, in storage order.
        old_key: Master key the envelopes are encrypted under.
        new_key: Master key to re-encrypt to.
        batch_size: Number of records processed before yielding to the loop.

    Returns:
        Tuple of (rotated collection in the same order, report).
    """
    report = RotationReport()
    rotated: list[CredentialRecord] = []

    logger.info(
        "Starting key rotation of %d record(s) (batch_size=%d)",
        len(records), batch_size,
    )

    for offset in range(0, len(records), batch_size):
        batch = records[offset:offset + batch_size]
        logger.debug(
            "Processing batch %d (%d records)", (offset // batch_size) + 1, len(batch),
        )
        for record in batch:
            report.total += 1
            if not record.password.is_symmetric:
                rotated.append(record)
                report.skipped += 1
                continue

            plaintext = decrypt_symmetric(record.password.payload, old_key)
            if plaintext is None:
                logger.error(
                    "Degraded record id=%s site=%s: kept under the old key",
                    record.id, record.site,
                )
                rotated.append(record)
                report.errors += 1
                report.degraded.append(record.id)
                continue

            envelope = Envelope(
                type="aes", payload=encrypt_symmetric(plaintext, new_key),
            )
            rotated.append(record.model_copy(update={"password": envelope}))
            report.rotated += 1
        # give the inactivity timer a chance to run between batches
        await asyncio.sleep(0)

    logger.info(
        "Key rotation complete: %s", report.model_dump(exclude={"degraded"}),
    )
    return rotated, report
