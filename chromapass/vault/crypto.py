"""
Vault Crypto Core — Key derivation, envelope encryption and key serialization.

Implements the two envelope classes of the vault:
- Symmetric: PBKDF2-SHA256(password, salt) → AES-256-GCM → "b64(iv):b64(ct)"
- Asymmetric: RSA-OAEP(SHA-256) under the vault public key → "b64(ct)"

Asymmetric envelopes exist only for blind saves while the vault is locked;
the matching private key is itself stored encrypted under the master key.

Security Note:
    Never log plaintext or ciphertext values.
    IVs are random 96-bit; collision probability negligible under normal usage.
"""
import os
import hmac
import base64
import binascii
import hashlib
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import DEFAULT_PBKDF2_ITERATIONS, DEFAULT_RSA_KEY_SIZE, DEFAULT_SALT_LENGTH

logger = logging.getLogger("chromapass.vault")

IV_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16  # GCM tag
PUBLIC_EXPONENT = 65537

PASSWORD_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*()_+"
)
MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 128


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


# ---------------------------------------------------------------------------
# Key derivation & password verification
# ---------------------------------------------------------------------------

def generate_salt(length: int = DEFAULT_SALT_LENGTH) -> bytes:
    """Generate a random salt for key derivation and password hashing."""
    return os.urandom(length)


def derive_key(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 32-byte master key using PBKDF2-HMAC-SHA256.

    Args:
        password: Master password.
        salt: Salt stored in the verification record.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def hash_password(password: str, salt: bytes) -> str:
    """Return base64(SHA-256(password ‖ salt)) used for verification only.

    This digest is independent from ``derive_key`` output.
    """
    digest = hashlib.sha256(password.encode("utf-8") + salt).digest()
    return _b64encode(digest)


def verify_password(password: str, salt: bytes, password_hash: str) -> bool:
    """Check ``password`` against a stored verification hash."""
    return hmac.compare_digest(hash_password(password, salt), password_hash)


# ---------------------------------------------------------------------------
# Symmetric envelopes (AES-256-GCM)
# ---------------------------------------------------------------------------

def encrypt_symmetric(plaintext: str, key: bytes) -> str:
    """Encrypt text under the master key.

    Format: base64(iv) ":" base64(ciphertext + GCM tag)

    Args:
        plaintext: Text to encrypt.
        key: 32-byte master key.

    Returns:
        Symmetric envelope payload.
    """
    iv = os.urandom(IV_SIZE)
    ct = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return f"{_b64encode(iv)}:{_b64encode(ct)}"


def decrypt_symmetric(package: str, key: bytes) -> Optional[str]:
    """Decrypt a symmetric envelope payload.

    Returns:
        Plaintext, or None when the payload is malformed, tampered
        or encrypted under a different key.
    """
    try:
        iv_str, ct_str = package.split(":")
        iv = _b64decode(iv_str)
        ct = _b64decode(ct_str)
        if len(iv) != IV_SIZE or len(ct) < TAG_SIZE:
            raise ValueError("malformed envelope")
        return AESGCM(key).decrypt(iv, ct, None).decode("utf-8")
    except (InvalidTag, ValueError, TypeError, AttributeError, binascii.Error) as err:
        logger.warning("Symmetric decryption failed: %s", type(err).__name__)
        return None


# ---------------------------------------------------------------------------
# Asymmetric envelopes (RSA-OAEP)
# ---------------------------------------------------------------------------

def generate_keypair(key_size: int = DEFAULT_RSA_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Generate the RSA key pair used for blind saves.

    The public half is reachable through ``private_key.public_key()``.
    """
    return rsa.generate_private_key(
        public_exponent=PUBLIC_EXPONENT,
        key_size=key_size,
    )


def encrypt_asymmetric(plaintext: str, public_key: rsa.RSAPublicKey) -> str:
    """Encrypt text under the vault public key.

    Raises:
        ValueError: If the plaintext exceeds the OAEP size limit.
    """
    return _b64encode(public_key.encrypt(plaintext.encode("utf-8"), _oaep()))


def decrypt_asymmetric(payload: str, private_key: rsa.RSAPrivateKey) -> Optional[str]:
    """Decrypt an asymmetric envelope payload.

    Returns:
        Plaintext, or None on malformed input or wrong key.
    """
    try:
        return private_key.decrypt(_b64decode(payload), _oaep()).decode("utf-8")
    except (ValueError, TypeError, AttributeError, binascii.Error) as err:
        logger.warning("Asymmetric decryption failed: %s", type(err).__name__)
        return None


# ---------------------------------------------------------------------------
# Key serialization
# ---------------------------------------------------------------------------

def export_key(key: bytes) -> str:
    """Serialize a symmetric key for the session store."""
    return _b64encode(key)


def import_key(data: str) -> bytes:
    """Restore a symmetric key serialized by ``export_key``.

    Raises:
        ValueError: If the data is not a 32-byte base64 key.
    """
    try:
        key = _b64decode(data)
    except binascii.Error as err:
        raise ValueError(f"Invalid serialized key: {err}") from err
    if len(key) != KEY_LENGTH:
        raise ValueError(
            f"Serialized key must decode to exactly {KEY_LENGTH} bytes, "
            f"got {len(key)}"
        )
    return key


def export_private_key(private_key: rsa.RSAPrivateKey) -> str:
    """Serialize a private key as unencrypted PKCS#8 PEM."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def import_private_key(data: str) -> rsa.RSAPrivateKey:
    """Restore a private key serialized by ``export_private_key``."""
    key = serialization.load_pem_private_key(data.encode("ascii"), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("Serialized private key is not an RSA key")
    return key


def export_public_key(public_key: rsa.RSAPublicKey) -> str:
    """Serialize a public key as SubjectPublicKeyInfo PEM."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def import_public_key(data: str) -> rsa.RSAPublicKey:
    """Restore a public key serialized by ``export_public_key``."""
    key = serialization.load_pem_public_key(data.encode("ascii"))
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("Serialized public key is not an RSA key")
    return key


# ---------------------------------------------------------------------------
# Password generator
# ---------------------------------------------------------------------------

def generate_password(length: int = 16) -> str:
    """Generate a random password from ``PASSWORD_ALPHABET``.

    Raises:
        ValueError: If length is outside the supported range.
    """
    if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
        raise ValueError(
            f"Password length must be between {MIN_PASSWORD_LENGTH} "
            f"and {MAX_PASSWORD_LENGTH}, got {length}"
        )
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
