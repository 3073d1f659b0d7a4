"""
Vault Configuration — Validated settings for the key lifecycle.

Reads optional overrides from environment variables:
    VAULT_PBKDF2_ITERATIONS = <int>
    VAULT_SALT_LENGTH = <int>
    VAULT_RSA_KEY_SIZE = <int>
    VAULT_LOCK_TIMEOUT = <seconds, float>
    VAULT_CLEAR_CANDIDATE_ON_LOCK = <true|false>
    VAULT_STORAGE_PATH = <path to the durable JSON store>

Security Note:
    Never log key material. Only log settings and state transitions.
"""
import os
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("chromapass.vault")

DEFAULT_PBKDF2_ITERATIONS = 100_000
DEFAULT_SALT_LENGTH = 16
DEFAULT_RSA_KEY_SIZE = 2048
DEFAULT_LOCK_TIMEOUT = 30.0

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    pbkdf2_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=1000)
    salt_length: int = Field(default=DEFAULT_SALT_LENGTH, ge=16, le=64)
    rsa_key_size: int = Field(default=DEFAULT_RSA_KEY_SIZE, ge=2048)
    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0)
    clear_candidate_on_lock: bool = False
    storage_path: Optional[str] = None

    @field_validator("rsa_key_size")
    @classmethod
    def validate_rsa_key_size(cls, v: int) -> int:
        """RSA modulus must be a multiple of 256 bits."""
        if v % 256:
            raise ValueError(f"Unsupported RSA key size: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        config = cls(
            pbkdf2_iterations=int(
                os.environ.get("VAULT_PBKDF2_ITERATIONS", DEFAULT_PBKDF2_ITERATIONS)
            ),
            salt_length=int(
                os.environ.get("VAULT_SALT_LENGTH", DEFAULT_SALT_LENGTH)
            ),
            rsa_key_size=int(
                os.environ.get("VAULT_RSA_KEY_SIZE", DEFAULT_RSA_KEY_SIZE)
            ),
            lock_timeout=float(
                os.environ.get("VAULT_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT)
            ),
            clear_candidate_on_lock=_env_bool("VAULT_CLEAR_CANDIDATE_ON_LOCK"),
            storage_path=os.environ.get("VAULT_STORAGE_PATH"),
        )
        logger.debug(
            "Vault config loaded: iterations=%d lock_timeout=%.1fs storage=%s",
            config.pbkdf2_iterations,
            config.lock_timeout,
            config.storage_path or "memory",
        )
        return config
