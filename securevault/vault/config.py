"""
Vault Configuration — Validated settings loaded from the environment.

    VAULT_SESSION_TTL        = <seconds, >= 60>
    VAULT_BULK_TIMEOUT       = <seconds, > 0>
    VAULT_COMMITMENT_SCHEME  = sha256 | pbkdf2-sha256
    VAULT_STORAGE_PATH       = <path of the vault file>

Security Note:
    Passphrases are never part of configuration.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .crypto import COMMITMENT_SCHEMES, COMMITMENT_SHA256
from .storage import FileStorage, MemoryStorage, Storage

logger = logging.getLogger("securevault.vault")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    session_ttl: int = Field(default=900, ge=60)
    bulk_timeout: float = Field(default=60.0, gt=0)
    commitment_scheme: str = Field(default=COMMITMENT_SHA256)
    storage_path: Optional[Path] = None

    @field_validator("commitment_scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        """Validate commitment scheme is supported."""
        v = v.lower()
        if v not in COMMITMENT_SCHEMES:
            raise ValueError(f"Unsupported commitment scheme: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables fall back to the field defaults.
        """
        values = {}
        env_map = {
            "session_ttl": "VAULT_SESSION_TTL",
            "bulk_timeout": "VAULT_BULK_TIMEOUT",
            "commitment_scheme": "VAULT_COMMITMENT_SCHEME",
            "storage_path": "VAULT_STORAGE_PATH",
        }
        for field, name in env_map.items():
            raw = os.environ.get(name)
            if raw:
                values[field] = raw
        config = cls(**values)
        logger.debug(
            "Vault config: session_ttl=%d bulk_timeout=%s scheme=%s storage=%s",
            config.session_ttl, config.bulk_timeout,
            config.commitment_scheme, config.storage_path or "memory",
        )
        return config


def build_storage(config: VaultConfig) -> Storage:
    """Return a file-backed storage when a path is configured, else memory."""
    if config.storage_path is not None:
        return FileStorage(config.storage_path)
    return MemoryStorage()
