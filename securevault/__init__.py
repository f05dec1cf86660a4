"""SecureVault.

Encrypted password vault storage engine.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    FormatError,
    IntegrityError,
    NotFoundError,
    VaultStateError,
)

__all__ = [
    "__version__",
    "VaultError",
    "FormatError",
    "IntegrityError",
    "NotFoundError",
    "VaultStateError",
]
