"""Vault error taxonomy."""


class VaultError(Exception):
    """Base class for every vault failure."""


class FormatError(VaultError, ValueError):
    """Malformed blob, record or collection."""


class IntegrityError(VaultError):
    """Authentication tag mismatch: tampered data or wrong passphrase."""


class NotFoundError(VaultError, KeyError):
    """Operation referenced an unknown record id."""

    def __str__(self) -> str:
        # KeyError quotes its argument
        return Exception.__str__(self)


class VaultStateError(VaultError, RuntimeError):
    """Operation is not valid for the current vault lifecycle state."""
