import pytest

from securevault.vault import MemoryStorage, VaultConfig, VaultStore


MASTER_KEY = "Tr0ub4dor&3"


@pytest.fixture
def storage():
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture
def store(storage):
    """Uninitialized vault."""
    return VaultStore(storage, VaultConfig())


@pytest.fixture
async def vault(store):
    """Vault initialized with MASTER_KEY."""
    await store.initialize(MASTER_KEY)
    return store


@pytest.fixture
async def populated_vault(vault):
    """Vault holding three records."""
    for site, user, secret in (
        ("example.com", "alice", "s3cr3t!"),
        ("mail.example.org", "bob", "hunter2"),
        ("bank.example.net", "carol", "c0rrect-h0rse"),
    ):
        await vault.add_record({"website": site, "username": user}, secret, MASTER_KEY)
    return vault
