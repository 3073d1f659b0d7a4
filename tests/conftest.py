"""Shared fixtures for the vault test-suite."""
import pytest

from chromapass.storage import MemoryStorage
from chromapass.handlers import MessageDispatcher
from chromapass.vault import VaultConfig, VaultController
from chromapass.vault import crypto


@pytest.fixture
def config():
    """Fast settings: cheap PBKDF2, long idle timeout."""
    return VaultConfig(pbkdf2_iterations=1000, lock_timeout=60)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def session_store():
    return MemoryStorage()


@pytest.fixture
async def controller(storage, session_store, config):
    vault = VaultController(storage=storage, session_store=session_store, config=config)
    yield vault
    await vault.close()


@pytest.fixture
async def unlocked(controller):
    """A controller set up with master password 'hunter2'."""
    await controller.setup("hunter2")
    return controller


@pytest.fixture
def dispatcher(controller):
    return MessageDispatcher(controller)


@pytest.fixture(scope="session")
def private_key():
    return crypto.generate_keypair()


@pytest.fixture
def key():
    return crypto.derive_key("hunter2", b"0123456789abcdef", iterations=1000)
