"""ChromaPass — local password vault engine."""
from .version import __version__
from .storage import MemoryStorage, FileStorage
from .vault import VaultController, VaultConfig

__all__ = [
    "__version__",
    "MemoryStorage",
    "FileStorage",
    "VaultController",
    "VaultConfig",
]
