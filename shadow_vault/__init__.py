"""ShadowVault.

Cryptographic and integrity engine for a wallet-authenticated password vault.
"""
from .version import __version__
from .session import VaultSession
from .vault import VaultConfig, VaultOrchestrator

__all__ = ("__version__", "VaultSession", "VaultConfig", "VaultOrchestrator")
