"""Vault Engine — Wallet-derived keys, encrypted envelopes and integrity proofs.

Security Note (Threat Model):
    The session key and decrypted passwords live in process memory while a
    call runs. A memory dump of the application process could expose them.
    This is an accepted limitation; mitigation requires HSM/secure enclave
    integration which is out of scope. The proof backend, blob store and
    chain are untrusted: every proof is re-verified against an independent
    on-chain read.
"""

from .config import VaultConfig
from .crypto import DerivedKey, SecretMaterial, derive_key, password_digest
from .envelope import decrypt, encrypt, pack_envelope, unpack_envelope
from .exceptions import (
    BlobNotFound,
    CollaboratorUnavailable,
    ContractError,
    DerivationError,
    EntryNotFound,
    FormatError,
    IntegrityError,
    OperationTimeout,
    PartialWriteError,
    ProofGenerationError,
    RequestRejected,
    UnconfirmedWriteError,
    VaultError,
    VerificationFailed,
)
from .integrity import IntegrityVerifier
from .models import (
    ChainEntry,
    EncryptedEnvelope,
    IntegrityCommitment,
    IntegrityReport,
    IntegrityStatus,
    VaultEntryPlaintext,
    VaultEntryRecord,
    ZKProof,
)
from .orchestrator import VaultOrchestrator
from .walrus import WalrusBlobStore

__all__ = [
    "VaultConfig",
    "DerivedKey",
    "SecretMaterial",
    "derive_key",
    "password_digest",
    "encrypt",
    "decrypt",
    "pack_envelope",
    "unpack_envelope",
    "IntegrityVerifier",
    "VaultOrchestrator",
    "WalrusBlobStore",
    "ChainEntry",
    "EncryptedEnvelope",
    "IntegrityCommitment",
    "IntegrityReport",
    "IntegrityStatus",
    "VaultEntryPlaintext",
    "VaultEntryRecord",
    "ZKProof",
    "VaultError",
    "DerivationError",
    "FormatError",
    "IntegrityError",
    "ProofGenerationError",
    "VerificationFailed",
    "PartialWriteError",
    "UnconfirmedWriteError",
    "OperationTimeout",
    "CollaboratorUnavailable",
    "RequestRejected",
    "BlobNotFound",
    "EntryNotFound",
    "ContractError",
]
