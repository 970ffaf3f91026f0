"""
Shared fixtures and in-memory collaborators for vault engine tests.

The fake proof system binds a proof to its public inputs with an HMAC: the
backend refuses witnesses whose digest does not match public input 0, and
the contract accepts a proof only for the exact inputs it was made for.
"""
import asyncio
import hashlib
import hmac
import os
from typing import Any, Optional

import pytest

from shadow_vault.session import VaultSession
from shadow_vault.vault.config import VaultConfig
from shadow_vault.vault.exceptions import (
    BlobNotFound,
    ContractError,
    EntryNotFound,
    ProofGenerationError,
)
from shadow_vault.vault.models import ChainEntry, VaultEntryPlaintext, ZKProof
from shadow_vault.vault.orchestrator import VaultOrchestrator

USER_ADDRESS = "0x" + "aA" * 20
CONTRACT_ADDRESS = "0x" + "5c" * 20
CHAIN_ID = 48899
SIGNATURE = "0x" + "1b" * 65


class FakeSigner:
    """Deterministic signer; records how many times it was asked to sign."""

    def __init__(self, signature: str = SIGNATURE, delay: float = 0.0):
        self.signature = signature
        self.delay = delay
        self.calls = 0
        self.failures: list[Exception] = []

    async def sign_message(self, message: str) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        return self.signature


class RandomSigner(FakeSigner):
    """Non-deterministic signer."""

    async def sign_message(self, message: str) -> str:
        self.calls += 1
        return "0x" + os.urandom(65).hex()


class FakeKeyExporter:
    def __init__(self, private_key: str = "0x" + "42" * 32):
        self.private_key = private_key
        self.calls = 0

    async def export_private_key(self) -> str:
        self.calls += 1
        return self.private_key


class InMemoryBlobStore:
    """Content-addressed blob store."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.put_failures: list[Exception] = []
        self.put_calls = 0
        self.get_calls = 0

    async def put(self, data: bytes) -> str:
        self.put_calls += 1
        if self.put_failures:
            raise self.put_failures.pop(0)
        pointer = "blob-" + hashlib.sha256(data).hexdigest()[:32]
        self.blobs[pointer] = data
        return pointer

    async def get(self, pointer: str) -> bytes:
        self.get_calls += 1
        try:
            return self.blobs[pointer]
        except KeyError:
            raise BlobNotFound(f"Blob {pointer} not found") from None


def _bind(secret: bytes, public_inputs: list[bytes]) -> bytes:
    return hmac.new(secret, b"".join(public_inputs), hashlib.sha256).digest()


class FakeCommitmentContract:
    """Commitment storage + proof verifier with the contract's revert rules."""

    def __init__(self, verifier_secret: bytes):
        self._secret = verifier_secret
        self._entries: dict[tuple[str, int], dict[str, Any]] = {}
        self._user_entries: dict[str, list[int]] = {}
        self._next_id = 1
        self.clock = 1_700_000_000
        self.clock_step = 1
        self.write_delay = 0.0
        self.events: list[tuple[str, int]] = []
        self.verify_calls = 0

    def _tick(self) -> int:
        self.clock += self.clock_step
        return self.clock

    def _require(self, stored_hash: bytes, blob_pointer: str) -> None:
        if not stored_hash:
            raise ContractError("ShadowVault: metadata hash cannot be empty")
        if not blob_pointer:
            raise ContractError("ShadowVault: encrypted data cannot be empty")

    def _existing(self, user: str, entry_id: int) -> dict[str, Any]:
        entry = self._entries.get((user, entry_id))
        if entry is None:
            raise ContractError("ShadowVault: entry does not exist")
        return entry

    async def get_entry(self, user: str, entry_id: int) -> ChainEntry:
        entry = self._entries.get((user, entry_id))
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found for {user}")
        return ChainEntry(**entry)

    async def get_user_entries(self, user: str) -> list[int]:
        return list(self._user_entries.get(user, []))

    async def store_entry(self, user: str, stored_hash: bytes, blob_pointer: str) -> int:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        self._require(stored_hash, blob_pointer)
        entry_id = self._next_id
        self._next_id += 1
        self._entries[(user, entry_id)] = {
            "stored_hash": stored_hash,
            "blob_pointer": blob_pointer,
            "timestamp": self._tick(),
            "is_active": True,
        }
        self._user_entries.setdefault(user, []).append(entry_id)
        self.events.append(("EntryStored", entry_id))
        return entry_id

    async def update_entry(
        self, user: str, entry_id: int, stored_hash: bytes, blob_pointer: str
    ) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        self._require(stored_hash, blob_pointer)
        entry = self._existing(user, entry_id)
        if not entry["is_active"]:
            raise ContractError("ShadowVault: entry is not active")
        entry.update(
            stored_hash=stored_hash, blob_pointer=blob_pointer, timestamp=self._tick(),
        )
        self.events.append(("EntryUpdated", entry_id))

    async def delete_entry(self, user: str, entry_id: int) -> None:
        entry = self._existing(user, entry_id)
        if not entry["is_active"]:
            raise ContractError("ShadowVault: entry already deleted")
        entry["is_active"] = False
        self.events.append(("EntryDeleted", entry_id))

    async def verify(self, proof: bytes, public_inputs: list[bytes]) -> bool:
        self.verify_calls += 1
        return hmac.compare_digest(proof, _bind(self._secret, public_inputs))

    # test helper: simulate a commitment changed by another client
    def overwrite_hash(self, user: str, entry_id: int, stored_hash: bytes) -> None:
        self._entries[(user, entry_id)]["stored_hash"] = stored_hash


class FakeProofBackend:
    """Prover whose circuit asserts sha256(password) == public_inputs[0]."""

    def __init__(self, verifier_secret: bytes):
        self._secret = verifier_secret
        self.calls = 0
        self.delay = 0.0
        self.failures: list[Exception] = []

    async def generate_proof(
        self, private_witness: dict[str, Any], public_inputs: list[bytes]
    ) -> ZKProof:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        digest = hashlib.sha256(private_witness["password"]).digest()
        if digest != public_inputs[0]:
            raise ProofGenerationError(
                "Circuit execution failed: witness does not satisfy constraints",
                transient=False,
            )
        return ZKProof(
            proof=_bind(self._secret, public_inputs),
            public_inputs=tuple(public_inputs),
        )


# --- Fixtures ---

@pytest.fixture
def config():
    return VaultConfig(
        contract_address=CONTRACT_ADDRESS,
        chain_id=CHAIN_ID,
        blob_timeout=1.0,
        chain_timeout=1.0,
        signer_timeout=1.0,
        proof_timeout=1.0,
        retry_backoff=0.0,
    )


@pytest.fixture
def verifier_secret():
    return os.urandom(32)


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def session(config, signer):
    return VaultSession(USER_ADDRESS, signer, config)


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def contract(verifier_secret):
    return FakeCommitmentContract(verifier_secret)


@pytest.fixture
def proof_backend(verifier_secret):
    return FakeProofBackend(verifier_secret)


@pytest.fixture
def orchestrator(session, blob_store, contract, proof_backend):
    return VaultOrchestrator(session, blob_store, contract, proof_backend)


def make_entry(
    service: str = "github",
    password: str = "p@ss",
    username: str = "octocat",
    **extra: Optional[str],
) -> VaultEntryPlaintext:
    return VaultEntryPlaintext(
        service=service, username=username, password=password, **extra,
    )
