"""
Collaborator interfaces consumed by the vault engine.

Each collaborator is a narrow async capability. The engine never probes
wallet or SDK objects for optional methods; optional capabilities (such as
private key export) are passed in as separate objects.
"""
from typing import Any, Protocol, runtime_checkable

from .models import ChainEntry, ZKProof


@runtime_checkable
class Signer(Protocol):
    async def sign_message(self, message: str) -> str:
        """Sign ``message``; deterministic for a fixed message and address."""
        ...


@runtime_checkable
class KeyExporter(Protocol):
    async def export_private_key(self) -> str:
        """Return the wallet private key as hex (development only)."""
        ...


class BlobStore(Protocol):
    async def put(self, data: bytes) -> str:
        ...

    async def get(self, pointer: str) -> bytes:
        ...


class CommitmentContract(Protocol):
    """Commitment storage and proof verifier contract."""

    async def get_entry(self, user: str, entry_id: int) -> ChainEntry:
        ...

    async def get_user_entries(self, user: str) -> list[int]:
        ...

    async def store_entry(self, user: str, stored_hash: bytes, blob_pointer: str) -> int:
        ...

    async def update_entry(
        self, user: str, entry_id: int, stored_hash: bytes, blob_pointer: str
    ) -> None:
        ...

    async def delete_entry(self, user: str, entry_id: int) -> None:
        ...

    async def verify(self, proof: bytes, public_inputs: list[bytes]) -> bool:
        ...


class ProofBackend(Protocol):
    """Out-of-process prover. Its output is untrusted until verified."""

    async def generate_proof(
        self, private_witness: dict[str, Any], public_inputs: list[bytes]
    ) -> ZKProof:
        ...
