"""
VaultOrchestrator — Entry lifecycle across local store, blob store and chain.

Provides the public API of the vault engine:
- ``store_entry(plaintext)``: encrypt, publish, commit on-chain
- ``update_entry(entry_id, plaintext)``: same, superseding the commitment
- ``delete_entry(entry_id)``: soft-delete (flag only, history kept)
- ``list_active_entries()``: active entries, most recent first
- ``get_entry(entry_id)`` / ``entry_history(entry_id)``: audit lookups
- ``decrypt_entry(entry_id)``: plain decryption without proof
- ``recover_with_integrity_verification(entry_id)``: zero-knowledge check

Mutations follow a fixed commit order: encrypt locally → publish blob →
record commitment on-chain → update local store. The on-chain record is the
source of truth. If the blob is published but the chain write fails, the
blob pointer is recorded in ``orphans`` and ``PartialWriteError`` is raised
(a cancelled chain write records the orphan too). If the chain write lands
but reading it back fails, ``UnconfirmedWriteError`` carries the new entry id.

Security Note:
    Never log plaintext, passwords or ciphertext. Only log entry ids, blob
    pointers and key previews.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from .calls import guarded, retry_transient, with_timeout
from .crypto import password_digest
from .envelope import decrypt, encrypt, pack_envelope, unpack_envelope
from .exceptions import ContractError, PartialWriteError, UnconfirmedWriteError, VaultError
from .integrity import IntegrityVerifier
from .interfaces import BlobStore, CommitmentContract, ProofBackend
from .models import (
    ChainEntry,
    EncryptedEnvelope,
    IntegrityCommitment,
    IntegrityReport,
    VaultEntryPlaintext,
    VaultEntryRecord,
)

if TYPE_CHECKING:
    from ..session import VaultSession

logger = logging.getLogger("shadow_vault")


class VaultOrchestrator:
    """Vault entry lifecycle for the wallet bound to ``session``.

    Local state is limited to the encrypted store (envelopes and records by
    entry id), the commitment history and the orphan list. No plaintext is
    kept beyond a call.
    """

    def __init__(
        self,
        session: "VaultSession",
        blob_store: BlobStore,
        contract: CommitmentContract,
        proof_backend: ProofBackend,
    ):
        self._session = session
        self._config = session.config
        self._blobs = blob_store
        self._contract = contract
        self._verifier = IntegrityVerifier(
            self._config, contract, blob_store, proof_backend,
        )
        self._records: dict[int, VaultEntryRecord] = {}
        self._history: dict[int, list[IntegrityCommitment]] = {}
        self._orphans: list[str] = []

    @property
    def user(self) -> str:
        return self._session.address

    @property
    def verifier(self) -> IntegrityVerifier:
        return self._verifier

    @property
    def orphans(self) -> list[str]:
        """Blob pointers published without an on-chain record."""
        return list(self._orphans)

    # ------------------------------------------------------------------
    # Collaborator helpers
    # ------------------------------------------------------------------

    async def _publish(self, envelope: EncryptedEnvelope) -> str:
        data = pack_envelope(envelope)
        return await retry_transient(
            lambda: guarded(self._blobs.put(data), "blob put"),
            what="blob put",
            timeout=self._config.blob_timeout,
            max_attempts=self._config.read_max_attempts,
            backoff=self._config.retry_backoff,
        )

    async def _read_chain_entry(self, entry_id: int) -> ChainEntry:
        return await retry_transient(
            lambda: guarded(self._contract.get_entry(self.user, entry_id), "getEntry"),
            what=f"getEntry({entry_id})",
            timeout=self._config.chain_timeout,
            max_attempts=self._config.read_max_attempts,
            backoff=self._config.retry_backoff,
        )

    async def _read_back(self, entry_id: int, pointer: str) -> ChainEntry:
        try:
            return await self._read_chain_entry(entry_id)
        except VaultError as err:
            logger.warning(
                "Entry %s committed with blob %s but read-back failed (%s)",
                entry_id, pointer, type(err).__name__,
            )
            raise UnconfirmedWriteError(
                entry_id, pointer, reason=f"read-back failed: {err}",
            ) from err

    def _commitment(self, stored_hash: bytes, pointer: str) -> IntegrityCommitment:
        return IntegrityCommitment(
            stored_hash=stored_hash,
            contract_address=self._config.contract_address,
            chain_id=self._config.chain_id,
            blob_pointer=pointer,
        )

    def _orphaned(self, pointer: str, entry_id: Optional[int], err: BaseException) -> PartialWriteError:
        self._orphans.append(pointer)
        logger.warning(
            "On-chain write for %s failed after blob publish (%s); "
            "orphaned blob %s recorded for reconciliation",
            f"entry {entry_id}" if entry_id is not None else "new entry",
            type(err).__name__, pointer,
        )
        return PartialWriteError(
            pointer, entry_id, reason=f"on-chain write failed: {err}",
        )

    def _remember(
        self,
        entry_id: int,
        commitment: IntegrityCommitment,
        chain_entry: ChainEntry,
        envelope: Optional[EncryptedEnvelope],
    ) -> VaultEntryRecord:
        record = VaultEntryRecord(
            entry_id=entry_id,
            commitment=commitment,
            timestamp=chain_entry.timestamp,
            is_active=chain_entry.is_active,
            envelope=envelope,
        )
        self._records[entry_id] = record
        history = self._history.setdefault(entry_id, [])
        if not history or history[-1] != commitment:
            history.append(commitment)
        return record

    def _record_from_chain(self, entry_id: int, chain_entry: ChainEntry) -> VaultEntryRecord:
        cached = self._records.get(entry_id)
        envelope = None
        if cached is not None and cached.commitment.blob_pointer == chain_entry.blob_pointer:
            envelope = cached.envelope
        commitment = self._commitment(chain_entry.stored_hash, chain_entry.blob_pointer)
        return self._remember(entry_id, commitment, chain_entry, envelope)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def store_entry(self, plaintext: VaultEntryPlaintext) -> VaultEntryRecord:
        """Encrypt and persist a new entry.

        Raises:
            PartialWriteError: Blob published but the on-chain write failed.
            OperationTimeout: Blob publication timed out on every attempt.
            UnconfirmedWriteError: Written on-chain but the read-back failed.
        """
        key = await self._session.get_key()
        envelope = encrypt(plaintext, key)
        stored_hash = password_digest(plaintext.password.get_secret_value())
        pointer = await self._publish(envelope)
        try:
            entry_id = await with_timeout(
                self._contract.store_entry(self.user, stored_hash, pointer),
                self._config.chain_timeout,
                "storeEntry",
            )
        except asyncio.CancelledError as err:
            self._orphaned(pointer, None, err)
            raise
        except Exception as err:
            raise self._orphaned(pointer, None, err) from err
        chain_entry = await self._read_back(entry_id, pointer)
        record = self._remember(
            entry_id, self._commitment(stored_hash, pointer), chain_entry, envelope,
        )
        logger.info("Vault store: user=%s entry=%s blob=%s", self.user, entry_id, pointer)
        return record

    async def update_entry(
        self, entry_id: int, plaintext: VaultEntryPlaintext
    ) -> VaultEntryRecord:
        """Re-encrypt an entry and supersede its on-chain commitment.

        Raises:
            PartialWriteError: Blob published but the on-chain write failed.
            UnconfirmedWriteError: Written on-chain but the read-back failed.
            EntryNotFound: The entry does not exist.
            ContractError: The entry is soft-deleted.
        """
        key = await self._session.get_key()
        current = await self._read_chain_entry(entry_id)
        if not current.is_active:
            raise ContractError(f"Entry {entry_id} is not active")
        if entry_id not in self._history:
            self._record_from_chain(entry_id, current)
        envelope = encrypt(plaintext, key)
        stored_hash = password_digest(plaintext.password.get_secret_value())
        pointer = await self._publish(envelope)
        try:
            await with_timeout(
                self._contract.update_entry(self.user, entry_id, stored_hash, pointer),
                self._config.chain_timeout,
                "updateEntry",
            )
        except asyncio.CancelledError as err:
            self._orphaned(pointer, entry_id, err)
            raise
        except Exception as err:
            raise self._orphaned(pointer, entry_id, err) from err
        chain_entry = await self._read_back(entry_id, pointer)
        record = self._remember(
            entry_id, self._commitment(stored_hash, pointer), chain_entry, envelope,
        )
        logger.info("Vault update: user=%s entry=%s blob=%s", self.user, entry_id, pointer)
        return record

    async def delete_entry(self, entry_id: int) -> VaultEntryRecord:
        """Soft-delete an entry. History and the blob stay addressable."""
        await with_timeout(
            self._contract.delete_entry(self.user, entry_id),
            self._config.chain_timeout,
            "deleteEntry",
        )
        chain_entry = await self._read_chain_entry(entry_id)
        record = self._record_from_chain(entry_id, chain_entry)
        logger.info("Vault delete: user=%s entry=%s", self.user, entry_id)
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: int) -> VaultEntryRecord:
        """Return an entry by id, including soft-deleted entries."""
        chain_entry = await self._read_chain_entry(entry_id)
        return self._record_from_chain(entry_id, chain_entry)

    async def list_active_entries(self) -> list[VaultEntryRecord]:
        """Active entries ordered by timestamp desc, ties by entry id desc."""
        entry_ids = await retry_transient(
            lambda: guarded(self._contract.get_user_entries(self.user), "getUserEntries"),
            what="getUserEntries",
            timeout=self._config.chain_timeout,
            max_attempts=self._config.read_max_attempts,
            backoff=self._config.retry_backoff,
        )
        records = []
        for entry_id in entry_ids:
            chain_entry = await self._read_chain_entry(entry_id)
            record = self._record_from_chain(entry_id, chain_entry)
            if record.is_active:
                records.append(record)
        records.sort(key=lambda r: (r.timestamp, r.entry_id), reverse=True)
        return records

    def entry_history(self, entry_id: int) -> list[IntegrityCommitment]:
        """Commitments observed for an entry, oldest first."""
        return list(self._history.get(entry_id, []))

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def decrypt_entry(self, entry_id: int) -> VaultEntryPlaintext:
        """Decrypt the current envelope of an entry without an integrity proof.

        Raises:
            IntegrityError: Authentication tag mismatch.
            FormatError: Malformed envelope or unsupported version.
        """
        key = await self._session.get_key()
        record = await self.get_entry(entry_id)
        envelope = record.envelope
        if envelope is None:
            data = await retry_transient(
                lambda: guarded(self._blobs.get(record.commitment.blob_pointer), "blob get"),
                what=f"blob get {record.commitment.blob_pointer}",
                timeout=self._config.blob_timeout,
                max_attempts=self._config.read_max_attempts,
                backoff=self._config.retry_backoff,
            )
            envelope = unpack_envelope(data)
        return decrypt(envelope, key)

    async def recover_with_integrity_verification(self, entry_id: int) -> IntegrityReport:
        """Decrypt an entry and prove its password matches the commitment.

        Expected negative outcomes are reported, not raised. Cancellation
        propagates and leaves no on-chain state behind.
        """
        key = await self._session.get_key()
        cached = self._records.get(entry_id)
        return await self._verifier.recover(
            self.user,
            entry_id,
            key,
            cached_envelope=cached.envelope if cached is not None else None,
            cached_pointer=cached.commitment.blob_pointer if cached is not None else None,
        )
