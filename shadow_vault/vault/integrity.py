"""
Integrity Verifier — Zero-knowledge check that a decrypted password matches
its on-chain commitment.

Per attempt: collect → commit → prove → verify → report.

- Collect: read the on-chain entry, fetch and decrypt the envelope.
- Commit: canonicalize the password and recompute its digest locally.
- Prove: ask the proof backend for a proof (private witness = password,
  public inputs = [stored_hash, contract address, chain id]). Retried on
  transient failures, bounded by a timeout, cancellable.
- Verify: re-read the on-chain stored hash and require all of: proof bound
  to it, contract ``verify`` returns true, local digest equals it.
  Never retried.
- Report: tagged ``IntegrityReport``. The password is only included when
  verification fully succeeds.

Security Note:
    The password is the private witness. It is never logged and never leaves
    the process except towards the proof backend.
"""
import logging
from typing import Optional

from .calls import guarded, retry_transient, with_timeout
from .config import VaultConfig
from .crypto import DerivedKey, canonical_password, digests_equal, password_digest
from .envelope import decrypt, unpack_envelope
from .exceptions import (
    FormatError,
    ProofGenerationError,
    VaultError,
    VerificationFailed,
)
from .interfaces import BlobStore, CommitmentContract, ProofBackend
from .models import WORD_SIZE, ChainEntry, EncryptedEnvelope, IntegrityReport, ZKProof

logger = logging.getLogger("shadow_vault")


def address_word(address: str) -> bytes:
    """Left-pad a 20-byte hex address to a 32-byte word."""
    raw = bytes.fromhex(address[2:] if address[:2] in ("0x", "0X") else address)
    if len(raw) > WORD_SIZE:
        raise FormatError(f"Address too long for a public input word: {len(raw)} bytes")
    return raw.rjust(WORD_SIZE, b"\x00")


def uint_word(value: int) -> bytes:
    return value.to_bytes(WORD_SIZE, "big")


class IntegrityVerifier:
    """Drives proof generation and verification for one user's entries."""

    def __init__(
        self,
        config: VaultConfig,
        contract: CommitmentContract,
        blob_store: BlobStore,
        proof_backend: ProofBackend,
    ):
        self._config = config
        self._contract = contract
        self._blobs = blob_store
        self._prover = proof_backend

    # ------------------------------------------------------------------
    # Public inputs
    # ------------------------------------------------------------------

    def build_public_inputs(self, stored_hash: bytes) -> list[bytes]:
        """Ordered public inputs: [stored_hash, contract address, chain id]."""
        if len(stored_hash) != WORD_SIZE:
            raise FormatError(
                f"stored_hash must be {WORD_SIZE} bytes, got {len(stored_hash)}"
            )
        return [
            stored_hash,
            address_word(self._config.contract_address),
            uint_word(self._config.chain_id),
        ]

    # ------------------------------------------------------------------
    # Collaborator reads
    # ------------------------------------------------------------------

    async def _read_entry(self, user: str, entry_id: int) -> ChainEntry:
        return await retry_transient(
            lambda: guarded(self._contract.get_entry(user, entry_id), "getEntry"),
            what=f"getEntry({entry_id})",
            timeout=self._config.chain_timeout,
            max_attempts=self._config.read_max_attempts,
            backoff=self._config.retry_backoff,
        )

    async def _read_blob(self, pointer: str) -> bytes:
        return await retry_transient(
            lambda: guarded(self._blobs.get(pointer), "blob get"),
            what=f"blob get {pointer}",
            timeout=self._config.blob_timeout,
            max_attempts=self._config.read_max_attempts,
            backoff=self._config.retry_backoff,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _collect(
        self,
        user: str,
        entry_id: int,
        key: DerivedKey,
        cached_envelope: Optional[EncryptedEnvelope],
        cached_pointer: Optional[str],
    ) -> tuple[str, ChainEntry]:
        chain_entry = await self._read_entry(user, entry_id)
        if cached_envelope is not None and cached_pointer == chain_entry.blob_pointer:
            envelope = cached_envelope
        else:
            envelope = unpack_envelope(await self._read_blob(chain_entry.blob_pointer))
        plaintext = decrypt(envelope, key)
        return plaintext.password.get_secret_value(), chain_entry

    async def _prove(self, password: str, public_inputs: list[bytes]) -> ZKProof:
        witness = {"password": canonical_password(password)}

        def _log_attempt(attempt: int) -> None:
            logger.debug(
                "Requesting integrity proof (attempt %d/%d)",
                attempt, self._config.proof_max_attempts,
            )

        proof = await retry_transient(
            lambda: guarded(
                self._prover.generate_proof(witness, list(public_inputs)),
                "proof backend",
                ProofGenerationError,
            ),
            what="proof generation",
            timeout=self._config.proof_timeout,
            max_attempts=self._config.proof_max_attempts,
            backoff=self._config.retry_backoff,
            on_attempt=_log_attempt,
        )
        if not isinstance(proof, ZKProof):
            raise ProofGenerationError(
                "Proof backend returned a malformed proof", transient=False,
            )
        return proof

    async def _verify(
        self, proof: ZKProof, user: str, entry_id: int, local_digest: bytes
    ) -> None:
        # Independent read: never trust a hash carried by the client side.
        chain_entry = await self._read_entry(user, entry_id)
        onchain_hash = chain_entry.stored_hash
        if not digests_equal(proof.public_inputs[0], onchain_hash):
            raise VerificationFailed(
                "Proof public input does not match on-chain stored hash (mismatch)"
            )
        expected = self.build_public_inputs(onchain_hash)
        if tuple(proof.public_inputs[1:3]) != tuple(expected[1:]):
            raise VerificationFailed(
                "Proof is bound to a different contract or chain (mismatch)"
            )
        valid = await with_timeout(
            guarded(
                self._contract.verify(proof.proof, list(proof.public_inputs)),
                "verifier contract call",
            ),
            self._config.chain_timeout,
            "verifier contract call",
        )
        if not valid:
            raise VerificationFailed("Verifier contract rejected the proof")
        if not digests_equal(local_digest, onchain_hash):
            raise VerificationFailed(
                "Locally recomputed password digest does not match on-chain "
                "stored hash (mismatch)"
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def recover(
        self,
        user: str,
        entry_id: int,
        key: DerivedKey,
        cached_envelope: Optional[EncryptedEnvelope] = None,
        cached_pointer: Optional[str] = None,
    ) -> IntegrityReport:
        """Decrypt an entry and prove its password matches the commitment.

        Cancellation propagates to the caller; no on-chain state is written
        at any step.

        Args:
            user: Owner address.
            entry_id: On-chain entry id.
            key: Session key.
            cached_envelope: Locally stored envelope, used when its pointer
                matches the on-chain blob pointer.
            cached_pointer: Blob pointer of ``cached_envelope``.

        Returns:
            IntegrityReport (ok, verification_failed or system_error).
        """
        proof: Optional[ZKProof] = None
        try:
            password, chain_entry = await self._collect(
                user, entry_id, key, cached_envelope, cached_pointer,
            )
            local_digest = password_digest(password)
            public_inputs = self.build_public_inputs(chain_entry.stored_hash)
            proof = await self._prove(password, public_inputs)
            await self._verify(proof, user, entry_id, local_digest)
        except VerificationFailed as err:
            logger.warning("Integrity verification failed for entry %s: %s", entry_id, err)
            return IntegrityReport.failed(entry_id, err, proof)
        except VaultError as err:
            logger.error(
                "Integrity check for entry %s aborted: %s", entry_id, type(err).__name__,
            )
            return IntegrityReport.failed(entry_id, err, proof)
        logger.info("Integrity verified for entry %s", entry_id)
        return IntegrityReport.ok(entry_id, password, proof)

    async def verify_proof(
        self,
        proof: ZKProof,
        *,
        user: str,
        entry_id: int,
        password: str,
    ) -> IntegrityReport:
        """Re-submit an existing proof against the current on-chain commitment.

        Skips proof generation. The digest of ``password`` is recomputed
        locally; the password is echoed back only if everything verifies.
        """
        try:
            await self._verify(proof, user, entry_id, password_digest(password))
        except VerificationFailed as err:
            logger.warning("Proof re-verification failed for entry %s: %s", entry_id, err)
            return IntegrityReport.failed(entry_id, err, proof)
        except VaultError as err:
            logger.error(
                "Proof re-verification for entry %s aborted: %s",
                entry_id, type(err).__name__,
            )
            return IntegrityReport.failed(entry_id, err, proof)
        return IntegrityReport.ok(entry_id, password, proof)
