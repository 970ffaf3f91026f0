"""
Vault Exceptions — Error taxonomy for the vault engine.

Security Note:
    Messages must never carry raw keys or plaintext passwords. Use ids,
    blob pointers and short previews only.
"""


class VaultError(Exception):
    """Base class for all vault engine errors."""


class DerivationError(VaultError):
    """Secret material or address is missing or malformed."""


class FormatError(VaultError):
    """Envelope or collaborator response is malformed, or the envelope
    version is unsupported."""


class IntegrityError(VaultError):
    """AEAD authentication tag mismatch on local decryption."""


class OperationTimeout(VaultError, TimeoutError):
    """A collaborator call exceeded its explicit timeout."""


class CollaboratorUnavailable(VaultError):
    """A collaborator (blob store, RPC, backend) is unreachable."""


class RequestRejected(VaultError):
    """A collaborator refused the request outright (4xx); retrying will not help."""


class BlobNotFound(VaultError):
    """The blob store has no blob for the given pointer."""


class EntryNotFound(VaultError):
    """The commitment contract has no entry with the given id."""


class ContractError(VaultError):
    """The commitment contract rejected a write (reverted)."""


class ProofGenerationError(VaultError):
    """The proof backend failed to produce a proof.

    ``transient`` tells the caller whether retrying may help (backend
    unreachable) or not (malformed witness).
    """

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class VerificationFailed(VaultError):
    """Legitimate negative result: the proof does not verify.

    This is not a system error and must never be mapped to one.
    """


class PartialWriteError(VaultError):
    """A cross-system write was interrupted after the blob was published.

    The on-chain record is the source of truth; ``blob_pointer`` names the
    orphaned blob so an out-of-band sweep can reconcile it.
    """

    def __init__(
        self,
        blob_pointer: str,
        entry_id: int | None = None,
        reason: str = "on-chain write failed",
    ):
        self.blob_pointer = blob_pointer
        self.entry_id = entry_id
        target = f"entry {entry_id}" if entry_id is not None else "new entry"
        super().__init__(
            f"Partial write for {target}: {reason}; "
            f"orphaned blob pointer {blob_pointer}"
        )



class UnconfirmedWriteError(VaultError):
    """The on-chain write went through but reading it back failed.

    The entry exists on-chain under ``entry_id``; callers must not repeat
    the write. A later ``get_entry`` reconciles the local store.
    """

    def __init__(self, entry_id: int, blob_pointer: str, reason: str = "read-back failed"):
        self.entry_id = entry_id
        self.blob_pointer = blob_pointer
        super().__init__(
            f"Entry {entry_id} committed on-chain with blob {blob_pointer}, "
            f"but {reason}"
        )


TRANSIENT_ERRORS = (OperationTimeout, CollaboratorUnavailable)
