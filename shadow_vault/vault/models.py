"""
Vault Models — Entries, envelopes, commitments, proofs and reports.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from .exceptions import VaultError, VerificationFailed

WORD_SIZE = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VaultEntryPlaintext(BaseModel):
    """Decrypted vault entry. Owned by the caller for the duration of a call."""

    service: str = Field(min_length=1)
    username: str = ""
    password: SecretStr
    category: str = "work"
    network: str = "ethereum"
    url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_payload(self) -> dict:
        """Plain dict including the password, for encryption only."""
        data = self.model_dump(mode="json")
        data["password"] = self.password.get_secret_value()
        return data


class EncryptedEnvelope(BaseModel):
    """Versioned at-rest form of a vault entry."""

    model_config = {"frozen": True}

    version: int = Field(ge=0, le=0xFFFF)
    ciphertext: bytes
    iv: bytes
    salt: bytes
    auth_tag: bytes


class ChainEntry(BaseModel):
    """On-chain view of one entry, as returned by ``getEntry``."""

    model_config = {"frozen": True}

    stored_hash: bytes
    blob_pointer: str
    timestamp: int
    is_active: bool


class IntegrityCommitment(BaseModel):
    """On-chain hash + blob pointer pair for one entry. Immutable."""

    model_config = {"frozen": True}

    stored_hash: bytes
    contract_address: str
    chain_id: int
    blob_pointer: str = Field(min_length=1)

    @field_validator("stored_hash")
    @classmethod
    def validate_hash(cls, v: bytes) -> bytes:
        if len(v) != WORD_SIZE:
            raise ValueError(f"stored_hash must be {WORD_SIZE} bytes, got {len(v)}")
        return v


class ZKProof(BaseModel):
    """Proof bytes plus ordered 32-byte public input words."""

    model_config = {"frozen": True}

    proof: bytes
    public_inputs: tuple[bytes, ...]

    @field_validator("public_inputs")
    @classmethod
    def validate_words(cls, v: tuple[bytes, ...]) -> tuple[bytes, ...]:
        if not v:
            raise ValueError("public_inputs cannot be empty")
        for word in v:
            if len(word) != WORD_SIZE:
                raise ValueError(
                    f"public input words must be {WORD_SIZE} bytes, got {len(word)}"
                )
        return v


class VaultEntryRecord(BaseModel):
    """Orchestrator unit of work: envelope + commitment for one entry id."""

    model_config = {"frozen": True}

    entry_id: int
    commitment: IntegrityCommitment
    timestamp: int
    is_active: bool = True
    envelope: Optional[EncryptedEnvelope] = None


class IntegrityStatus(str, Enum):
    OK = "ok"
    VERIFICATION_FAILED = "verification_failed"
    SYSTEM_ERROR = "system_error"


class IntegrityReport(BaseModel):
    """Tagged result of an integrity verification attempt.

    The password is present only when ``integrity_verified`` is True.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    status: IntegrityStatus
    entry_id: Optional[int] = None
    password: Optional[SecretStr] = None
    proof: Optional[ZKProof] = None
    error: Optional[VaultError] = None

    @property
    def integrity_verified(self) -> bool:
        return self.status is IntegrityStatus.OK

    @property
    def public_inputs(self) -> Optional[tuple[bytes, ...]]:
        return self.proof.public_inputs if self.proof is not None else None

    @property
    def error_kind(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None

    @model_validator(mode="after")
    def password_only_when_verified(self) -> "IntegrityReport":
        if self.status is IntegrityStatus.OK:
            if self.password is None or self.error is not None:
                raise ValueError("verified report needs a password and no error")
        else:
            if self.password is not None:
                raise ValueError("password must not be reported unless verified")
            if self.error is None:
                raise ValueError("failed report needs an error")
        return self

    @classmethod
    def ok(cls, entry_id: Optional[int], password: str, proof: ZKProof) -> "IntegrityReport":
        return cls(
            status=IntegrityStatus.OK,
            entry_id=entry_id,
            password=SecretStr(password),
            proof=proof,
        )

    @classmethod
    def failed(
        cls,
        entry_id: Optional[int],
        error: VaultError,
        proof: Optional[ZKProof] = None,
    ) -> "IntegrityReport":
        status = (
            IntegrityStatus.VERIFICATION_FAILED
            if isinstance(error, VerificationFailed)
            else IntegrityStatus.SYSTEM_ERROR
        )
        return cls(status=status, entry_id=entry_id, proof=proof, error=error)
