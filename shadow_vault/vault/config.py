"""
Vault Configuration — Validated engine settings.

Reads settings from environment variables in the format:
    VAULT_CONTRACT_ADDRESS = <0x-prefixed 20-byte hex address>
    VAULT_CHAIN_ID = <integer>
    VAULT_*_TIMEOUT = <seconds, float>

Security Note:
    Configuration never holds key material. The dev-only private key export
    path is disabled unless VAULT_ALLOW_KEY_EXPORT is explicitly set.
"""
import os
import re
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("shadow_vault")

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TRUE_VALUES = ("1", "true", "yes", "on")

DEFAULT_SIGNING_MESSAGE = "Generate encryption key for ShadowVault session v1"
DEFAULT_WALRUS_PUBLISHER = "https://publisher.walrus-testnet.walrus.space"
DEFAULT_WALRUS_AGGREGATOR = "https://aggregator.walrus-testnet.walrus.space"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_VALUES


class VaultConfig(BaseModel):
    """Validated vault engine configuration."""

    contract_address: str
    chain_id: int = Field(ge=1)
    signing_message: str = Field(default=DEFAULT_SIGNING_MESSAGE, min_length=1)
    allow_key_export: bool = False
    # Collaborator timeouts (seconds)
    blob_timeout: float = Field(default=30.0, gt=0)
    chain_timeout: float = Field(default=60.0, gt=0)
    signer_timeout: float = Field(default=120.0, gt=0)
    proof_timeout: float = Field(default=300.0, gt=0)
    # Retry policy for transient failures
    proof_max_attempts: int = Field(default=3, ge=1, le=10)
    read_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_backoff: float = Field(default=0.5, ge=0)
    # Walrus blob store
    walrus_publisher_url: str = DEFAULT_WALRUS_PUBLISHER
    walrus_aggregator_url: str = DEFAULT_WALRUS_AGGREGATOR
    walrus_epochs: int = Field(default=5, ge=1)

    @field_validator("contract_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate the verifier contract address."""
        if not _ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid contract address: {v!r}")
        return v.lower()

    @field_validator("walrus_publisher_url", "walrus_aggregator_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def warn_key_export(self) -> "VaultConfig":
        """Flag the dev-only key export path loudly."""
        if self.allow_key_export:
            logger.warning(
                "Private key export is enabled for key derivation; "
                "this path is intended for development only"
            )
        return self

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.

        Raises:
            RuntimeError: If VAULT_CONTRACT_ADDRESS or VAULT_CHAIN_ID is unset.
        """
        address = os.environ.get("VAULT_CONTRACT_ADDRESS")
        chain_id = os.environ.get("VAULT_CHAIN_ID")
        if address is None or chain_id is None:
            raise RuntimeError(
                "VAULT_CONTRACT_ADDRESS and VAULT_CHAIN_ID environment "
                "variables must be set"
            )
        values: dict = {
            "contract_address": address,
            "chain_id": int(chain_id),
            "allow_key_export": _env_flag("VAULT_ALLOW_KEY_EXPORT"),
        }
        optional = {
            "VAULT_SIGNING_MESSAGE": ("signing_message", str),
            "VAULT_BLOB_TIMEOUT": ("blob_timeout", float),
            "VAULT_CHAIN_TIMEOUT": ("chain_timeout", float),
            "VAULT_SIGNER_TIMEOUT": ("signer_timeout", float),
            "VAULT_PROOF_TIMEOUT": ("proof_timeout", float),
            "VAULT_PROOF_MAX_ATTEMPTS": ("proof_max_attempts", int),
            "VAULT_READ_MAX_ATTEMPTS": ("read_max_attempts", int),
            "VAULT_RETRY_BACKOFF": ("retry_backoff", float),
            "VAULT_WALRUS_PUBLISHER_URL": ("walrus_publisher_url", str),
            "VAULT_WALRUS_AGGREGATOR_URL": ("walrus_aggregator_url", str),
            "VAULT_WALRUS_EPOCHS": ("walrus_epochs", int),
        }
        for env_name, (field, cast) in optional.items():
            raw = os.environ.get(env_name)
            if raw is not None:
                values[field] = cast(raw)
        logger.debug(
            "Loaded vault config for chain %s contract %s",
            values["chain_id"], address,
        )
        return cls(**values)
