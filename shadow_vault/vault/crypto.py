"""
Vault Crypto Core — Session key derivation and password digests.

Derivation:
    salt = SHA-256(address as given || "vault-encryption-fixed")
    signature path:   IKM = SHA-256(signature bytes)
    private key path: IKM = raw 32-byte private key (dev only)
    key = HKDF-SHA256(IKM, salt, info="sv:hkdf:v1", length=32)

Security Note:
    Never log secret material or full keys. Only log previews produced by
    ``mask_hex_preview`` or ``DerivedKey.preview``.
"""
import base64
import hashlib
import hmac
import logging
from typing import Literal, Optional

from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes

from .exceptions import DerivationError

logger = logging.getLogger("shadow_vault")

KEY_LENGTH = 32  # AES-256
DIGEST_SIZE = 32  # SHA-256
PRIVATE_KEY_SIZE = 32  # secp256k1
PREVIEW_CHARS = 8

VAULT_ENCRYPTION_DOMAIN = "vault-encryption-fixed"
HKDF_INFO = "sv:hkdf:v1"

SecretKind = Literal["signature", "private_key"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hkdf_sha256(ikm: bytes, salt: Optional[bytes], info: str) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256.

    Args:
        ikm: Input key material.
        salt: Extract-step salt (None for the all-zero default).
        info: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        info=info.encode("utf-8"),
    )
    return hkdf.derive(ikm)


def _strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def mask_hex_preview(value: str) -> str:
    """Return a non-reversible preview of a hex string (``0x1234abcd...9f8e7d``)."""
    clean = _strip_0x(value)
    if len(clean) <= 12:
        return f"0x{clean[:4]}..."
    return f"0x{clean[:PREVIEW_CHARS]}...{clean[-6:]}"


def normalize_address(address: Optional[str]) -> str:
    """Trim a wallet address. Case is kept: the salt is built from the
    address exactly as the wallet reports it, checksum casing included.

    Raises:
        DerivationError: If the address is missing or blank.
    """
    if address is None or not address.strip():
        raise DerivationError("Wallet address is required for key derivation")
    return address.strip()


# ---------------------------------------------------------------------------
# Password canonicalization
# ---------------------------------------------------------------------------

def canonical_password(password: str) -> bytes:
    """Canonical byte encoding of a password (UTF-8, unmodified)."""
    return password.encode("utf-8")


def password_digest(password: str) -> bytes:
    """Return the 32-byte commitment digest of a password."""
    return sha256(canonical_password(password))


def digests_equal(a: bytes, b: bytes) -> bool:
    return hmac.compare_digest(a, b)


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

class SecretMaterial:
    """Wallet-controlled secret used as key derivation input.

    Either a deterministic signature over the fixed signing message, or a
    raw exported private key (development only).
    """

    __slots__ = ("kind", "value")

    def __init__(self, kind: SecretKind, value: str):
        if kind not in ("signature", "private_key"):
            raise DerivationError(f"Unknown secret material kind: {kind!r}")
        self.kind = kind
        self.value = value

    @classmethod
    def signature(cls, value: str) -> "SecretMaterial":
        return cls("signature", value)

    @classmethod
    def private_key(cls, value: str) -> "SecretMaterial":
        return cls("private_key", value)

    def __repr__(self) -> str:
        return f"<SecretMaterial kind={self.kind}>"


class DerivedKey:
    """256-bit session key bound to the deriving address.

    Held only in memory. ``repr`` never shows key material.
    """

    __slots__ = ("_key", "_address")

    def __init__(self, key: bytes, address: str):
        if len(key) != KEY_LENGTH:
            raise DerivationError(
                f"Derived key must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        self._key = key
        self._address = address

    @property
    def key(self) -> bytes:
        return self._key

    @property
    def address(self) -> str:
        """Context tag: the address this key was derived for."""
        return self._address

    def to_base64(self) -> str:
        return base64.b64encode(self._key).decode("ascii")

    def preview(self) -> str:
        """First hex characters of the key, safe for diagnostics."""
        return self._key.hex()[:PREVIEW_CHARS]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DerivedKey):
            return NotImplemented
        return (
            self._address == other._address
            and hmac.compare_digest(self._key, other._key)
        )

    def __hash__(self) -> int:
        return hash((self._address, self._key))

    def __repr__(self) -> str:
        return f"<DerivedKey address={self._address} preview={self.preview()}...>"


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def _decode_hex(value: str, what: str) -> bytes:
    try:
        return bytes.fromhex(_strip_0x(value))
    except ValueError as err:
        raise DerivationError(f"{what} is not valid hex") from err


def _signature_ikm(signature: str) -> bytes:
    if signature[:2] in ("0x", "0X"):
        sig_bytes = _decode_hex(signature, "Signature")
    else:
        sig_bytes = signature.encode("utf-8")
    if not sig_bytes:
        raise DerivationError("Signature is empty")
    return sha256(sig_bytes)


def _private_key_ikm(private_key: str) -> bytes:
    key_bytes = _decode_hex(private_key.strip(), "Private key")
    if len(key_bytes) != PRIVATE_KEY_SIZE:
        raise DerivationError(
            f"Private key must be {PRIVATE_KEY_SIZE} bytes, "
            f"got {len(key_bytes)}"
        )
    return key_bytes


def address_salt(address: str) -> bytes:
    return sha256(f"{address}{VAULT_ENCRYPTION_DOMAIN}".encode("utf-8"))


def derive_key(secret: SecretMaterial, address: str) -> DerivedKey:
    """Derive the session encryption key from wallet secret material.

    Pure function: the same (secret, address) pair always yields the same
    key; different addresses yield unrelated keys.

    Args:
        secret: Signature or exported private key.
        address: Wallet address used as salt context.

    Returns:
        DerivedKey bound to the trimmed address.

    Raises:
        DerivationError: If the secret is empty or malformed, or the
            address is missing.
    """
    normalized = normalize_address(address)
    if secret is None or not secret.value or not secret.value.strip():
        raise DerivationError("Secret material is empty")
    if secret.kind == "signature":
        ikm = _signature_ikm(secret.value.strip())
    else:
        ikm = _private_key_ikm(secret.value)
    raw = hkdf_sha256(ikm, address_salt(normalized), HKDF_INFO)
    key = DerivedKey(raw, normalized)
    logger.debug(
        "Derived %s key for %s (preview %s)",
        secret.kind, normalized, key.preview(),
    )
    return key
