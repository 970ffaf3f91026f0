"""
Vault Envelope Codec — Authenticated encryption of vault entry payloads.

Version 1 (AES-256-GCM):
    content_key = HKDF-SHA256(session_key, salt, info="sv:envelope:v1")
    AAD         = version header (2 bytes)
    Layout:     [version 2B uint16 BE][salt 16B][iv 12B][auth_tag 16B][ciphertext]

Security Note:
    Never log plaintext or ciphertext values. IVs are random 96-bit and
    generated per call; salts are random 128-bit and generated per call.
"""
import os
import struct
import logging
from typing import NamedTuple

import orjson
from pydantic import ValidationError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .crypto import DerivedKey, hkdf_sha256
from .exceptions import FormatError, IntegrityError
from .models import EncryptedEnvelope, VaultEntryPlaintext

logger = logging.getLogger("shadow_vault")

VERSION_SIZE = 2  # uint16 big-endian


class EnvelopeFormat(NamedTuple):
    """Fixed field sizes and cipher parameters for one envelope version."""

    version: int
    salt_size: int
    iv_size: int
    tag_size: int
    info: str


ENVELOPE_V1 = EnvelopeFormat(version=1, salt_size=16, iv_size=12, tag_size=16, info="sv:envelope:v1")

CURRENT_VERSION = ENVELOPE_V1.version

# Decoders dispatch on version; anything not listed is rejected.
_FORMATS: dict[int, EnvelopeFormat] = {
    ENVELOPE_V1.version: ENVELOPE_V1,
}


def _format_for(version: int) -> EnvelopeFormat:
    try:
        return _FORMATS[version]
    except KeyError:
        raise FormatError(f"Unsupported envelope version: {version}") from None


def _header(version: int) -> bytes:
    return struct.pack("!H", version)


def _check_sizes(envelope: EncryptedEnvelope, fmt: EnvelopeFormat) -> None:
    for name, expected in (
        ("salt", fmt.salt_size),
        ("iv", fmt.iv_size),
        ("auth_tag", fmt.tag_size),
    ):
        actual = len(getattr(envelope, name))
        if actual != expected:
            raise FormatError(
                f"Envelope v{fmt.version} {name} must be {expected} bytes, "
                f"got {actual}"
            )


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

def encrypt(plaintext: VaultEntryPlaintext, key: DerivedKey) -> EncryptedEnvelope:
    """Encrypt a vault entry into a current-version envelope.

    Args:
        plaintext: Entry fields to encrypt.
        key: Session key.

    Returns:
        EncryptedEnvelope with fresh random salt and IV.
    """
    fmt = _FORMATS[CURRENT_VERSION]
    salt = os.urandom(fmt.salt_size)
    iv = os.urandom(fmt.iv_size)
    content_key = hkdf_sha256(key.key, salt, fmt.info)
    payload = orjson.dumps(plaintext.to_payload())
    sealed = AESGCM(content_key).encrypt(iv, payload, _header(fmt.version))
    return EncryptedEnvelope(
        version=fmt.version,
        ciphertext=sealed[:-fmt.tag_size],
        iv=iv,
        salt=salt,
        auth_tag=sealed[-fmt.tag_size:],
    )


def decrypt(envelope: EncryptedEnvelope, key: DerivedKey) -> VaultEntryPlaintext:
    """Authenticate and decrypt an envelope.

    Args:
        envelope: Envelope to open.
        key: Session key.

    Returns:
        The decrypted entry.

    Raises:
        FormatError: Unsupported version, wrong field sizes, or a payload
            that does not decode to a vault entry.
        IntegrityError: Authentication tag mismatch.
    """
    fmt = _format_for(envelope.version)
    _check_sizes(envelope, fmt)
    content_key = hkdf_sha256(key.key, envelope.salt, fmt.info)
    try:
        payload = AESGCM(content_key).decrypt(
            envelope.iv,
            envelope.ciphertext + envelope.auth_tag,
            _header(envelope.version),
        )
    except InvalidTag:
        raise IntegrityError(
            "Envelope authentication failed (tag mismatch)"
        ) from None
    try:
        return VaultEntryPlaintext.model_validate(orjson.loads(payload))
    except (orjson.JSONDecodeError, ValidationError) as err:
        # error text may echo field values; do not chain it
        raise FormatError(
            f"Decrypted payload is not a valid vault entry ({type(err).__name__})"
        ) from None


# ---------------------------------------------------------------------------
# Binary serialization
# ---------------------------------------------------------------------------

def pack_envelope(envelope: EncryptedEnvelope) -> bytes:
    """Serialize an envelope to its binary storage layout."""
    fmt = _format_for(envelope.version)
    _check_sizes(envelope, fmt)
    return b"".join((
        _header(envelope.version),
        envelope.salt,
        envelope.iv,
        envelope.auth_tag,
        envelope.ciphertext,
    ))


def unpack_envelope(data: bytes) -> EncryptedEnvelope:
    """Strictly parse the binary storage layout.

    Raises:
        FormatError: If the data is truncated or the version is unknown.
    """
    if len(data) < VERSION_SIZE:
        raise FormatError(f"Envelope too short: {len(data)} bytes")
    version = struct.unpack("!H", data[:VERSION_SIZE])[0]
    fmt = _format_for(version)
    _min = VERSION_SIZE + fmt.salt_size + fmt.iv_size + fmt.tag_size
    if len(data) < _min:
        raise FormatError(
            f"Envelope v{version} too short: {len(data)} bytes "
            f"(minimum {_min})"
        )
    offset = VERSION_SIZE
    salt = data[offset:offset + fmt.salt_size]
    offset += fmt.salt_size
    iv = data[offset:offset + fmt.iv_size]
    offset += fmt.iv_size
    tag = data[offset:offset + fmt.tag_size]
    offset += fmt.tag_size
    return EncryptedEnvelope(
        version=version,
        ciphertext=data[offset:],
        iv=iv,
        salt=salt,
        auth_tag=tag,
    )
